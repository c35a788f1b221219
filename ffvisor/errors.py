from __future__ import annotations

import copy
from typing import Optional, Sequence

CAPACITY_REACHED = "capacity-reached"
NOT_FOUND = "not-found"
PARSE_FAILURE = "parse-failure"
EXEC_FAILURE = "exec-failure"
CANCELLED = "cancelled"
DEADLINE_EXCEEDED = "deadline-exceeded"
UNSUPPORTED_PLATFORM = "unsupported-platform"
INVALID_OPTION = "invalid-option"


class MediaError(Exception):
    """Base error; ``kind`` is the stable value callers match on."""

    kind = ""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def wrap(self, context: str) -> "MediaError":
        """Return an error of the same kind whose message is prefixed with context."""
        err = copy.copy(self)
        err.message = f"{context}: {self.message}"
        err.args = (err.message,)
        return err


class CapacityReached(MediaError):
    kind = CAPACITY_REACHED


class NotFound(MediaError):
    kind = NOT_FOUND


class ParseFailure(MediaError):
    kind = PARSE_FAILURE


class ExecFailure(MediaError):
    kind = EXEC_FAILURE

    def __init__(
        self,
        message: str,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output_tail: str = "",
    ) -> None:
        if output_tail:
            message = f"{message}\nOutput: {output_tail}"
        super().__init__(message)
        self.cmd = list(cmd or [])
        self.returncode = returncode
        self.output_tail = output_tail


class Cancelled(MediaError):
    kind = CANCELLED


class DeadlineExceeded(MediaError):
    kind = DEADLINE_EXCEEDED


class UnsupportedPlatform(MediaError):
    kind = UNSUPPORTED_PLATFORM


class InvalidOption(MediaError):
    kind = INVALID_OPTION


def error_for_reason(reason: Optional[str], message: str) -> MediaError:
    """Map a cancel-token reason to the matching error."""
    if reason == DEADLINE_EXCEEDED:
        return DeadlineExceeded(message)
    return Cancelled(message)
