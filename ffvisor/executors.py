from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable, Iterator, List


class BaseExecutor:
    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError

    def map(self, fn: Callable[..., Any], iterable: Iterable[Any]) -> Iterator[Any]:
        # results come back in submission order
        futures: List[Any] = [self.submit(fn, item) for item in iterable]
        for f in futures:
            yield self.result(f)

    def result(self, f: Any) -> Any:
        raise NotImplementedError

    def shutdown(self) -> None:
        pass

    def __enter__(self) -> "BaseExecutor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()


class ThreadExecutor(BaseExecutor):
    """Job workers share the façade's process table, so they must be threads."""

    def __init__(self, max_workers: int) -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ffvisor-job")

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        return self._pool.submit(fn, *args, **kwargs)

    def result(self, f: Future) -> Any:
        return f.result()

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)


def make_executor(name: str, max_workers: int) -> BaseExecutor:
    name = (name or "").lower()
    if name in ("threadpool", "thread"):
        return ThreadExecutor(max_workers=max(1, max_workers))
    raise ValueError(f"Unknown executor: {name}")
