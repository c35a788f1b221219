import threading

import pytest

from ffvisor import BatchJob, ConvertOptions, ExtractOptions, InvalidOption, NotFound
from ffvisor.jobs import JobRegistry


@pytest.fixture
def media(tmp_path):
    path = tmp_path / "in.mp4"
    path.write_bytes(b"\0")
    return str(path)


# ------------------------------
# registry state machine
# ------------------------------


def test_add_and_get_pending():
    registry = JobRegistry()
    job_id = registry.add(BatchJob(kind="convert"))
    assert job_id.startswith("job_")
    job = registry.get(job_id)
    assert job.id == job_id and job.status == "pending" and job.error == ""


def test_ids_are_unique_even_when_added_back_to_back():
    registry = JobRegistry()
    ids = [registry.add(BatchJob()) for _ in range(200)]
    assert len(set(ids)) == 200


def test_cancel_lifecycle_is_idempotent():
    registry = JobRegistry()
    job_id = registry.add(BatchJob(kind="convert"))
    registry.cancel(job_id)
    job = registry.get(job_id)
    assert (job.status, job.error) == ("failed", "cancelled")
    registry.cancel(job_id)
    assert registry.get(job_id).status == "failed"


def test_unknown_ids():
    registry = JobRegistry()
    with pytest.raises(NotFound):
        registry.get("job_0")
    with pytest.raises(NotFound):
        registry.cancel("job_0")


def test_rejects_mismatched_or_duplicate_jobs():
    registry = JobRegistry()
    with pytest.raises(InvalidOption):
        registry.add(BatchJob(kind="convert", options=ExtractOptions()))
    with pytest.raises(InvalidOption):
        registry.add(BatchJob(kind="transcode"))
    registry.add(BatchJob.convert(ConvertOptions(), job_id="mine"))
    with pytest.raises(InvalidOption):
        registry.add(BatchJob.convert(ConvertOptions(), job_id="mine"))


def test_snapshots_are_copies():
    registry = JobRegistry()
    job_id = registry.add(BatchJob())
    registry.get(job_id).status = "completed"
    registry.list()[0].status = "completed"
    assert registry.get(job_id).status == "pending"


def test_added_job_status_is_reset():
    registry = JobRegistry()
    job_id = registry.add(BatchJob(status="completed", error="stale"))
    job = registry.get(job_id)
    assert (job.status, job.error) == ("pending", "")


def test_start_only_from_pending():
    registry = JobRegistry()
    job_id = registry.add(BatchJob())
    registry.start(job_id)
    with pytest.raises(InvalidOption):
        registry.start(job_id)
    assert registry.finish(job_id).status == "completed"
    # completed jobs are not touched by cancel
    assert registry.cancel(job_id) is None
    assert registry.get(job_id).status == "completed"


# ------------------------------
# running jobs through the façade
# ------------------------------


def test_run_convert_job(ffmpeg, media, tmp_path):
    out = tmp_path / "out.mp4"
    job_id = ffmpeg.add_job(BatchJob.convert(ConvertOptions(input=media, output=str(out))))
    job = ffmpeg.run_job(job_id)
    assert job.status == "completed"
    assert out.exists()
    assert ffmpeg.get_job(job_id).status == "completed"


def test_run_failing_job_records_reason(ffmpeg, media, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_EXIT", "1")
    job_id = ffmpeg.add_job(
        BatchJob.extract(ExtractOptions(input=media, output=str(tmp_path / "a.mp3"), type="audio", format="mp3"))
    )
    job = ffmpeg.run_job(job_id)
    assert job.status == "failed"
    assert "exit status 1" in job.error


def test_empty_job_fails_when_run(ffmpeg):
    job_id = ffmpeg.add_job(BatchJob(kind="extract"))
    job = ffmpeg.run_job(job_id)
    assert job.status == "failed"
    assert "no options" in job.error


def test_cancel_running_job_kills_process(ffmpeg, media, tmp_path, monkeypatch, wait_for):
    monkeypatch.setenv("FAKE_SLEEP", "30")
    job_id = ffmpeg.add_job(BatchJob.convert(ConvertOptions(input=media, output=str(tmp_path / "o.mp4"))))
    outcome = []
    t = threading.Thread(target=lambda: outcome.append(ffmpeg.run_job(job_id)))
    t.start()
    assert wait_for(lambda: ffmpeg.get_job(job_id).status == "running" and ffmpeg.get_active_processes() == 1)

    ffmpeg.cancel_job(job_id)
    t.join(10)
    assert not t.is_alive()
    (job,) = outcome
    assert (job.status, job.error) == ("failed", "cancelled")
    assert ffmpeg.get_active_processes() == 0


def test_run_pending_skips_cancelled(ffmpeg, media, tmp_path):
    ids = [
        ffmpeg.add_job(BatchJob.convert(ConvertOptions(input=media, output=str(tmp_path / f"{i}.mp4"))))
        for i in range(3)
    ]
    ffmpeg.cancel_job(ids[1])
    results = ffmpeg.run_pending(max_workers=2)
    assert sorted(j.id for j in results) == sorted([ids[0], ids[2]])
    assert [ffmpeg.get_job(i).status for i in ids] == ["completed", "failed", "completed"]
    assert not (tmp_path / "1.mp4").exists()
    assert ffmpeg.run_pending() == []
    assert len(ffmpeg.list_jobs()) == 3
