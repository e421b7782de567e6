import pytest

from app.features.comms_history.pipeline.export_poller import AsyncJobPoller
from app.models.domain.errors import JobTimeoutError
from app.models.domain.timeline_domain import EventKind, ExportJob, ExportSpec, JobStatus
from app.services.dialpad_service import map_job_status
from app.services.remote_api_client import RetryPolicy


class ScriptedBackend:
    """Reports `pending` for the first `pending_polls` polls, then `final`."""

    def __init__(self, pending_polls: int, final: str = "complete"):
        self.pending_polls = pending_polls
        self.final = final
        self.polls = 0
        self.submitted: list[ExportSpec] = []

    async def submit_export(self, spec: ExportSpec) -> str:
        self.submitted.append(spec)
        return "job-1"

    async def get_job_status(self, job_id: str) -> ExportJob:
        self.polls += 1
        raw = "pending" if self.polls <= self.pending_polls else self.final
        return ExportJob(
            job_id=job_id,
            status=map_job_status(raw),
            raw_status=raw,
            download_url="https://files.test/job-1.csv" if raw.startswith("complete") else None,
        )


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


SPEC = ExportSpec(entity_id="u1", kind=EventKind.CALL, days_back=30)


@pytest.mark.asyncio
@pytest.mark.parametrize("pending_polls", [0, 1, 4])
async def test_poller_returns_completed_job_within_budget(pending_polls):
    backend = ScriptedBackend(pending_polls)
    sleep = RecordingSleep()
    poller = AsyncJobPoller(backend, RetryPolicy(max_attempts=5, base_delay=0.5), sleep=sleep)

    job = await poller.run(SPEC)

    assert job.status is JobStatus.COMPLETE
    assert job.download_url == "https://files.test/job-1.csv"
    assert backend.polls == pending_polls + 1
    assert backend.submitted == [SPEC]
    assert len(sleep.delays) == pending_polls


@pytest.mark.asyncio
@pytest.mark.parametrize("pending_polls", [5, 9])
async def test_poller_times_out_when_budget_exhausted(pending_polls):
    backend = ScriptedBackend(pending_polls)
    poller = AsyncJobPoller(backend, RetryPolicy(max_attempts=5, base_delay=0.0), sleep=RecordingSleep())

    with pytest.raises(JobTimeoutError) as exc_info:
        await poller.run(SPEC)

    assert exc_info.value.job_id == "job-1"
    assert exc_info.value.last_status == "pending"
    assert backend.polls == 5


@pytest.mark.asyncio
async def test_poller_accepts_completed_spelling():
    backend = ScriptedBackend(pending_polls=1, final="completed")
    poller = AsyncJobPoller(backend, RetryPolicy(max_attempts=3, base_delay=0.0), sleep=RecordingSleep())

    job = await poller.run(SPEC)

    assert job.is_complete
    assert job.raw_status == "completed"


@pytest.mark.asyncio
async def test_failed_job_raises_immediately():
    backend = ScriptedBackend(pending_polls=1, final="failed")
    poller = AsyncJobPoller(backend, RetryPolicy(max_attempts=8, base_delay=0.0), sleep=RecordingSleep())

    with pytest.raises(JobTimeoutError) as exc_info:
        await poller.run(SPEC)

    assert exc_info.value.last_status == "failed"
    assert backend.polls == 2


@pytest.mark.asyncio
async def test_backoff_grows_exponentially_with_bounded_jitter():
    backend = ScriptedBackend(pending_polls=3)
    sleep = RecordingSleep()
    poller = AsyncJobPoller(backend, RetryPolicy(max_attempts=5, base_delay=0.5, jitter=0.5), sleep=sleep)

    await poller.run(SPEC)

    for attempt, delay in enumerate(sleep.delays, start=1):
        base = 0.5 * 2**attempt
        assert base <= delay <= base + 0.5


def test_status_mapping():
    assert map_job_status("Complete") is JobStatus.COMPLETE
    assert map_job_status("completed") is JobStatus.COMPLETE
    assert map_job_status("processing") is JobStatus.PENDING
    assert map_job_status("failed") is JobStatus.FAILED
    assert map_job_status(None) is JobStatus.UNKNOWN
    assert map_job_status("weird") is JobStatus.UNKNOWN
