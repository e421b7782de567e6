"""
Asynchronous export job polling.

Submits an export once and polls it until it completes, fails, or the
attempt budget runs out. Downloading and parsing the result is the caller's
job; a completed poll only hands back the download location.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import JobTimeoutError
from app.models.domain.timeline_domain import ExportJob, ExportSpec
from app.services.remote_api_client import RetryPolicy, Sleep

logger = get_logger(__name__)


class ExportBackend(Protocol):
    async def submit_export(self, spec: ExportSpec) -> str: ...

    async def get_job_status(self, job_id: str) -> ExportJob: ...


class AsyncJobPoller:
    """
    Polls an export job with exponential backoff and jitter.

    Polling stops after policy.max_attempts status checks. A failed job and
    an exhausted budget both raise JobTimeoutError.
    """

    def __init__(self, backend: ExportBackend, policy: RetryPolicy, sleep: Sleep = asyncio.sleep):
        if policy.max_attempts < 1:
            raise ValueError("poll policy needs at least one attempt")
        self.backend = backend
        self.policy = policy
        self._sleep = sleep

    async def run(self, spec: ExportSpec) -> ExportJob:
        """Submit the export and wait for it to complete."""
        job_id = await self.backend.submit_export(spec)
        logger.info(
            "Export submitted",
            job_id=job_id,
            entity_id=spec.entity_id,
            kind=spec.kind.value,
            days_back=spec.days_back,
        )
        return await self.wait(job_id)

    async def wait(self, job_id: str) -> ExportJob:
        last_status: str | None = None

        for attempt in range(1, self.policy.max_attempts + 1):
            job = await self.backend.get_job_status(job_id)
            last_status = job.raw_status or job.status.value

            if job.is_complete:
                logger.info("Export complete", job_id=job_id, attempts=attempt)
                return job

            if job.is_failed:
                logger.error("Export failed", job_id=job_id, status=last_status, attempts=attempt)
                raise JobTimeoutError(job_id, last_status, attempt)

            if attempt < self.policy.max_attempts:
                delay = self.policy.delay(attempt)
                logger.debug(
                    "Export not ready, backing off",
                    job_id=job_id,
                    status=last_status,
                    attempt=attempt,
                    delay_seconds=round(delay, 2),
                )
                await self._sleep(delay)

        logger.warning(
            "Export did not complete in time",
            job_id=job_id,
            status=last_status,
            attempts=self.policy.max_attempts,
        )
        raise JobTimeoutError(job_id, last_status, self.policy.max_attempts)
