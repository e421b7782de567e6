"""
Dialpad API Service for users, call/text exports and transcripts.
Directory listing pages by cursor; call and text history come from
asynchronous stats exports that are polled and then downloaded as CSV.
"""

import asyncio
import csv
import io
from typing import Any

from app.features.comms_history.pipeline.export_poller import AsyncJobPoller
from app.features.comms_history.pipeline.pagination import PagedCollectionFetcher
from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import RemoteApiError
from app.models.domain.timeline_domain import (
    Entity,
    EventKind,
    ExportJob,
    ExportSpec,
    JobStatus,
)
from app.services.remote_api_client import RemoteApiClient, RetryPolicy, Sleep
from app.services.stats_cache import StatsCache

logger = get_logger(__name__)

COMPLETE_STATUSES = frozenset({"complete", "completed"})
FAILED_STATUSES = frozenset({"failed", "error", "cancelled", "canceled"})
PENDING_STATUSES = frozenset({"pending", "processing", "queued", "running", "in_progress"})

STAT_TYPES = {EventKind.CALL: "calls", EventKind.TEXT: "texts"}


def map_job_status(raw_status: Any) -> JobStatus:
    status = str(raw_status or "").strip().lower()
    if status in COMPLETE_STATUSES:
        return JobStatus.COMPLETE
    if status in FAILED_STATUSES:
        return JobStatus.FAILED
    if status in PENDING_STATUSES:
        return JobStatus.PENDING
    return JobStatus.UNKNOWN


def parse_csv_records(text: str) -> list[dict[str, str]]:
    """Parse an export into row dicts with trimmed headers and values."""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    records = []
    for row in reader:
        records.append(
            {
                (key or "").strip(): (value or "").strip() if isinstance(value, str) else value
                for key, value in row.items()
                if key is not None
            }
        )
    return records


class DialpadService:
    """
    Directory, export and transcript operations against the Dialpad API.

    Export submission is a POST without an idempotency token, so it is sent
    once; status polls and downloads go through the client's retry policy.
    """

    def __init__(
        self,
        client: RemoteApiClient,
        poll_policy: RetryPolicy,
        max_items: int = 2000,
        max_pages: int = 200,
        page_size: int = 100,
        download_timeout: float = 180.0,
        cache: StatsCache | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.page_size = page_size
        self.download_timeout = download_timeout
        self.cache = cache
        self.fetcher = PagedCollectionFetcher(client.get_json, max_items=max_items, max_pages=max_pages)
        self.poller = AsyncJobPoller(self, poll_policy, sleep=sleep)

    async def close(self) -> None:
        await self.client.close()

    async def list_entities(self) -> list[Entity]:
        """List every Dialpad user."""
        users = await self.fetcher.fetch_cursor_paged(
            "/users", params={"limit": self.page_size}, operation="list_users"
        )
        entities = []
        for user in users:
            if not isinstance(user, dict) or user.get("id") in (None, ""):
                logger.warning("Skipping Dialpad user without id")
                continue
            entities.append(Entity.from_dialpad_user(user))
        logger.info("Dialpad users listed", user_count=len(entities))
        return entities

    async def submit_export(self, spec: ExportSpec) -> str:
        payload = {
            "export_type": "records",
            "stat_type": STAT_TYPES[spec.kind],
            "target_type": "user",
            "target_id": spec.entity_id,
            "days_ago_start": spec.days_back,
            "days_ago_end": 0,
            "timezone": "UTC",
        }
        data = await self.client.post_json("/stats", payload, operation="submit_export")
        job_id = (data or {}).get("id") or (data or {}).get("request_id")
        if not job_id:
            raise RemoteApiError("Dialpad export response missing request id", operation="submit_export")
        return str(job_id)

    async def get_job_status(self, job_id: str) -> ExportJob:
        data = await self.client.get_json(f"/stats/{job_id}", operation="get_export_status") or {}
        raw_status = data.get("status")
        return ExportJob(
            job_id=job_id,
            status=map_job_status(raw_status),
            raw_status=str(raw_status) if raw_status is not None else None,
            download_url=data.get("download_url"),
        )

    async def download_records(self, download_url: str) -> list[dict[str, str]]:
        text = await self.client.get_text(
            download_url, operation="download_export", timeout=self.download_timeout
        )
        return parse_csv_records(text)

    async def fetch_records(
        self, entity_id: str, kind: EventKind, days: int, use_cache: bool = True
    ) -> list[dict[str, str]]:
        """Export, wait for and download one user's call or text records."""
        cache_key = (entity_id, kind.value, days)
        if use_cache and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Stats cache hit", entity_id=entity_id, kind=kind.value, days=days)
                return cached

        job = await self.poller.run(ExportSpec(entity_id=entity_id, kind=kind, days_back=days))
        if not job.download_url:
            raise RemoteApiError(
                f"Export {job.job_id} completed without a download location",
                operation="download_export",
            )
        records = await self.download_records(job.download_url)
        logger.info("Export downloaded", entity_id=entity_id, kind=kind.value, record_count=len(records))

        if self.cache is not None:
            self.cache.set(cache_key, records)
        return records

    async def get_transcript(self, call_id: str) -> dict:
        """Transcript document for a call, returned as-is."""
        return await self.client.get_json(f"/transcripts/{call_id}", operation="get_transcript")
