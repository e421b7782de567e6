# app/models/domain/timeline_domain.py
"""
Timeline Domain Models
Entities, export jobs and the canonical event shape shared by the pipeline.
Raw source records never travel past the normalizer; everything downstream
works with NormalizedEvent.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class EventKind(StrEnum):
    CALL = "call"
    TEXT = "text"
    EMAIL = "email"


class EntitySource(StrEnum):
    DIALPAD_USER = "dialpad_user"
    MAILBOX = "mailbox"


class JobStatus(StrEnum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Entity:
    """A user or mailbox whose communication history is aggregated."""

    id: str
    name: str
    identity: str  # email address or extension
    source: EntitySource = EntitySource.DIALPAD_USER

    @classmethod
    def from_dialpad_user(cls, data: dict) -> "Entity":
        emails = data.get("emails") or []
        email = data.get("email") or (emails[0] if emails else "")
        name = data.get("display_name") or data.get("name") or ""
        if not name:
            name = " ".join(p for p in (data.get("first_name"), data.get("last_name")) if p)
        return cls(id=str(data["id"]), name=name, identity=email)

    @classmethod
    def from_mailbox(cls, address: str) -> "Entity":
        return cls(id=address, name=address, identity=address, source=EntitySource.MAILBOX)


@dataclass(frozen=True, slots=True)
class ExportSpec:
    """Parameters of one export request (who, what, how far back)."""

    entity_id: str
    kind: EventKind
    days_back: int


@dataclass(slots=True)
class ExportJob:
    """A remote asynchronous report; lives only for one retrieval call."""

    job_id: str
    status: JobStatus = JobStatus.PENDING
    raw_status: str | None = None
    download_url: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.status is JobStatus.COMPLETE

    @property
    def is_failed(self) -> bool:
        return self.status is JobStatus.FAILED


@dataclass(frozen=True, slots=True)
class NormalizedEvent:
    """Canonical representation of a call, text or email."""

    kind: EventKind
    id: str
    timestamp: datetime
    direction: str | None
    counterparty: str
    counterparty_canonical: str
    parties: tuple[str, ...]  # every directional identity field, raw
    payload: dict[str, Any] = field(default_factory=dict)

    def searchable_text(self, subject_only: bool = False) -> str:
        """
        Text used by the secondary filter.

        Emails contribute their subject and the visible body text, never the
        HTML markup. With subject_only, only the email subject counts.
        """
        if subject_only:
            return self.payload.get("subject", "") or ""
        if self.kind is EventKind.EMAIL:
            return f"{self.payload.get('subject', '')} {self.payload.get('text', '')}"
        if self.kind is EventKind.TEXT:
            return self.payload.get("body", "") or ""
        return ""


@dataclass(frozen=True, slots=True)
class AggregationRequest:
    """Caller parameters; identical for the lifetime of one HTTP call."""

    contact: str | None = None
    days: int = 30
    text_filter: str | None = None
    use_cache: bool = True

    @property
    def targets_email(self) -> bool:
        return bool(self.contact) and "@" in self.contact


def parse_lookback_days(raw: Any, default: int = 30) -> int:
    """Parse a lookback window; anything but a positive integer yields the default."""
    if raw is None or isinstance(raw, bool):
        return default
    try:
        days = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return days if days > 0 else default
