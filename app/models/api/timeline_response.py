# app/models/api/timeline_response.py
"""
Communication history API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.features.comms_history.pipeline.assembler import EntityTimeline
from app.models.domain.timeline_domain import NormalizedEvent


class EventResponse(BaseModel):
    """One call, text or email in a timeline."""

    kind: str = Field(..., description="call, text or email")
    id: str = Field(..., description="Source record ID")
    timestamp: datetime = Field(..., description="When the interaction happened (UTC)")
    direction: str | None = Field(None, description="inbound or outbound, when known")
    counterparty: str = Field(default="", description="Other party as reported by the source")
    counterparty_canonical: str = Field(default="", description="Canonical form of the other party")
    payload: dict[str, Any] = Field(default_factory=dict, description="Kind-specific content")

    @classmethod
    def from_domain(cls, event: NormalizedEvent) -> "EventResponse":
        return cls(
            kind=event.kind.value,
            id=event.id,
            timestamp=event.timestamp,
            direction=event.direction,
            counterparty=event.counterparty,
            counterparty_canonical=event.counterparty_canonical,
            payload=dict(event.payload),
        )


class EntityTimelineResponse(BaseModel):
    """A user or mailbox with its events."""

    id: str = Field(..., description="Entity ID")
    name: str = Field(default="", description="Display name")
    identity: str = Field(default="", description="Email address or extension")
    source: str = Field(..., description="dialpad_user or mailbox")
    events: list[EventResponse] = Field(default_factory=list, description="Events, newest first")

    @classmethod
    def from_domain(cls, timeline: EntityTimeline) -> "EntityTimelineResponse":
        return cls(
            id=timeline.entity.id,
            name=timeline.entity.name,
            identity=timeline.entity.identity,
            source=timeline.entity.source.value,
            events=[EventResponse.from_domain(event) for event in timeline.events],
        )


class AggregateResponse(BaseModel):
    """Per-entity summary."""

    entities: list[EntityTimelineResponse] = Field(..., description="Entities with their events")


class TimelineResponse(BaseModel):
    """Flat conversation view."""

    events: list[EventResponse] = Field(..., description="Events across all entities, newest first")
    total_count: int = Field(..., description="Number of events")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="What went wrong")
