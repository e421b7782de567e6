"""
Timeline assembly.

Turns per-entity event lists into either one flat feed (newest first) or a
per-entity summary. Ties on timestamp keep their input order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from app.features.comms_history.pipeline.contact_matcher import matches
from app.models.domain.timeline_domain import Entity, NormalizedEvent


@dataclass(slots=True)
class EntityTimeline:
    entity: Entity
    events: list[NormalizedEvent] = field(default_factory=list)


def sort_newest_first(events: Iterable[NormalizedEvent]) -> list[NormalizedEvent]:
    # sorted() stays stable with reverse=True
    return sorted(events, key=lambda event: event.timestamp, reverse=True)


def apply_text_filter(
    events: Iterable[NormalizedEvent], text_filter: str | None, subject_only: bool = False
) -> list[NormalizedEvent]:
    """Keep events whose subject/body (or subject alone) contains text_filter, case-insensitively."""
    needle = (text_filter or "").strip().lower()
    if not needle:
        return list(events)
    return [event for event in events if needle in event.searchable_text(subject_only).lower()]


def _select(
    events: Iterable[NormalizedEvent],
    target: str | None,
    since: datetime | None,
    text_filter: str | None,
    subject_only: bool = False,
) -> list[NormalizedEvent]:
    selected = [
        event
        for event in events
        if (since is None or event.timestamp >= since) and (not target or matches(event, target))
    ]
    return apply_text_filter(selected, text_filter, subject_only)


def assemble_grouped(
    results: Sequence[tuple[Entity, Sequence[NormalizedEvent]]],
    target: str | None = None,
    only_matching: bool = True,
    since: datetime | None = None,
    text_filter: str | None = None,
) -> list[EntityTimeline]:
    """
    Per-entity summary, each entity's events sorted newest first.

    With a target, events are restricted to matches and (when only_matching)
    entities without a single match are dropped.
    """
    grouped: list[EntityTimeline] = []
    for entity, events in results:
        selected = _select(events, target, since, text_filter)
        if target and only_matching and not selected:
            continue
        grouped.append(EntityTimeline(entity=entity, events=sort_newest_first(selected)))
    return grouped


def assemble_flat(
    results: Sequence[tuple[Entity, Sequence[NormalizedEvent]]],
    target: str | None = None,
    since: datetime | None = None,
    text_filter: str | None = None,
    subject_only: bool = False,
) -> list[NormalizedEvent]:
    """One chronological feed across all entities, newest first."""
    flattened: list[NormalizedEvent] = []
    for _entity, events in results:
        flattened.extend(_select(events, target, since, text_filter, subject_only))
    return sort_newest_first(flattened)
