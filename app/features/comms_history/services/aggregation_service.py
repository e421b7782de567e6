"""
Communication history aggregation service.

Composes the pipeline per request: list entities, fan out per-entity
retrieval (Dialpad exports or Graph mail), normalize, match and assemble.
Per-entity failures shrink the result; only listing failures are fatal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from app.features.comms_history.pipeline.assembler import (
    EntityTimeline,
    assemble_flat,
    assemble_grouped,
)
from app.features.comms_history.pipeline.contact_matcher import matches
from app.features.comms_history.pipeline.fan_out import run_bounded
from app.features.comms_history.pipeline.normalizer import Sanitizer, normalize_records
from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import CommsHistoryError, FatalRequestError, RemoteApiError
from app.models.domain.timeline_domain import (
    AggregationRequest,
    Entity,
    EntitySource,
    EventKind,
    NormalizedEvent,
)
from app.services.dialpad_service import DialpadService
from app.services.graph_mail_service import GraphMailService
from app.services.html_sanitizer import strip_quoted_content

logger = get_logger(__name__)

EntityEvents = tuple[Entity, list[NormalizedEvent]]


class AggregationPipeline:
    def __init__(
        self,
        dialpad: DialpadService,
        graph: GraphMailService | None = None,
        mailboxes: Sequence[str] = (),
        concurrency: int | None = 5,
        sanitizer: Sanitizer = strip_quoted_content,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.dialpad = dialpad
        self.graph = graph
        self.mailboxes = list(mailboxes)
        self.concurrency = concurrency
        self.sanitizer = sanitizer
        self._clock = clock

    async def close(self) -> None:
        await self.dialpad.close()
        if self.graph is not None:
            await self.graph.close()

    def _since(self, request: AggregationRequest) -> datetime:
        return self._clock() - timedelta(days=request.days)

    # ------------------------------------------------------------------
    # Entity listing and per-entity retrieval
    # ------------------------------------------------------------------

    async def _list_entities(self, include_mailboxes: bool) -> list[Entity]:
        try:
            entities = await self.dialpad.list_entities()
        except RemoteApiError as e:
            logger.error(
                "Directory listing failed",
                error=str(e),
                status_code=e.status_code,
                operation=e.operation,
            )
            raise FatalRequestError(
                f"Failed to list users: {e}", operation="list_entities", status_code=502
            ) from e
        except CommsHistoryError as e:
            raise FatalRequestError(f"Failed to list users: {e}", operation="list_entities") from e

        if include_mailboxes:
            entities.extend(Entity.from_mailbox(mailbox) for mailbox in self.mailboxes)
        return entities

    def _wants_mailboxes(self, request: AggregationRequest) -> bool:
        if self.graph is None or not self.mailboxes:
            return False
        # a phone target can never match an email record
        return not request.contact or request.targets_email

    async def _fetch_dialpad_events(self, entity: Entity, request: AggregationRequest) -> list[NormalizedEvent]:
        calls, texts = await asyncio.gather(
            self.dialpad.fetch_records(entity.id, EventKind.CALL, request.days, request.use_cache),
            self.dialpad.fetch_records(entity.id, EventKind.TEXT, request.days, request.use_cache),
            return_exceptions=True,
        )
        # both exports settle before the entity is failed
        for outcome in (calls, texts):
            if isinstance(outcome, BaseException):
                raise outcome
        return normalize_records(EventKind.CALL, calls) + normalize_records(EventKind.TEXT, texts)

    async def _fetch_mailbox_events(self, entity: Entity, request: AggregationRequest) -> list[NormalizedEvent]:
        if request.targets_email:
            messages = await self.graph.search_messages(entity.identity, request.contact)
        else:
            messages = await self.graph.list_mailbox_messages(entity.identity, self._since(request))
        return normalize_records(
            EventKind.EMAIL, messages, owner=entity.identity, sanitizer=self.sanitizer
        )

    async def _collect(self, entities: list[Entity], request: AggregationRequest) -> list[EntityEvents]:
        async def fetch(entity: Entity) -> EntityEvents:
            if entity.source is EntitySource.MAILBOX:
                events = await self._fetch_mailbox_events(entity, request)
            else:
                events = await self._fetch_dialpad_events(entity, request)
            return entity, events

        result = await run_bounded(
            entities,
            fetch,
            concurrency=self.concurrency,
            label="entity_history",
            describe=lambda entity: entity.id,
        )
        return result.successes

    # ------------------------------------------------------------------
    # Produced views
    # ------------------------------------------------------------------

    async def aggregate(self, request: AggregationRequest) -> list[EntityTimeline]:
        """Every entity with its full history in the window."""
        entities = await self._list_entities(self._wants_mailboxes(request))
        results = await self._collect(entities, request)
        return assemble_grouped(
            results,
            since=self._since(request),
            text_filter=request.text_filter,
        )

    async def aggregate_for_contact(self, request: AggregationRequest) -> list[EntityTimeline]:
        """Only entities that interacted with the contact, with matching events only."""
        if not request.contact:
            raise ValueError("contact is required")
        entities = await self._list_entities(self._wants_mailboxes(request))
        results = await self._collect(entities, request)
        timelines = assemble_grouped(
            results,
            target=request.contact,
            only_matching=True,
            since=self._since(request),
            text_filter=request.text_filter,
        )
        logger.info(
            "Contact aggregation complete",
            entities_queried=len(entities),
            entities_fetched=len(results),
            entities_matched=len(timelines),
        )
        return timelines

    async def build_timeline(self, request: AggregationRequest) -> list[NormalizedEvent]:
        """One flat conversation view with the contact across all entities."""
        if not request.contact:
            raise ValueError("contact is required")
        entities = await self._list_entities(self._wants_mailboxes(request))
        results = await self._collect(entities, request)
        return assemble_flat(
            results,
            target=request.contact,
            since=self._since(request),
            text_filter=request.text_filter,
        )

    async def email_history(self, request: AggregationRequest) -> list[NormalizedEvent]:
        """Messages with an address across the configured mailboxes, newest first."""
        if self.graph is None:
            raise FatalRequestError("Mail search requires a Graph access token", operation="email_history")
        if not request.targets_email:
            raise ValueError("an email address is required")

        async def search(mailbox: str) -> EntityEvents:
            messages = await self.graph.search_messages(mailbox, request.contact, request.text_filter)
            entity = Entity.from_mailbox(mailbox)
            events = normalize_records(EventKind.EMAIL, messages, owner=mailbox, sanitizer=self.sanitizer)
            return entity, events

        result = await run_bounded(self.mailboxes, search, concurrency=self.concurrency, label="mailbox_search")
        return assemble_flat(result.successes, text_filter=request.text_filter, subject_only=True)

    async def recent_email_history(self, request: AggregationRequest) -> list[NormalizedEvent]:
        """
        Client-side filtered view of the caller's inbox and sent items.

        Used when mailbox search is unavailable; folder errors are fatal here
        because there is no other source to fall back on.
        """
        if self.graph is None:
            raise FatalRequestError("Mail listing requires a Graph access token", operation="recent_email")
        if not request.targets_email:
            raise ValueError("an email address is required")

        try:
            messages = await self.graph.list_recent()
        except CommsHistoryError as e:
            raise FatalRequestError(f"Failed to load messages: {e}", operation="recent_email", status_code=502) from e

        events = normalize_records(EventKind.EMAIL, messages, sanitizer=self.sanitizer)
        matching = [event for event in events if matches(event, request.contact)]
        return assemble_flat(
            [(Entity.from_mailbox("me"), matching)], text_filter=request.text_filter, subject_only=True
        )

    async def get_transcript(self, call_id: str) -> dict:
        return await self.dialpad.get_transcript(call_id)
