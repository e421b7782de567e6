"""
Record normalization.

Maps Dialpad call rows, Dialpad text rows and Graph messages onto
NormalizedEvent. Records that cannot be normalized are dropped with a
warning; one bad row never fails the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from app.features.comms_history.pipeline.contact_matcher import canonicalize
from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import ParseError
from app.models.domain.timeline_domain import EventKind, NormalizedEvent
from app.services.html_sanitizer import html_to_text

logger = get_logger(__name__)

Sanitizer = Callable[[str], str]

# Dialpad export column names vary between export versions
_CALL_ID_KEYS = ("call_id", "id")
_CALL_TIME_KEYS = ("date_started", "start_time", "date")
_TEXT_ID_KEYS = ("message_id", "text_id", "id")
_TEXT_TIME_KEYS = ("date", "date_sent", "created_date", "timestamp")
_TEXT_BODY_KEYS = ("text", "message_body", "body")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with "T" or a space separator), strings without
    a zone marker (treated as UTC), epoch seconds/milliseconds and datetimes.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float) and not isinstance(value, bool):
        parsed = _from_epoch(float(value))
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.replace(".", "", 1).isdigit():
            parsed = _from_epoch(float(text))
        else:
            try:
                parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
            except ValueError as e:
                raise ParseError(f"Unparseable timestamp: {value!r}") from e
    else:
        raise ParseError(f"Missing timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _from_epoch(value: float) -> datetime:
    # anything past the year 5000 in seconds is really milliseconds
    seconds = value / 1000 if value > 1e11 else value
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise ParseError(f"Epoch value out of range: {value}") from e


def _first(record: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _direction(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip().lower() or None


def _duration_seconds(record: dict) -> float | None:
    raw = _first(record, ("duration_seconds", "duration"))
    scale = 1.0
    if raw is None:
        # talk_duration is reported in minutes
        raw = record.get("talk_duration")
        scale = 60.0
    if raw in (None, ""):
        return None
    try:
        return round(float(raw) * scale, 3)
    except (TypeError, ValueError):
        return None


def normalize_call(record: dict) -> NormalizedEvent:
    call_id = _first(record, _CALL_ID_KEYS)
    if call_id is None:
        raise ParseError("Call record has no id")
    external = str(record.get("external_number") or "")
    internal = str(record.get("internal_number") or "")
    return NormalizedEvent(
        kind=EventKind.CALL,
        id=str(call_id),
        timestamp=parse_timestamp(_first(record, _CALL_TIME_KEYS)),
        direction=_direction(record.get("direction")),
        counterparty=external,
        counterparty_canonical=canonicalize(external),
        parties=(external, internal),
        payload={
            "duration_seconds": _duration_seconds(record),
            "external_number": external,
            "internal_number": internal,
        },
    )


def normalize_text(record: dict) -> NormalizedEvent:
    text_id = _first(record, _TEXT_ID_KEYS)
    if text_id is None:
        raise ParseError("Text record has no id")
    from_address = str(record.get("from_phone") or record.get("from") or "")
    to_address = str(record.get("to_phone") or record.get("to") or "")
    direction = _direction(record.get("direction"))
    counterparty = to_address if direction == "outbound" else from_address
    return NormalizedEvent(
        kind=EventKind.TEXT,
        id=str(text_id),
        timestamp=parse_timestamp(_first(record, _TEXT_TIME_KEYS)),
        direction=direction,
        counterparty=counterparty,
        counterparty_canonical=canonicalize(counterparty),
        parties=(from_address, to_address),
        payload={
            "body": str(_first(record, _TEXT_BODY_KEYS) or ""),
            "from": from_address,
            "to": to_address,
        },
    )


def _address(recipient: Any) -> str:
    if not isinstance(recipient, dict):
        return ""
    return str((recipient.get("emailAddress") or {}).get("address") or "")


def normalize_email(
    message: dict,
    owner: str | None = None,
    sanitizer: Sanitizer | None = None,
) -> NormalizedEvent:
    message_id = message.get("id")
    if not message_id:
        raise ParseError("Message has no id")

    sender = _address(message.get("from"))
    recipients = [addr for addr in (_address(r) for r in message.get("toRecipients") or []) if addr]

    direction = None
    counterparty = sender
    if owner:
        if canonicalize(sender) == canonicalize(owner):
            direction = "outbound"
            counterparty = recipients[0] if recipients else ""
        else:
            direction = "inbound"

    content = (message.get("body") or {}).get("content") or ""
    if sanitizer is not None and content:
        content = sanitizer(content)

    return NormalizedEvent(
        kind=EventKind.EMAIL,
        id=str(message_id),
        timestamp=parse_timestamp(message.get("receivedDateTime") or message.get("sentDateTime")),
        direction=direction,
        counterparty=counterparty,
        counterparty_canonical=canonicalize(counterparty),
        parties=(sender, *recipients),
        payload={
            "subject": message.get("subject") or "",
            "content": content,
            "text": html_to_text(content),
            "from": sender,
            "to": recipients,
            "mailbox": owner,
            "web_link": message.get("webLink"),
        },
    )


def normalize_records(
    kind: EventKind,
    records: Iterable[dict],
    owner: str | None = None,
    sanitizer: Sanitizer | None = None,
) -> list[NormalizedEvent]:
    """Normalize a batch, skipping records that cannot be parsed."""
    events: list[NormalizedEvent] = []
    skipped = 0

    for record in records:
        try:
            if not isinstance(record, dict):
                raise ParseError(f"Unexpected record type {type(record).__name__}")
            if kind is EventKind.CALL:
                events.append(normalize_call(record))
            elif kind is EventKind.TEXT:
                events.append(normalize_text(record))
            else:
                events.append(normalize_email(record, owner=owner, sanitizer=sanitizer))
        except ParseError as e:
            skipped += 1
            logger.warning("Skipping malformed record", kind=kind.value, error=str(e))

    if skipped:
        logger.info("Records normalized with skips", kind=kind.value, kept=len(events), skipped=skipped)
    return events
