"""
Contact identity canonicalization and matching.

Phone numbers keep their digits and a leading "+", nothing else. No country
code inference happens, so "+15551234567" and "15551234567" stay distinct.
Email addresses are trimmed and lowercased.
"""

import re

from app.models.domain.timeline_domain import NormalizedEvent

_NON_DIAL_CHARS = re.compile(r"[^0-9+]")


def canonicalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def canonicalize_phone(value: str | int | None) -> str:
    if value is None:
        return ""
    stripped = _NON_DIAL_CHARS.sub("", str(value))
    leading_plus = stripped.startswith("+")
    digits = stripped.replace("+", "")
    if not digits:
        return ""
    return f"+{digits}" if leading_plus else digits


def canonicalize(value: str | int | None) -> str:
    """Canonical form of a phone number or email address ("" when absent)."""
    if value is None:
        return ""
    text = str(value)
    if "@" in text:
        return canonicalize_email(text)
    return canonicalize_phone(text)


def matches(event: NormalizedEvent, target: str | None) -> bool:
    """True if any identity on the event canonicalizes to the target."""
    canonical_target = canonicalize(target)
    if not canonical_target:
        return False
    return any(canonicalize(party) == canonical_target for party in event.parties)
