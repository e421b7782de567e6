from datetime import UTC, datetime, timedelta

from app.features.comms_history.pipeline.assembler import (
    apply_text_filter,
    assemble_flat,
    assemble_grouped,
    sort_newest_first,
)
from app.features.comms_history.pipeline.contact_matcher import canonicalize
from app.models.domain.timeline_domain import Entity, EventKind, NormalizedEvent

BASE = datetime(2025, 5, 1, 12, 0, tzinfo=UTC)
CONTACT = "+15551234567"


def event(event_id: str, hours: int, party: str = CONTACT, kind: EventKind = EventKind.TEXT, body: str = ""):
    return NormalizedEvent(
        kind=kind,
        id=event_id,
        timestamp=BASE + timedelta(hours=hours),
        direction="inbound",
        counterparty=party,
        counterparty_canonical=canonicalize(party),
        parties=(party, "+15550001111"),
        payload={"body": body},
    )


ALICE = Entity(id="u1", name="Alice", identity="alice@example.com")
BOB = Entity(id="u2", name="Bob", identity="bob@example.com")
CAROL = Entity(id="u3", name="Carol", identity="carol@example.com")


def test_sort_is_descending_and_stable():
    first_tie = event("tie-a", 5)
    second_tie = event("tie-b", 5)
    events = [event("old", 1), first_tie, event("new", 9), second_tie]

    ordered = sort_newest_first(events)

    assert [e.id for e in ordered] == ["new", "tie-a", "tie-b", "old"]


def test_grouped_keeps_only_matching_entities():
    results = [
        (ALICE, [event("a1", 1), event("a2", 3), event("a3", 2, party="+19998887777")]),
        (BOB, []),
        (CAROL, [event("c1", 4, party="+1 (555) 123-4567")]),
    ]

    timelines = assemble_grouped(results, target=CONTACT)

    assert [t.entity.id for t in timelines] == ["u1", "u3"]
    assert [e.id for e in timelines[0].events] == ["a2", "a1"]
    assert [e.id for e in timelines[1].events] == ["c1"]


def test_grouped_without_target_keeps_everyone():
    results = [(ALICE, [event("a1", 1), event("a2", 3)]), (BOB, [])]

    timelines = assemble_grouped(results)

    assert [t.entity.id for t in timelines] == ["u1", "u2"]
    assert [e.id for e in timelines[0].events] == ["a2", "a1"]
    assert timelines[1].events == []


def test_grouped_can_keep_empty_entities_for_target():
    results = [(ALICE, [event("a1", 1)]), (BOB, [event("b1", 2, party="+19998887777")])]

    timelines = assemble_grouped(results, target=CONTACT, only_matching=False)

    assert [t.entity.id for t in timelines] == ["u1", "u2"]
    assert timelines[1].events == []


def test_flat_merges_across_entities():
    results = [
        (ALICE, [event("a1", 1), event("a2", 6)]),
        (CAROL, [event("c1", 3), event("c2", 2, party="+19998887777")]),
    ]

    flat = assemble_flat(results, target=CONTACT)

    assert [e.id for e in flat] == ["a2", "c1", "a1"]
    assert all(flat[i].timestamp >= flat[i + 1].timestamp for i in range(len(flat) - 1))


def test_window_start_excludes_older_events():
    results = [(ALICE, [event("a1", 1), event("a2", 10)])]

    flat = assemble_flat(results, since=BASE + timedelta(hours=5))

    assert [e.id for e in flat] == ["a2"]


def test_text_filter_is_case_insensitive():
    events = [event("t1", 1, body="Invoice attached"), event("t2", 2, body="see you"), event("c1", 3, kind=EventKind.CALL)]

    assert [e.id for e in apply_text_filter(events, "INVOICE")] == ["t1"]
    assert len(apply_text_filter(events, "  ")) == 3


def email(event_id: str, hours: int, subject: str, text: str) -> NormalizedEvent:
    return NormalizedEvent(
        kind=EventKind.EMAIL,
        id=event_id,
        timestamp=BASE + timedelta(hours=hours),
        direction="inbound",
        counterparty="bob@example.com",
        counterparty_canonical="bob@example.com",
        parties=("bob@example.com",),
        payload={"subject": subject, "content": f"<p>{text}</p>", "text": text},
    )


def test_subject_only_filter_ignores_body():
    events = [email("e1", 1, "Lunch plans", "see you"), email("e2", 2, "See you at lunch", "ok")]

    assert [e.id for e in apply_text_filter(events, "see you", subject_only=True)] == ["e2"]
    assert [e.id for e in apply_text_filter(events, "see you")] == ["e1", "e2"]


def test_body_filter_does_not_match_markup():
    events = [email("e1", 1, "Lunch", "see you")]

    assert apply_text_filter(events, "<p>") == []
    assert apply_text_filter(events, "p>") == []


def test_flat_subject_only():
    results = [(BOB, [email("e1", 1, "Lunch plans", "see you"), email("e2", 3, "Quote", "see you soon")])]

    assert assemble_flat(results, text_filter="see you", subject_only=True) == []
