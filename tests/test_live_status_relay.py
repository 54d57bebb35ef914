"""Tests for the realtime candidate event feed."""

import asyncio

import pytest

from app.exceptions import PersistenceError
from app.repositories.event_repository import EventRepository
from app.models.pipeline import StageEvent
from app.services.live_status_relay import CandidateEventFeed, LiveStatusRelay, normalize_change

from tests.conftest import SCREENING_ID, TECHNICAL_ID


def record(event_id, status, updated_at, candidate_id="cand-1", stage_id=SCREENING_ID):
    return {
        "id": event_id,
        "interview_candidate_id": candidate_id,
        "stage_id": stage_id,
        "status": status,
        "created_at": "2026-01-05T09:00:00+00:00",
        "updated_at": updated_at,
    }


@pytest.fixture
def relay(fake_db):
    return LiveStatusRelay(fake_db, EventRepository(fake_db), indicator_seconds=0.05)


@pytest.fixture
def existing_event(fake_db, candidate):
    fake_db.seed("interview_events", record("e1", "pending", "2026-01-05T10:00:00+00:00"))
    return "e1"


def test_normalize_change_accepts_both_payload_shapes():
    nested = {"data": {"type": "UPDATE", "record": {"id": "a"}, "old_record": {"id": "a"}}}
    flat = {"eventType": "DELETE", "new": {}, "old": {"id": "b"}}

    assert normalize_change(nested) == ("UPDATE", {"id": "a"}, {"id": "a"})
    assert normalize_change(flat) == ("DELETE", None, {"id": "b"})


async def test_subscribe_loads_events_and_opens_filtered_channel(fake_db, relay, existing_event):
    feed = await relay.subscribe("cand-1")

    assert [event.id for event in feed.events] == ["e1"]
    [channel] = fake_db.channels
    [binding] = channel.bindings
    assert binding["table"] == "interview_events"
    assert binding["filter"] == "interview_candidate_id=eq.cand-1"
    assert channel.subscribed


async def test_insert_update_and_delete_notifications(fake_db, relay, existing_event):
    snapshots = []
    feed = await relay.subscribe("cand-1", lambda current: snapshots.append(len(current.events)))
    channel = fake_db.channels[0]

    channel.emit("INSERT", record("e2", "pending", "2026-01-05T11:00:00+00:00", stage_id=TECHNICAL_ID))
    assert {event.id for event in feed.events} == {"e1", "e2"}

    channel.emit("UPDATE", record("e2", "scheduled", "2026-01-05T11:05:00+00:00", stage_id=TECHNICAL_ID))
    assert feed.get("e2").status == "scheduled"

    channel.emit("DELETE", old_record={"id": "e1"})
    assert [event.id for event in feed.events] == ["e2"]

    assert snapshots == [1, 2, 2, 1]


async def test_out_of_order_update_is_ignored(fake_db, relay, existing_event):
    feed = await relay.subscribe("cand-1")
    channel = fake_db.channels[0]

    channel.emit("UPDATE", record("e1", "passed", "2026-01-05T12:00:00+00:00"))
    channel.emit("UPDATE", record("e1", "scheduled", "2026-01-05T11:00:00+00:00"))

    assert feed.get("e1").status == "passed"


async def test_events_of_other_candidates_are_ignored(fake_db, relay, existing_event):
    feed = await relay.subscribe("cand-1")

    fake_db.channels[0].emit("INSERT", record("x1", "pending", "2026-01-05T12:00:00+00:00", candidate_id="cand-9"))

    assert feed.get("x1") is None


async def test_in_progress_update_raises_transient_live_indicator(fake_db, relay, existing_event):
    feed = await relay.subscribe("cand-1")

    fake_db.channels[0].emit("UPDATE", record("e1", "in_progress", "2026-01-05T12:00:00+00:00"))
    assert feed.live

    await asyncio.sleep(0.1)
    assert not feed.live


async def test_resync_after_disruption(fake_db, relay, existing_event):
    feed = await relay.subscribe("cand-1")
    channel = fake_db.channels[0]

    channel.set_state("CHANNEL_ERROR", RuntimeError("socket dropped"))
    assert feed.stale

    # Written while the channel was down; no notification arrives for it
    fake_db.seed("interview_events", record("e2", "pending", "2026-01-05T13:00:00+00:00", stage_id=TECHNICAL_ID))
    channel.set_state("SUBSCRIBED")
    await feed.pending_resync

    assert not feed.stale
    assert {event.id for event in feed.events} == {"e1", "e2"}


class GatedEventRepository:
    """Returns a fixed event list once the test opens the gate."""

    def __init__(self, rows):
        self.rows = rows
        self.gate = asyncio.Event()

    async def get_by_candidate(self, candidate_id):
        await self.gate.wait()
        return [StageEvent(**row) for row in self.rows]


async def test_insert_during_resync_is_kept():
    repository = GatedEventRepository([])
    feed = CandidateEventFeed("cand-1", repository)

    resync = asyncio.ensure_future(feed.resync())
    await asyncio.sleep(0)
    feed.handle_change({"data": {"type": "INSERT", "record": record("e9", "pending", "2026-01-05T14:00:00+00:00")}})
    assert feed.get("e9") is not None

    repository.gate.set()
    await resync

    assert [event.id for event in feed.events] == ["e9"]


async def test_delete_during_resync_stays_deleted():
    row = record("e1", "pending", "2026-01-05T10:00:00+00:00")
    repository = GatedEventRepository([row])
    feed = CandidateEventFeed("cand-1", repository)
    feed.apply_upsert(StageEvent(**row))

    resync = asyncio.ensure_future(feed.resync())
    await asyncio.sleep(0)
    feed.handle_change({"data": {"type": "DELETE", "old_record": {"id": "e1"}}})

    repository.gate.set()
    await resync

    assert feed.events == []


async def test_subscriptions_are_reference_counted_per_view(fake_db, relay, candidate):
    first = await relay.subscribe("cand-1", view_id="board")
    second = await relay.subscribe("cand-1", view_id="board")
    other_view = await relay.subscribe("cand-1", view_id="drawer")

    assert first is second
    assert other_view is not first
    assert relay.open_channels == 2

    await relay.unsubscribe(first)
    assert relay.open_channels == 2

    await relay.unsubscribe(second)
    assert relay.open_channels == 1
    assert len(fake_db.channels) == 1

    await relay.close()
    assert relay.open_channels == 0
    assert fake_db.channels == []


async def test_failed_initial_load_removes_channel(fake_db, relay, candidate):
    fake_db.fail("interview_events", "select")

    with pytest.raises(PersistenceError):
        await relay.subscribe("cand-1")

    assert fake_db.channels == []
    assert relay.open_channels == 0
