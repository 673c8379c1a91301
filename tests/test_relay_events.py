from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from relay_manager.logging import reset_request_id, set_request_id
from relay_manager.storage.database import Database
from relay_manager.storage.models import RelayEvent
from relay_manager.telemetry import events
from relay_manager.telemetry.events import EventLog


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:")
    db.init_schema()
    yield db
    db.dispose()


def _add_event(database: Database, ts: datetime, kind: str = "test_event") -> None:
    with database.session_scope() as session:
        session.add(RelayEvent(ts=ts, level="INFO", kind=kind))


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def test_record_prunes_events_older_than_yesterday(database):
    now = datetime.now(timezone.utc)
    _add_event(database, now - timedelta(days=3))
    _add_event(database, now - timedelta(minutes=1))

    EventLog(database).record("station_added", "info", station_id="st-1", meta={"fields": ["name"]})

    with database.session_scope() as session:
        rows = session.scalars(select(RelayEvent).order_by(RelayEvent.ts)).all()
        kinds = [row.kind for row in rows]
        stamps = [row.ts for row in rows]

    assert kinds == ["test_event", "station_added"]
    assert all(_aware(ts) >= events._current_retention_cutoff() for ts in stamps)


def test_list_recent_newest_first_with_decoded_meta(database):
    log = EventLog(database)
    token = set_request_id("req-42")
    try:
        log.record("provider_switched", "INFO", provider_id="relay", message="Switched")
        log.record("process_termination_failed", "WARNING", meta={"run_id": 3})
    finally:
        reset_request_id(token)

    items = log.list_recent(limit=10)

    assert [item["kind"] for item in items] == ["process_termination_failed", "provider_switched"]
    assert items[0]["meta"] == {"run_id": 3}
    assert items[1]["provider_id"] == "relay"
    assert items[1]["request_id"] == "req-42"


def test_disabled_events_are_not_recorded(database, monkeypatch):
    monkeypatch.setenv("EVENTS_ENABLED", "false")
    log = EventLog(database)

    log.record("station_deleted", "INFO", station_id="st-1")

    assert log.list_recent() == []
    monkeypatch.setenv("EVENTS_ENABLED", "true")
    assert log.list_recent() == []
