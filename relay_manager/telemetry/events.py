"""Event recording for station lifecycle and provider switches."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from relay_manager.core.exceptions import RelayStationError
from relay_manager.logging import get_request_id
from relay_manager.storage.database import Database
from relay_manager.storage.models import RelayEvent

logger = logging.getLogger("relay.events")

_RETENTION_DAYS = 2  # keep today + yesterday


def _events_enabled() -> bool:
    return os.getenv("EVENTS_ENABLED", "true").lower() in {"1", "true", "yes"}


def _current_retention_cutoff() -> datetime:
    now_utc = datetime.now(timezone.utc)
    start_of_today = datetime(now_utc.year, now_utc.month, now_utc.day, tzinfo=timezone.utc)
    return start_of_today - timedelta(days=_RETENTION_DAYS - 1)


class EventLog:
    """High-value events persisted beside the station tables."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def _prune(self, session) -> None:
        session.execute(delete(RelayEvent).where(RelayEvent.ts < _current_retention_cutoff()))

    def record(
        self,
        kind: str,
        level: str,
        *,
        message: str | None = None,
        station_id: str | None = None,
        provider_id: str | None = None,
        meta: Dict[str, Any] | None = None,
    ) -> None:
        if not _events_enabled():
            return

        event = RelayEvent(
            ts=datetime.now(timezone.utc),
            level=level.upper(),
            kind=kind,
            request_id=get_request_id(),
            station_id=station_id,
            provider_id=provider_id,
            message=message[:512] if message else None,
            meta=json.dumps(meta, ensure_ascii=False, default=str) if meta else None,
        )
        try:
            with self._db.session_scope() as session:
                session.add(event)
                self._prune(session)
        except RelayStationError:
            logger.exception("Failed to record event", extra={"event": "event_persist_error", "kind": kind})

    def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return retained events, newest first."""
        if not _events_enabled():
            return []

        with self._db.session_scope() as session:
            self._prune(session)
            rows = session.scalars(
                select(RelayEvent)
                .where(RelayEvent.ts >= _current_retention_cutoff())
                .order_by(RelayEvent.ts.desc(), RelayEvent.id.desc())
                .limit(limit)
            ).all()

        events: List[Dict[str, Any]] = []
        for row in rows:
            meta_value: Optional[Dict[str, Any] | str]
            if row.meta:
                try:
                    meta_value = json.loads(row.meta)
                except json.JSONDecodeError:
                    meta_value = row.meta
            else:
                meta_value = None
            events.append(
                {
                    "id": row.id,
                    "timestamp": row.ts.isoformat() if row.ts else None,
                    "level": row.level,
                    "kind": row.kind,
                    "request_id": row.request_id,
                    "station_id": row.station_id,
                    "provider_id": row.provider_id,
                    "message": row.message,
                    "meta": meta_value,
                }
            )
        return events


__all__ = ["EventLog"]
