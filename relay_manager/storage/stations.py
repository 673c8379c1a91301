"""Durable CRUD for relay stations and the tokens they own."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, TypeVar

from pydantic import ValidationError
from sqlalchemy import delete, func, select, update

from relay_manager.core.exceptions import StorageError

from .database import Database
from .models import RelayStationRow, RelayStationTokenRow
from .schemas import (
    AuthMethod,
    Station,
    StationAdapterKind,
    StationPatch,
    StationToken,
    TokenPatch,
)

logger = logging.getLogger("relay.storage.stations")

_E = TypeVar("_E", StationAdapterKind, AuthMethod)


def _encode_map(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Unable to serialize extension map: {exc}") from exc


def _decode_map(serialized: Any) -> dict[str, Any] | None:
    if not serialized or not isinstance(serialized, str):
        return None
    try:
        decoded = json.loads(serialized)
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable extension map", extra={"event": "row_degraded"})
        return None
    return decoded if isinstance(decoded, dict) else None


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _optional_int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _decode_enum(enum_cls: type[_E], raw: str | None, default: _E) -> _E:
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def _row_to_station(row: RelayStationRow) -> Station:
    try:
        return Station(
            id=row.id,
            name=row.name,
            description=_optional_str(row.description),
            api_url=row.api_url,
            adapter=_decode_enum(StationAdapterKind, row.adapter, StationAdapterKind.NEWAPI),
            auth_method=_decode_enum(AuthMethod, row.auth_method, AuthMethod.BEARER_TOKEN),
            system_token=row.system_token,
            user_id=_optional_str(row.user_id),
            adapter_config=_decode_map(row.adapter_config),
            enabled=bool(row.enabled),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
    except ValidationError as exc:
        raise StorageError(f"Corrupt station row {row.id!r}: {exc}") from exc


def _row_to_token(row: RelayStationTokenRow) -> StationToken:
    try:
        return StationToken(
            id=row.id,
            station_id=row.station_id,
            name=row.name,
            token=row.token,
            user_id=_optional_str(row.user_id),
            enabled=bool(row.enabled),
            expires_at=_optional_int(row.expires_at),
            metadata=_decode_map(row.metadata_json),
            created_at=row.created_at,
        )
    except ValidationError as exc:
        raise StorageError(f"Corrupt token row {row.id!r}: {exc}") from exc


class StationStore:
    """Station and token persistence over a shared :class:`Database`."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # -- stations -----------------------------------------------------------

    def list_stations(self) -> list[Station]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(RelayStationRow).order_by(RelayStationRow.created_at.desc())
            ).all()
            return [_row_to_station(row) for row in rows]

    def get_station(self, station_id: str) -> Station | None:
        with self._db.session_scope() as session:
            row = session.get(RelayStationRow, station_id)
            return _row_to_station(row) if row is not None else None

    def add_station(self, station: Station) -> None:
        row = RelayStationRow(
            id=station.id,
            name=station.name,
            description=station.description,
            api_url=station.api_url,
            adapter=station.adapter.value,
            auth_method=station.auth_method.value,
            system_token=station.system_token,
            user_id=station.user_id,
            adapter_config=_encode_map(station.adapter_config),
            enabled=int(station.enabled),
            created_at=station.created_at,
            updated_at=station.updated_at,
        )
        with self._db.session_scope() as session:
            session.add(row)

    def update_station(self, station_id: str, patch: StationPatch) -> bool:
        """Apply only the fields present in ``patch`` and bump ``updated_at``.

        Returns ``False`` when no station has that id.
        """
        values: dict[str, Any] = patch.to_values()
        if "enabled" in values:
            values["enabled"] = int(values["enabled"])
        values["updated_at"] = func.max(RelayStationRow.updated_at, int(time.time()))

        with self._db.session_scope() as session:
            result = session.execute(
                update(RelayStationRow)
                .where(RelayStationRow.id == station_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def delete_station(self, station_id: str) -> bool:
        """Delete a station; its tokens go with it through the foreign key."""
        with self._db.session_scope() as session:
            result = session.execute(
                delete(RelayStationRow).where(RelayStationRow.id == station_id)
            )
            return result.rowcount > 0

    # -- tokens -------------------------------------------------------------

    def list_tokens(self, station_id: str) -> list[StationToken]:
        with self._db.session_scope() as session:
            rows = session.scalars(
                select(RelayStationTokenRow)
                .where(RelayStationTokenRow.station_id == station_id)
                .order_by(RelayStationTokenRow.created_at.desc())
            ).all()
            return [_row_to_token(row) for row in rows]

    def get_token(self, token_id: str) -> StationToken | None:
        with self._db.session_scope() as session:
            row = session.get(RelayStationTokenRow, token_id)
            return _row_to_token(row) if row is not None else None

    def add_token(self, token: StationToken) -> None:
        row = RelayStationTokenRow(
            id=token.id,
            station_id=token.station_id,
            name=token.name,
            token=token.token,
            user_id=token.user_id,
            enabled=int(token.enabled),
            expires_at=token.expires_at,
            metadata_json=_encode_map(token.metadata),
            created_at=token.created_at,
        )
        with self._db.session_scope() as session:
            session.add(row)

    def update_token(self, token_id: str, patch: TokenPatch) -> bool:
        values: dict[str, Any] = patch.to_values()
        if not values:
            return self.get_token(token_id) is not None
        if "enabled" in values:
            values["enabled"] = int(values["enabled"])

        with self._db.session_scope() as session:
            result = session.execute(
                update(RelayStationTokenRow)
                .where(RelayStationTokenRow.id == token_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def delete_token(self, token_id: str) -> bool:
        with self._db.session_scope() as session:
            result = session.execute(
                delete(RelayStationTokenRow).where(RelayStationTokenRow.id == token_id)
            )
            return result.rowcount > 0


__all__ = ["StationStore"]
