"""Command façade consumed by the shell.

Every command either returns a plain value or raises :class:`CommandError`
whose message is ready to show to a user. No internal exception type escapes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from relay_manager.adapters.base import (
    ConnectionTestResult,
    CreateTokenRequest,
    LogPage,
    StationInfo,
    UpdateTokenRequest,
    UserInfo,
)
from relay_manager.adapters.registry import AdapterRegistry
from relay_manager.core.exceptions import (
    RelayStationError,
    StationNotFoundError,
    StoreNotInitializedError,
)
from relay_manager.logging import bind_station, unbind_station
from relay_manager.storage.schemas import (
    CreateStationRequest,
    Station,
    StationPatch,
    StationToken,
)
from relay_manager.storage.stations import StationStore
from relay_manager.switching.coordinator import (
    CurrentConfig,
    ProviderSwitchCoordinator,
    SwitchResult,
)
from relay_manager.switching.presets import PresetStore, ProviderConfig
from relay_manager.telemetry.events import EventLog

logger = logging.getLogger("relay.commands")


class CommandError(Exception):
    """User-facing failure of a command."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.not_found = not_found


@contextmanager
def _command(action: str, station_id: str | None = None) -> Iterator[None]:
    token = bind_station(station_id)
    try:
        yield
    except StationNotFoundError as exc:
        raise CommandError(exc.message, not_found=True) from exc
    except RelayStationError as exc:
        logger.warning(
            "Command failed",
            extra={"event": "command_failed", "action": action, "error_message": exc.message},
        )
        raise CommandError(f"Failed to {action}: {exc.message}") from exc
    finally:
        unbind_station(token)


class RelayCommands:
    """Entry points for station management and provider switching.

    ``store`` is ``None`` until the station database has been opened; reads
    then return empty results and writes fail.
    """

    def __init__(
        self,
        store: StationStore | None,
        adapters: AdapterRegistry,
        coordinator: ProviderSwitchCoordinator,
        presets: PresetStore,
        events: EventLog | None = None,
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._coordinator = coordinator
        self._presets = presets
        self._events = events

    def _record(self, kind: str, level: str = "INFO", **fields) -> None:
        if self._events is not None:
            self._events.record(kind, level, **fields)

    def _require_store(self) -> StationStore:
        if self._store is None:
            raise StoreNotInitializedError()
        return self._store

    def _load_station(self, station_id: str) -> Station:
        # Returns an owned copy; the store lock is already released here.
        station = self._require_store().get_station(station_id)
        if station is None:
            raise StationNotFoundError(station_id)
        return station

    # -- local stations -----------------------------------------------------

    async def list_stations(self) -> list[Station]:
        if self._store is None:
            return []
        with _command("list stations"):
            return self._store.list_stations()

    async def get_station(self, station_id: str) -> Station | None:
        if self._store is None:
            return None
        with _command("get station", station_id):
            return self._store.get_station(station_id)

    async def add_station(self, request: CreateStationRequest) -> Station:
        station = request.build()
        with _command("add station", station.id):
            self._require_store().add_station(station)
        self._record("station_added", station_id=station.id, message=station.name)
        return station

    async def update_station(self, station_id: str, patch: StationPatch) -> Station:
        with _command("update station", station_id):
            store = self._require_store()
            if not store.update_station(station_id, patch):
                raise StationNotFoundError(station_id)
            updated = self._load_station(station_id)
        self._record(
            "station_updated",
            station_id=station_id,
            meta={"fields": sorted(patch.to_values())},
        )
        return updated

    async def delete_station(self, station_id: str) -> str:
        with _command("delete station", station_id):
            if not self._require_store().delete_station(station_id):
                raise StationNotFoundError(station_id)
        self._record("station_deleted", station_id=station_id)
        return "Station deleted successfully"

    # -- remote station operations -----------------------------------------

    async def get_station_info(self, station_id: str) -> StationInfo:
        with _command("get station info", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).get_station_info(station)

    async def get_token_user_info(self, station_id: str, user_id: str = "") -> UserInfo:
        with _command("get user info", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).get_user_info(station, user_id)

    async def get_station_logs(
        self, station_id: str, page: int | None = None, page_size: int | None = None
    ) -> LogPage:
        with _command("get logs", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).get_logs(station, page, page_size)

    async def test_station_connection(self, station_id: str) -> ConnectionTestResult:
        with _command("test connection", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).test_connection(station)

    async def list_station_tokens(
        self, station_id: str, page: int | None = None, size: int | None = None
    ) -> list[StationToken]:
        if self._store is None:
            return []
        with _command("list tokens", station_id):
            station = self._store.get_station(station_id)
            if station is None:
                return []
            return await self._adapters.get_adapter(station).list_tokens(station, page, size)

    async def add_station_token(
        self, station_id: str, request: CreateTokenRequest
    ) -> StationToken:
        with _command("create token", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).create_token(station, request)

    async def update_station_token(
        self, station_id: str, token_id: str, request: UpdateTokenRequest
    ) -> StationToken:
        with _command("update token", station_id):
            station = self._load_station(station_id)
            return await self._adapters.get_adapter(station).update_token(
                station, token_id, request
            )

    async def delete_station_token(self, station_id: str, token_id: str) -> str:
        with _command("delete token", station_id):
            station = self._load_station(station_id)
            await self._adapters.get_adapter(station).delete_token(station, token_id)
        return "Token deleted successfully"

    # -- provider presets ---------------------------------------------------

    async def list_provider_presets(self) -> list[ProviderConfig]:
        with _command("load provider presets"):
            return self._presets.list_presets()

    async def get_provider_preset(self, preset_id: str) -> ProviderConfig:
        with _command("load provider preset"):
            return self._presets.get(preset_id)

    async def add_provider_preset(self, preset: ProviderConfig) -> str:
        with _command("add provider preset"):
            self._presets.add(preset)
        return f"Added provider preset: {preset.name}"

    async def update_provider_preset(self, preset: ProviderConfig) -> str:
        with _command("update provider preset"):
            self._presets.update(preset)
        return f"Updated provider preset: {preset.name}"

    async def delete_provider_preset(self, preset_id: str) -> str:
        with _command("delete provider preset"):
            removed = self._presets.delete(preset_id)
        return f"Deleted provider preset: {removed.name}"

    # -- active provider ----------------------------------------------------

    def _record_terminations(self, result: SwitchResult) -> None:
        for outcome in result.failed_terminations:
            self._record(
                "process_termination_failed",
                "WARNING",
                message=outcome.error,
                meta={"run_id": outcome.run_id, "pid": outcome.pid},
            )

    async def switch_provider(self, config: ProviderConfig) -> SwitchResult:
        with _command("switch provider"):
            result = await self._coordinator.switch(config)
        self._record(
            "provider_switched",
            provider_id=config.id,
            message=result.message,
            meta={"terminated": len(result.terminations) - len(result.failed_terminations)},
        )
        self._record_terminations(result)
        return result

    async def clear_provider(self) -> SwitchResult:
        with _command("clear provider"):
            result = await self._coordinator.clear()
        self._record("provider_cleared", message=result.message)
        self._record_terminations(result)
        return result

    async def get_current_provider(self) -> CurrentConfig:
        with _command("read current provider"):
            return self._coordinator.get_current()

    async def detect_current_provider(self) -> str | None:
        with _command("detect current provider"):
            return self._coordinator.detect_current()

    async def is_provider_applied(self) -> bool:
        with _command("check provider"):
            return self._coordinator.is_applied()

    # -- telemetry ----------------------------------------------------------

    async def list_events(self, limit: int = 25) -> list[dict]:
        if self._events is None:
            return []
        with _command("list events"):
            return self._events.list_recent(limit=max(1, min(limit, 100)))


__all__ = ["CommandError", "RelayCommands"]
