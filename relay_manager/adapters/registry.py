"""Adapter selection by station dialect."""

from __future__ import annotations

import logging

from relay_manager.core.config import AppConfig, load_config
from relay_manager.storage.schemas import Station, StationAdapterKind

from .base import StationAdapter
from .newapi import NewApiAdapter

logger = logging.getLogger("relay.adapters")


class AdapterRegistry:
    """Maps a station's declared dialect to a client instance.

    The mapping is total. ``custom`` stations, and any dialect without its own
    entry, are served by ``default`` (NewAPI): custom dialects are not yet
    differentiated.
    """

    _adapter_map: dict[StationAdapterKind, type[StationAdapter]] = {
        StationAdapterKind.NEWAPI: NewApiAdapter,
        StationAdapterKind.ONEAPI: NewApiAdapter,
    }
    default: type[StationAdapter] = NewApiAdapter

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or load_config()
        self._instances: dict[type[StationAdapter], StationAdapter] = {}

    def adapter_class(self, dialect: StationAdapterKind | str) -> type[StationAdapter]:
        try:
            kind = StationAdapterKind(dialect)
        except ValueError:
            kind = None
        adapter_cls = self._adapter_map.get(kind) if kind is not None else None
        if adapter_cls is None:
            logger.debug(
                "No dedicated adapter, using default",
                extra={"event": "adapter_fallback", "dialect": str(dialect)},
            )
            return self.default
        return adapter_cls

    def get_adapter(self, station: Station) -> StationAdapter:
        adapter_cls = self.adapter_class(station.adapter)
        if adapter_cls not in self._instances:
            self._instances[adapter_cls] = adapter_cls(self._config)
        return self._instances[adapter_cls]


__all__ = ["AdapterRegistry"]
