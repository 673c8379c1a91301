"""FastAPI application exposing the relay manager commands."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from relay_manager.adapters.registry import AdapterRegistry
from relay_manager.api import events, provider, stations
from relay_manager.commands import CommandError, RelayCommands
from relay_manager.core.config import AppConfig, load_config
from relay_manager.core.exceptions import StorageError
from relay_manager.logging import configure_logging, get_request_id
from relay_manager.middleware.request_context import RequestContextMiddleware
from relay_manager.storage.database import Database
from relay_manager.storage.stations import StationStore
from relay_manager.switching.coordinator import ProcessRegistry, ProviderSwitchCoordinator
from relay_manager.switching.presets import PresetStore
from relay_manager.switching.settings_document import SettingsDocument
from relay_manager.telemetry.events import EventLog

logger = logging.getLogger("relay.app")


def build_commands(
    config: AppConfig,
    database: Database | None,
    processes: ProcessRegistry | None = None,
) -> RelayCommands:
    """Wire the command façade; ``database`` is ``None`` when it failed to open."""
    store = StationStore(database) if database is not None else None
    event_log = EventLog(database) if database is not None else None
    presets = PresetStore(config.presets_path)
    coordinator = ProviderSwitchCoordinator(
        SettingsDocument(config.settings_path),
        processes,
        stations=store.list_stations if store is not None else None,
        presets=presets,
        official_base_url=config.official_base_url,
    )
    return RelayCommands(store, AdapterRegistry(config), coordinator, presets, event_log)


def _open_database(config: AppConfig) -> Database | None:
    try:
        database = Database(config.database_url)
        database.init_schema()
    except (StorageError, SQLAlchemyError, OSError) as exc:
        logger.exception(
            "Station database unavailable",
            extra={"event": "database_init_failed", "error_message": str(exc)},
        )
        return None
    return database


def create_app(
    config: AppConfig | None = None,
    processes: ProcessRegistry | None = None,
) -> FastAPI:
    configure_logging()
    config = config or load_config()

    app = FastAPI(
        title="Relay Station Manager",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url=None,
    )
    app.include_router(stations.router)
    app.include_router(provider.router)
    app.include_router(events.router)
    app.add_middleware(RequestContextMiddleware)

    database = _open_database(config)
    app.state.database = database
    app.state.commands = build_commands(config, database, processes)

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        if app.state.database is not None:
            app.state.database.dispose()

    @app.exception_handler(CommandError)
    async def command_error_handler(request: Request, exc: CommandError) -> JSONResponse:
        return JSONResponse(
            status_code=404 if exc.not_found else 400,
            content={"detail": exc.message},
        )

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error",
            extra={"event": "request_error", "path": request.url.path, "request_id": get_request_id()},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app
