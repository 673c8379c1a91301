"""Switching the active provider credentials for attached agent processes."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from pydantic import BaseModel, Field

from relay_manager.core.config import OFFICIAL_BASE_URL
from relay_manager.storage.schemas import Station

from .presets import PresetStore, ProviderConfig
from .settings_document import (
    API_KEY_KEY,
    AUTH_TOKEN_KEY,
    BASE_URL_KEY,
    CREDENTIAL_KEYS,
    MODEL_KEY,
    SettingsDocument,
)

logger = logging.getLogger("relay.switching")

OFFICIAL_PROVIDER = "official"
CUSTOM_PROVIDER = "custom"


@dataclass
class AgentSession:
    run_id: int
    pid: int
    session_id: str | None = None


class ProcessRegistry(Protocol):
    """The host's registry of running agent processes."""

    def list_running_sessions(self) -> list[AgentSession]: ...

    async def kill(self, run_id: int) -> bool: ...

    def kill_by_pid(self, run_id: int, pid: int) -> bool: ...


class NullProcessRegistry:
    """Registry used when no host process registry is attached."""

    def list_running_sessions(self) -> list[AgentSession]:
        return []

    async def kill(self, run_id: int) -> bool:
        return False

    def kill_by_pid(self, run_id: int, pid: int) -> bool:
        return False


class TerminationOutcome(BaseModel):
    run_id: int
    pid: int
    session_id: str | None = None
    terminated: bool
    forced: bool = False
    error: str | None = None


class SwitchResult(BaseModel):
    message: str
    terminations: list[TerminationOutcome] = Field(default_factory=list)

    @property
    def failed_terminations(self) -> list[TerminationOutcome]:
        return [outcome for outcome in self.terminations if not outcome.terminated]


class CurrentConfig(BaseModel):
    anthropic_base_url: str | None = None
    anthropic_auth_token: str | None = None
    anthropic_api_key: str | None = None
    anthropic_model: str | None = None


def _normalize_url(url: str) -> str:
    return url.rstrip("/")


class ProviderSwitchCoordinator:
    """Writes provider credentials into the settings document and restarts agents.

    After a successful rewrite every running agent session is terminated so
    none keeps working under the previous credentials. Termination problems
    are reported in the result, never raised.
    """

    def __init__(
        self,
        settings: SettingsDocument,
        processes: ProcessRegistry | None = None,
        *,
        stations: Callable[[], Iterable[Station]] | None = None,
        presets: PresetStore | None = None,
        official_base_url: str = OFFICIAL_BASE_URL,
    ) -> None:
        self._settings = settings
        self._processes = processes or NullProcessRegistry()
        self._stations = stations
        self._presets = presets
        self._official_base_url = official_base_url

    async def switch(self, config: ProviderConfig) -> SwitchResult:
        self._settings.update_env(
            {
                BASE_URL_KEY: config.base_url,
                AUTH_TOKEN_KEY: config.auth_token,
                API_KEY_KEY: config.api_key,
                MODEL_KEY: config.model,
            }
        )
        logger.info(
            "Provider switched",
            extra={"event": "provider_switched", "provider_id": config.id, "base_url": config.base_url},
        )
        terminations = await self.terminate_agent_sessions()
        label = f"{config.name} ({config.description})" if config.description else config.name
        return SwitchResult(message=f"Switched to {label}", terminations=terminations)

    async def clear(self) -> SwitchResult:
        self._settings.update_env({key: None for key in CREDENTIAL_KEYS})
        logger.info("Provider override cleared", extra={"event": "provider_cleared"})
        terminations = await self.terminate_agent_sessions()
        return SwitchResult(message="Cleared provider credentials", terminations=terminations)

    def get_current(self) -> CurrentConfig:
        """Credentials in effect: the settings document first, then the process environment."""
        env = self._settings.env()

        def lookup(key: str) -> str | None:
            value = env.get(key)
            if isinstance(value, str):
                return value
            return os.environ.get(key)

        return CurrentConfig(
            anthropic_base_url=lookup(BASE_URL_KEY),
            anthropic_auth_token=lookup(AUTH_TOKEN_KEY),
            anthropic_api_key=lookup(API_KEY_KEY),
            anthropic_model=lookup(MODEL_KEY),
        )

    @staticmethod
    def _has_auth(env: dict) -> bool:
        return any(
            isinstance(env.get(key), str) and env[key] for key in (AUTH_TOKEN_KEY, API_KEY_KEY)
        )

    def detect_current(self) -> str | None:
        env = self._settings.env()
        base_url = env.get(BASE_URL_KEY)
        if not isinstance(base_url, str) or not self._has_auth(env):
            return None

        target = _normalize_url(base_url)
        for station in self._stations() if self._stations else ():
            if _normalize_url(station.api_url) == target:
                return station.id
        for preset in self._presets.list_presets() if self._presets else ():
            if _normalize_url(preset.base_url) == target:
                return preset.id

        if target == _normalize_url(self._official_base_url):
            return OFFICIAL_PROVIDER
        return CUSTOM_PROVIDER

    def is_applied(self) -> bool:
        """True when the document overrides the official endpoint or carries credentials.

        An empty ``ANTHROPIC_BASE_URL`` is treated as absent, not as an override.
        """
        env = self._settings.env()
        base_url = env.get(BASE_URL_KEY)
        overridden_url = isinstance(base_url, str) and bool(base_url) and (
            _normalize_url(base_url) != _normalize_url(self._official_base_url)
        )
        return overridden_url or self._has_auth(env)

    async def terminate_agent_sessions(self) -> list[TerminationOutcome]:
        try:
            sessions = self._processes.list_running_sessions()
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Unable to list running agent sessions",
                extra={"event": "session_list_failed", "error_message": str(exc)},
            )
            return []

        logger.info(
            "Terminating agent sessions",
            extra={"event": "sessions_terminating", "count": len(sessions)},
        )
        return [await self._terminate(session) for session in sessions]

    async def _terminate(self, session: AgentSession) -> TerminationOutcome:
        graceful_error: str | None = None
        try:
            if await self._processes.kill(session.run_id):
                return TerminationOutcome(
                    run_id=session.run_id,
                    pid=session.pid,
                    session_id=session.session_id,
                    terminated=True,
                )
            graceful_error = "graceful termination returned false"
        except Exception as exc:  # noqa: BLE001
            graceful_error = str(exc) or exc.__class__.__name__

        logger.warning(
            "Graceful termination failed, forcing",
            extra={
                "event": "session_kill_fallback",
                "run_id": session.run_id,
                "pid": session.pid,
                "error_message": graceful_error,
            },
        )
        try:
            forced = bool(self._processes.kill_by_pid(session.run_id, session.pid))
            error = None if forced else f"{graceful_error}; forced termination returned false"
        except Exception as exc:  # noqa: BLE001
            forced = False
            error = f"{graceful_error}; forced termination failed: {exc}"

        if not forced:
            logger.error(
                "Agent session could not be terminated",
                extra={
                    "event": "session_kill_failed",
                    "run_id": session.run_id,
                    "pid": session.pid,
                    "error_message": error,
                },
            )
        return TerminationOutcome(
            run_id=session.run_id,
            pid=session.pid,
            session_id=session.session_id,
            terminated=forced,
            forced=True,
            error=error,
        )


__all__ = [
    "AgentSession",
    "CurrentConfig",
    "NullProcessRegistry",
    "ProcessRegistry",
    "ProviderSwitchCoordinator",
    "SwitchResult",
    "TerminationOutcome",
]
