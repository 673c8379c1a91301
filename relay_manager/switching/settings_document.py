"""Read-modify-write access to the active-credential settings document."""

from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
import threading
from typing import Any, Mapping

from relay_manager.core.exceptions import SettingsDocumentError

logger = logging.getLogger("relay.switching.settings")

BASE_URL_KEY = "ANTHROPIC_BASE_URL"
AUTH_TOKEN_KEY = "ANTHROPIC_AUTH_TOKEN"
API_KEY_KEY = "ANTHROPIC_API_KEY"
MODEL_KEY = "ANTHROPIC_MODEL"

CREDENTIAL_KEYS = (BASE_URL_KEY, AUTH_TOKEN_KEY, API_KEY_KEY, MODEL_KEY)


def write_json_atomic(path: pathlib.Path, document: Any) -> None:
    """Replace ``path`` with ``document`` serialized as JSON, or leave it untouched.

    Raises :class:`OSError` on failure; callers translate it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(document, indent=2, ensure_ascii=False)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        pathlib.Path(tmp_name).unlink(missing_ok=True)
        raise


class SettingsDocument:
    """JSON settings file whose ``env`` map carries the active credentials.

    Only ``env`` entries named in an update are touched; every other key at
    any level is written back exactly as it was read.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SettingsDocumentError(f"Failed to read settings file: {exc}") from exc
        if not content.strip():
            return {}
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SettingsDocumentError(f"Failed to parse settings file: {exc}") from exc
        if not isinstance(document, dict):
            raise SettingsDocumentError("Failed to parse settings file: top level is not an object")
        return document

    def env(self) -> dict[str, Any]:
        env = self.read().get("env")
        return env if isinstance(env, dict) else {}

    def get_env(self, key: str) -> str | None:
        value = self.env().get(key)
        return value if isinstance(value, str) else None

    def update_env(self, changes: Mapping[str, str | None]) -> dict[str, Any]:
        """Apply all ``changes`` in one write; ``None`` removes the key.

        Either every change lands or the file is left as it was.
        """
        with self._lock:
            document = self.read()
            env = document.get("env")
            if not isinstance(env, dict):
                env = {}
            for key, value in changes.items():
                if value is None:
                    env.pop(key, None)
                else:
                    env[key] = value
            document["env"] = env
            self._write(document)
            return document

    def _write(self, document: dict[str, Any]) -> None:
        try:
            write_json_atomic(self.path, document)
        except OSError as exc:
            raise SettingsDocumentError(f"Failed to write settings file: {exc}") from exc
        logger.debug("Settings document written", extra={"event": "settings_written"})


__all__ = [
    "API_KEY_KEY",
    "AUTH_TOKEN_KEY",
    "BASE_URL_KEY",
    "CREDENTIAL_KEYS",
    "MODEL_KEY",
    "SettingsDocument",
    "write_json_atomic",
]
