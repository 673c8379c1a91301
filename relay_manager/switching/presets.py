"""Saved provider presets kept in a JSON file next to the settings document."""

from __future__ import annotations

import logging
import pathlib
import threading

from pydantic import BaseModel, TypeAdapter, ValidationError

from relay_manager.core.exceptions import PresetError

from .settings_document import write_json_atomic

logger = logging.getLogger("relay.switching.presets")


class ProviderConfig(BaseModel):
    id: str
    name: str
    description: str = ""
    base_url: str
    auth_token: str | None = None
    api_key: str | None = None
    model: str | None = None


_PRESET_LIST = TypeAdapter(list[ProviderConfig])


class PresetStore:
    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> list[ProviderConfig]:
        if not self.path.exists():
            return []
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PresetError(f"Failed to read presets file: {exc}") from exc
        if not content.strip():
            return []
        try:
            return _PRESET_LIST.validate_json(content)
        except ValidationError as exc:
            raise PresetError(f"Failed to parse presets file: {exc}") from exc

    def _save(self, presets: list[ProviderConfig]) -> None:
        payload = [preset.model_dump() for preset in presets]
        try:
            write_json_atomic(self.path, payload)
        except OSError as exc:
            raise PresetError(f"Failed to write presets file: {exc}") from exc

    def list_presets(self) -> list[ProviderConfig]:
        with self._lock:
            return self._load()

    def get(self, preset_id: str) -> ProviderConfig:
        for preset in self.list_presets():
            if preset.id == preset_id:
                return preset
        raise PresetError(f"No preset with id '{preset_id}'")

    def add(self, preset: ProviderConfig) -> None:
        with self._lock:
            presets = self._load()
            if any(existing.id == preset.id for existing in presets):
                raise PresetError(f"Preset id '{preset.id}' already exists")
            presets.append(preset)
            self._save(presets)
        logger.info("Preset added", extra={"event": "preset_added", "provider_id": preset.id})

    def update(self, preset: ProviderConfig) -> None:
        with self._lock:
            presets = self._load()
            for index, existing in enumerate(presets):
                if existing.id == preset.id:
                    presets[index] = preset
                    self._save(presets)
                    return
        raise PresetError(f"No preset with id '{preset.id}'")

    def delete(self, preset_id: str) -> ProviderConfig:
        with self._lock:
            presets = self._load()
            for index, existing in enumerate(presets):
                if existing.id == preset_id:
                    removed = presets.pop(index)
                    self._save(presets)
                    return removed
        raise PresetError(f"No preset with id '{preset_id}'")


__all__ = ["PresetStore", "ProviderConfig"]
