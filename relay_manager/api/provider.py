"""Active provider switching and preset routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from relay_manager.api.deps import get_commands
from relay_manager.commands import RelayCommands
from relay_manager.switching.coordinator import CurrentConfig, SwitchResult
from relay_manager.switching.presets import ProviderConfig

router = APIRouter(prefix="/api/provider", tags=["provider"])

Commands = Annotated[RelayCommands, Depends(get_commands)]


@router.get("/presets")
async def list_presets(commands: Commands) -> list[ProviderConfig]:
    return await commands.list_provider_presets()


@router.get("/presets/{preset_id}")
async def get_preset(preset_id: str, commands: Commands) -> ProviderConfig:
    return await commands.get_provider_preset(preset_id)


@router.post("/presets", status_code=201)
async def add_preset(preset: ProviderConfig, commands: Commands) -> dict:
    return {"message": await commands.add_provider_preset(preset)}


@router.put("/presets/{preset_id}")
async def update_preset(preset_id: str, preset: ProviderConfig, commands: Commands) -> dict:
    if preset.id != preset_id:
        raise HTTPException(status_code=400, detail="Preset id does not match the path")
    return {"message": await commands.update_provider_preset(preset)}


@router.delete("/presets/{preset_id}")
async def delete_preset(preset_id: str, commands: Commands) -> dict:
    return {"message": await commands.delete_provider_preset(preset_id)}


@router.get("/current")
async def current_provider(commands: Commands) -> CurrentConfig:
    return await commands.get_current_provider()


@router.post("/switch")
async def switch_provider(config: ProviderConfig, commands: Commands) -> SwitchResult:
    return await commands.switch_provider(config)


@router.post("/clear")
async def clear_provider(commands: Commands) -> SwitchResult:
    return await commands.clear_provider()


@router.get("/detect")
async def detect_provider(commands: Commands) -> dict:
    return {"provider_id": await commands.detect_current_provider()}


@router.get("/applied")
async def provider_applied(commands: Commands) -> dict:
    return {"applied": await commands.is_provider_applied()}
