"""Station management routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from relay_manager.adapters.base import (
    ConnectionTestResult,
    CreateTokenRequest,
    LogPage,
    StationInfo,
    UpdateTokenRequest,
    UserInfo,
)
from relay_manager.api.deps import get_commands
from relay_manager.commands import RelayCommands
from relay_manager.storage.schemas import (
    CreateStationRequest,
    Station,
    StationPatch,
    StationToken,
)

router = APIRouter(prefix="/api/stations", tags=["stations"])

Commands = Annotated[RelayCommands, Depends(get_commands)]


@router.get("")
async def list_stations(commands: Commands) -> list[Station]:
    return await commands.list_stations()


@router.post("", status_code=201)
async def add_station(request: CreateStationRequest, commands: Commands) -> Station:
    return await commands.add_station(request)


@router.get("/{station_id}")
async def get_station(station_id: str, commands: Commands) -> Station:
    station = await commands.get_station(station_id)
    if station is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return station


@router.patch("/{station_id}")
async def update_station(station_id: str, updates: StationPatch, commands: Commands) -> Station:
    return await commands.update_station(station_id, updates)


@router.delete("/{station_id}")
async def delete_station(station_id: str, commands: Commands) -> dict:
    return {"message": await commands.delete_station(station_id)}


@router.get("/{station_id}/info")
async def get_station_info(station_id: str, commands: Commands) -> StationInfo:
    return await commands.get_station_info(station_id)


@router.get("/{station_id}/user")
async def get_user_info(station_id: str, commands: Commands, user_id: str = "") -> UserInfo:
    return await commands.get_token_user_info(station_id, user_id)


@router.get("/{station_id}/logs")
async def get_logs(
    station_id: str,
    commands: Commands,
    page: int | None = None,
    page_size: int | None = None,
) -> LogPage:
    return await commands.get_station_logs(station_id, page, page_size)


@router.post("/{station_id}/test")
async def test_connection(station_id: str, commands: Commands) -> ConnectionTestResult:
    return await commands.test_station_connection(station_id)


@router.get("/{station_id}/tokens")
async def list_tokens(
    station_id: str,
    commands: Commands,
    page: int | None = None,
    size: int | None = None,
) -> list[StationToken]:
    return await commands.list_station_tokens(station_id, page, size)


@router.post("/{station_id}/tokens", status_code=201)
async def add_token(
    station_id: str, request: CreateTokenRequest, commands: Commands
) -> StationToken:
    return await commands.add_station_token(station_id, request)


@router.put("/{station_id}/tokens/{token_id}")
async def update_token(
    station_id: str, token_id: str, request: UpdateTokenRequest, commands: Commands
) -> StationToken:
    if str(request.id) != token_id:
        raise HTTPException(status_code=400, detail="Token id does not match the path")
    return await commands.update_station_token(station_id, token_id, request)


@router.delete("/{station_id}/tokens/{token_id}")
async def delete_token(station_id: str, token_id: str, commands: Commands) -> dict:
    return {"message": await commands.delete_station_token(station_id, token_id)}
