"""Recent telemetry events."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from relay_manager.api.deps import get_commands
from relay_manager.commands import RelayCommands

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("")
async def list_events(
    commands: Annotated[RelayCommands, Depends(get_commands)],
    limit: int = 25,
) -> dict:
    return {"events": await commands.list_events(limit)}
