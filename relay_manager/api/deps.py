"""Shared route dependencies."""

from __future__ import annotations

from fastapi import Request

from relay_manager.commands import RelayCommands


def get_commands(request: Request) -> RelayCommands:
    return request.app.state.commands
