"""Station adapter interface and the normalized records it produces."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from relay_manager.core.config import AppConfig
from relay_manager.storage.schemas import Station, StationToken


class StationInfo(BaseModel):
    name: str
    announcement: str | None = None
    api_url: str
    version: str | None = None
    metadata: dict[str, Any] | None = None
    quota_per_unit: int | None = None


class UserInfo(BaseModel):
    user_id: str
    username: str | None = None
    email: str | None = None
    balance_remaining: float | None = None
    amount_used: float | None = None
    request_count: int | None = None
    status: str | None = None
    metadata: dict[str, Any] | None = None


class StationLogEntry(BaseModel):
    id: str
    timestamp: int
    level: str
    message: str
    user_id: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] | None = None
    model_name: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    quota: int | None = None
    token_name: str | None = None
    use_time: int | None = None
    is_stream: bool | None = None
    channel: int | None = None
    group: str | None = None


class LogPage(BaseModel):
    items: list[StationLogEntry] = Field(default_factory=list)
    page: int
    page_size: int
    total: int = 0


class ConnectionTestResult(BaseModel):
    success: bool
    response_time: int | None = None
    message: str
    status_code: int | None = None
    details: dict[str, Any] | None = None


class CreateTokenRequest(BaseModel):
    name: str
    remain_quota: int | None = None
    expired_time: int | None = None
    unlimited_quota: bool | None = None
    model_limits_enabled: bool | None = None
    model_limits: str | None = None
    group: str | None = None
    allow_ips: str | None = None


class UpdateTokenRequest(BaseModel):
    id: int
    name: str | None = None
    remain_quota: int | None = None
    expired_time: int | None = None
    unlimited_quota: bool | None = None
    model_limits_enabled: bool | None = None
    model_limits: str | None = None
    group: str | None = None
    allow_ips: str | None = None


class StationAdapter:
    """Abstract relay station client.

    Every method takes the station record it operates on; adapters hold no
    per-station state.
    """

    dialect: str

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    async def get_station_info(self, station: Station) -> StationInfo:
        raise NotImplementedError

    async def get_user_info(self, station: Station, user_id: str) -> UserInfo:
        raise NotImplementedError

    async def get_logs(
        self, station: Station, page: int | None = None, page_size: int | None = None
    ) -> LogPage:
        raise NotImplementedError

    async def test_connection(self, station: Station) -> ConnectionTestResult:
        raise NotImplementedError

    async def list_tokens(
        self, station: Station, page: int | None = None, size: int | None = None
    ) -> list[StationToken]:
        raise NotImplementedError

    async def create_token(self, station: Station, request: CreateTokenRequest) -> StationToken:
        raise NotImplementedError

    async def update_token(
        self, station: Station, token_id: str, request: UpdateTokenRequest
    ) -> StationToken:
        raise NotImplementedError

    async def delete_token(self, station: Station, token_id: str) -> None:
        raise NotImplementedError
