"""Station and token records exchanged with the store and the adapters."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class StationAdapterKind(str, Enum):
    NEWAPI = "newapi"
    ONEAPI = "oneapi"
    CUSTOM = "custom"


class AuthMethod(str, Enum):
    BEARER_TOKEN = "bearer_token"
    API_KEY = "api_key"
    CUSTOM = "custom"


def _now() -> int:
    return int(time.time())


class CreateStationRequest(BaseModel):
    name: str
    description: str | None = None
    api_url: str
    adapter: StationAdapterKind = StationAdapterKind.NEWAPI
    auth_method: AuthMethod = AuthMethod.BEARER_TOKEN
    system_token: str
    user_id: str | None = None
    adapter_config: dict[str, Any] | None = None
    enabled: bool = True

    def build(self) -> "Station":
        now = _now()
        return Station(id=str(uuid.uuid4()), created_at=now, updated_at=now, **self.model_dump())


class Station(BaseModel):
    id: str
    name: str
    description: str | None = None
    api_url: str
    adapter: StationAdapterKind = StationAdapterKind.NEWAPI
    auth_method: AuthMethod = AuthMethod.BEARER_TOKEN
    system_token: str
    user_id: str | None = None
    adapter_config: dict[str, Any] | None = None
    enabled: bool = True
    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)


class StationToken(BaseModel):
    id: str
    station_id: str
    name: str
    token: str
    user_id: str | None = None
    enabled: bool = True
    expires_at: int | None = None
    metadata: dict[str, Any] | None = None
    created_at: int = Field(default_factory=_now)


class _Patch(BaseModel):
    """Sparse update: only fields the caller actually sent are applied.

    Unknown keys are dropped. Fields listed in ``nullable_fields`` may be cleared by
    sending ``null``; ``null`` for any other field is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    def to_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if value is None and field not in self.nullable_fields:
                continue
            values[field] = value
        return values


class StationPatch(_Patch):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"description", "user_id"})

    name: str | None = None
    description: str | None = None
    api_url: str | None = None
    system_token: str | None = None
    user_id: str | None = None
    enabled: bool | None = None


class TokenPatch(_Patch):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"user_id"})

    name: str | None = None
    token: str | None = None
    user_id: str | None = None
    enabled: bool | None = None


__all__ = [
    "AuthMethod",
    "CreateStationRequest",
    "Station",
    "StationAdapterKind",
    "StationPatch",
    "StationToken",
    "TokenPatch",
]
