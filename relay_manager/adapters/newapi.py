"""NewAPI relay station adapter.

OneAPI deployments expose the same management endpoints and are served by this
adapter as well.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from relay_manager.core.config import AppConfig
from relay_manager.core.exceptions import StationProtocolError, StationTransportError
from relay_manager.storage.schemas import Station, StationToken

from .base import (
    ConnectionTestResult,
    CreateTokenRequest,
    LogPage,
    StationAdapter,
    StationInfo,
    StationLogEntry,
    UpdateTokenRequest,
    UserInfo,
)
from .utils import as_bool, as_int, as_str, extract_error_body, id_string, parse_embedded_json

logger = logging.getLogger("relay.adapters.newapi")

USER_HEADER = "New-API-User"
NO_EXPIRY = -1

_LOG_LEVELS = {1: "info", 2: "api", 3: "warn", 4: "error"}
_USER_STATUS = {1: "active", 0: "disabled"}

# InvalidURL is raised while building the request and is not a RequestError.
_TRANSPORT_ERRORS = (httpx.RequestError, httpx.InvalidURL)


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class NewApiAdapter(StationAdapter):
    """Client for the NewAPI management REST API.

    Balances are reported by NewAPI in quota units. ``quota_per_unit`` is the
    number of units per US dollar for this dialect; other dialects may use a
    different divisor and must not reuse this constant.
    """

    dialect = "newapi"
    quota_per_unit = 500_000

    def __init__(self, config: AppConfig) -> None:
        super().__init__(config)
        self._timeout = config.request_timeout

    # -- request plumbing ---------------------------------------------------

    def _effective_user(self, station: Station, user_id: str | None = None) -> str:
        return user_id or station.user_id or self._config.default_user_id

    def _headers(
        self, station: Station, *, authorized: bool = True, user_id: str | None = None
    ) -> dict[str, str]:
        headers = {USER_HEADER: self._effective_user(station, user_id)}
        if authorized:
            headers["Authorization"] = f"Bearer {station.system_token}"
        return headers

    @staticmethod
    def _url(station: Station, path: str) -> str:
        return f"{station.api_url.rstrip('/')}{path}"

    async def _send(
        self,
        station: Station,
        method: str,
        path: str,
        *,
        action: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = self._url(station, path)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method, url, params=params, json=json_body, headers=headers
                )
        except _TRANSPORT_ERRORS as exc:
            logger.warning(
                "Relay request failed",
                extra={"event": "relay_transport_error", "url": url, "error_message": _describe(exc)},
            )
            raise StationTransportError(f"Failed to {action}", _describe(exc)) from exc

        if not response.is_success:
            logger.warning(
                "Relay returned an error status",
                extra={
                    "event": "relay_http_error",
                    "url": url,
                    "status_code": response.status_code,
                    "response": extract_error_body(response),
                },
            )
            raise StationProtocolError(f"Failed to {action}", status_code=response.status_code)
        return response

    @staticmethod
    def _envelope(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise StationProtocolError("Invalid response format") from exc
        if not isinstance(payload, dict):
            raise StationProtocolError("Invalid response format")
        if payload.get("success") is False:
            reason = as_str(payload.get("message")) or "request rejected"
            raise StationProtocolError(f"Failed to {action}: {reason}")
        return payload

    @classmethod
    def _data_object(cls, response: httpx.Response, action: str) -> dict[str, Any]:
        data = cls._envelope(response, action).get("data")
        if not isinstance(data, dict):
            raise StationProtocolError("Invalid response format")
        return data

    def _to_currency(self, quota: Any) -> float | None:
        units = as_int(quota)
        return units / self.quota_per_unit if units is not None else None

    # -- station ------------------------------------------------------------

    async def get_station_info(self, station: Station) -> StationInfo:
        response = await self._send(
            station,
            "GET",
            "/api/status",
            action="get station info",
            headers=self._headers(station, authorized=False),
        )
        data = self._data_object(response, "get station info")

        announcement = None
        announcements = data.get("announcements")
        if isinstance(announcements, list) and announcements and isinstance(announcements[0], dict):
            announcement = as_str(announcements[0].get("content"))

        return StationInfo(
            name=as_str(data.get("system_name")) or station.name,
            announcement=announcement,
            api_url=station.api_url,
            version=as_str(data.get("version")),
            quota_per_unit=as_int(data.get("quota_per_unit")),
            metadata={"response": data},
        )

    async def get_user_info(self, station: Station, user_id: str) -> UserInfo:
        effective_user = self._effective_user(station, user_id)
        response = await self._send(
            station,
            "GET",
            "/api/user/self",
            action="get user info",
            headers=self._headers(station, user_id=effective_user),
        )
        data = self._data_object(response, "get user info")

        return UserInfo(
            user_id=id_string(data.get("id")) or effective_user,
            username=as_str(data.get("username")),
            email=as_str(data.get("email")) or None,
            balance_remaining=self._to_currency(data.get("quota")),
            amount_used=self._to_currency(data.get("used_quota")),
            request_count=as_int(data.get("request_count")),
            status=_USER_STATUS.get(as_int(data.get("status")), "unknown"),
            metadata={"response": data},
        )

    async def get_logs(
        self, station: Station, page: int | None = None, page_size: int | None = None
    ) -> LogPage:
        page = page or 1
        page_size = page_size or 10
        params = {
            "p": page,
            "page_size": page_size,
            "type": 0,
            "token_name": "",
            "model_name": "",
            "start_timestamp": 0,
            "end_timestamp": int(time.time()),
            "group": "",
        }
        response = await self._send(
            station,
            "GET",
            "/api/log/self",
            action="get logs",
            headers=self._headers(station),
            params=params,
        )
        data = self._data_object(response, "get logs")
        raw_items = data.get("items")
        items = [self._log_entry(item) for item in raw_items] if isinstance(raw_items, list) else []

        return LogPage(
            items=items,
            page=page,
            page_size=page_size,
            total=as_int(data.get("total")) or 0,
        )

    @staticmethod
    def _log_entry(raw: Any) -> StationLogEntry:
        entry = raw if isinstance(raw, dict) else {}
        model_name = as_str(entry.get("model_name"))
        prompt_tokens = as_int(entry.get("prompt_tokens"))
        completion_tokens = as_int(entry.get("completion_tokens"))
        quota = as_int(entry.get("quota"))
        log_id = id_string(entry.get("id"))

        message = (
            f"API call - model: {model_name or 'unknown'} | prompt: {prompt_tokens or 0}"
            f" | completion: {completion_tokens or 0} | cost: {quota or 0}"
        )

        return StationLogEntry(
            id=log_id or "",
            timestamp=as_int(entry.get("created_at")) or 0,
            level=_LOG_LEVELS.get(as_int(entry.get("type")), "info"),
            message=message,
            user_id=id_string(entry.get("user_id")),
            request_id=log_id,
            model_name=model_name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            quota=quota,
            token_name=as_str(entry.get("token_name")),
            use_time=as_int(entry.get("use_time")),
            is_stream=as_bool(entry.get("is_stream")),
            channel=as_int(entry.get("channel")),
            group=as_str(entry.get("group")),
            metadata={"raw": raw, "other": parse_embedded_json(entry.get("other"))},
        )

    async def test_connection(self, station: Station) -> ConnectionTestResult:
        url = self._url(station, "/api/status")
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._config.connection_test_timeout) as client:
                response = await client.request(
                    "GET", url, headers=self._headers(station, authorized=False)
                )
        except _TRANSPORT_ERRORS as exc:
            logger.info(
                "Connection test failed",
                extra={"event": "connection_test_failed", "url": url, "error_message": _describe(exc)},
            )
            return ConnectionTestResult(
                success=False, message=f"Connection failed: {_describe(exc)}"
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if response.is_success:
            return ConnectionTestResult(
                success=True,
                response_time=elapsed_ms,
                message="Connection successful",
                status_code=response.status_code,
            )
        return ConnectionTestResult(
            success=False,
            response_time=elapsed_ms,
            message=f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    # -- tokens -------------------------------------------------------------

    @staticmethod
    def _token(
        station: Station,
        raw: Any,
        *,
        fallback_id: str = "",
        fallback_created: int = 0,
    ) -> StationToken:
        token = raw if isinstance(raw, dict) else {}
        expires_at = as_int(token.get("expired_time"))
        status = as_int(token.get("status"))
        return StationToken(
            id=id_string(token.get("id")) or fallback_id,
            station_id=station.id,
            name=as_str(token.get("name")) or "",
            token=as_str(token.get("key")) or "",
            user_id=id_string(token.get("user_id")),
            enabled=status == 1,
            expires_at=None if expires_at == NO_EXPIRY else expires_at,
            metadata={
                "raw": raw,
                "used_quota": token.get("used_quota"),
                "remain_quota": token.get("remain_quota"),
                "group": token.get("group"),
            },
            created_at=as_int(token.get("created_time")) or fallback_created,
        )

    async def list_tokens(
        self, station: Station, page: int | None = None, size: int | None = None
    ) -> list[StationToken]:
        params = {"p": page or 1, "size": size or 10}
        response = await self._send(
            station,
            "GET",
            "/api/token/",
            action="list tokens",
            headers=self._headers(station),
            params=params,
        )
        data = self._envelope(response, "list tokens").get("data")
        # Older NewAPI builds return the bare list instead of a page object.
        if isinstance(data, dict):
            raw_tokens = data.get("items")
        elif isinstance(data, list):
            raw_tokens = data
        else:
            raise StationProtocolError("Invalid response format")
        if not isinstance(raw_tokens, list):
            return []
        return [self._token(station, item) for item in raw_tokens]

    def _default_group(self, station: Station) -> str:
        configured = (station.adapter_config or {}).get("token_group")
        return configured if isinstance(configured, str) and configured else self._config.default_token_group

    async def create_token(self, station: Station, request: CreateTokenRequest) -> StationToken:
        body = {
            "name": request.name,
            "remain_quota": request.remain_quota if request.remain_quota is not None else 500_000,
            "expired_time": request.expired_time if request.expired_time is not None else NO_EXPIRY,
            "unlimited_quota": request.unlimited_quota if request.unlimited_quota is not None else True,
            "model_limits_enabled": bool(request.model_limits_enabled),
            "model_limits": request.model_limits or "",
            "group": request.group or self._default_group(station),
            "allow_ips": request.allow_ips or "",
        }
        response = await self._send(
            station,
            "POST",
            "/api/token/",
            action="create token",
            headers=self._headers(station),
            json_body=body,
        )
        data = self._data_object(response, "create token")
        return self._token(station, data, fallback_created=int(time.time()))

    async def update_token(
        self, station: Station, token_id: str, request: UpdateTokenRequest
    ) -> StationToken:
        body = request.model_dump(exclude_none=True)
        response = await self._send(
            station,
            "PUT",
            "/api/token/",
            action="update token",
            headers=self._headers(station),
            json_body=body,
        )
        data = self._data_object(response, "update token")
        return self._token(station, data, fallback_id=token_id)

    async def delete_token(self, station: Station, token_id: str) -> None:
        response = await self._send(
            station,
            "DELETE",
            f"/api/token/{token_id}",
            action="delete token",
            headers=self._headers(station),
        )
        try:
            payload = response.json()
        except ValueError:
            return
        if isinstance(payload, dict) and payload.get("success") is False:
            reason = as_str(payload.get("message")) or "request rejected"
            raise StationProtocolError(f"Failed to delete token: {reason}")


__all__ = ["NewApiAdapter"]
