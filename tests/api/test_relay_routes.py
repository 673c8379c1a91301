import json

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from relay_manager.adapters.base import UpdateTokenRequest
from relay_manager.api import provider, stations
from relay_manager.core.config import AppConfig
from relay_manager.main import build_commands, create_app
from relay_manager.storage.database import Database
from relay_manager.storage.schemas import CreateStationRequest, StationPatch
from relay_manager.switching.presets import ProviderConfig


def _config(tmp_path) -> AppConfig:
    return AppConfig(
        database_path=tmp_path / "relay.db",
        settings_path=tmp_path / "settings.json",
        presets_path=tmp_path / "providers.json",
    )


@pytest.fixture
def commands(tmp_path):
    database = Database("sqlite:///:memory:")
    database.init_schema()
    yield build_commands(_config(tmp_path), database)
    database.dispose()


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "relay.jsonl"))
    app = create_app(_config(tmp_path))
    with TestClient(app) as test_client:
        yield test_client


@pytest.mark.asyncio
async def test_station_routes_round_trip(commands):
    created = await stations.add_station(
        CreateStationRequest(name="Relay", api_url="https://relay.example", system_token="sys"),
        commands,
    )

    listed = await stations.list_stations(commands)
    updated = await stations.update_station(created.id, StationPatch(enabled=False), commands)
    deleted = await stations.delete_station(created.id, commands)

    assert [station.id for station in listed] == [created.id]
    assert updated.enabled is False
    assert deleted == {"message": "Station deleted successfully"}


@pytest.mark.asyncio
async def test_get_unknown_station_is_404(commands):
    with pytest.raises(HTTPException) as excinfo:
        await stations.get_station("ghost", commands)

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_update_preset_rejects_mismatched_id(commands):
    preset = ProviderConfig(id="a", name="A", base_url="https://a.example")

    with pytest.raises(HTTPException) as excinfo:
        await provider.update_preset("b", preset, commands)

    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_update_token_rejects_mismatched_id(commands):
    with pytest.raises(HTTPException) as excinfo:
        await stations.update_token("st-1", "5", UpdateTokenRequest(id=7, name="x"), commands)

    assert excinfo.value.status_code == 400


def test_update_token_route_rejects_mismatched_id(client):
    response = client.put("/api/stations/st-1/tokens/5", json={"id": 7, "name": "x"})

    assert response.status_code == 400
    assert response.json() == {"detail": "Token id does not match the path"}


@pytest.mark.asyncio
async def test_switch_then_detect(commands, tmp_path):
    config = ProviderConfig(id="relay", name="Relay", base_url="https://relay.example", api_key="k")

    result = await provider.switch_provider(config, commands)

    assert result.message == "Switched to Relay"
    assert await provider.detect_provider(commands) == {"provider_id": "custom"}
    assert await provider.provider_applied(commands) == {"applied": True}
    env = json.loads((tmp_path / "settings.json").read_text())["env"]
    assert env == {"ANTHROPIC_BASE_URL": "https://relay.example", "ANTHROPIC_API_KEY": "k"}


def test_command_errors_map_to_status_codes(client):
    missing = client.delete("/api/stations/ghost")
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Station not found"}

    preset = client.get("/api/provider/presets/nope")
    assert preset.status_code == 400
    assert preset.json()["detail"].startswith("Failed to load provider preset:")


def test_request_id_header_round_trips(client):
    response = client.get("/api/stations", headers={"x-request-id": "req-1"})

    assert response.status_code == 200
    assert response.json() == []
    assert response.headers["x-request-id"] == "req-1"
