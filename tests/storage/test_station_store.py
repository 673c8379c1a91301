from __future__ import annotations

import time

import pytest
from sqlalchemy import inspect, text

from relay_manager.core.exceptions import StorageError
from relay_manager.storage.database import Database
from relay_manager.storage.schemas import (
    AuthMethod,
    CreateStationRequest,
    Station,
    StationAdapterKind,
    StationPatch,
    StationToken,
    TokenPatch,
)
from relay_manager.storage.stations import StationStore


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def store(database) -> StationStore:
    return StationStore(database)


def _station(station_id: str = "st-1", created_at: int = 1000, **overrides) -> Station:
    fields = dict(
        id=station_id,
        name="Relay",
        description="primary relay",
        api_url="https://relay.example",
        adapter=StationAdapterKind.ONEAPI,
        auth_method=AuthMethod.API_KEY,
        system_token="sys",
        user_id="7",
        adapter_config={"token_group": "agents", "limits": [1, 2]},
        enabled=True,
        created_at=created_at,
        updated_at=created_at,
    )
    fields.update(overrides)
    return Station(**fields)


def _token(token_id: str, station_id: str = "st-1", created_at: int = 1000) -> StationToken:
    return StationToken(
        id=token_id,
        station_id=station_id,
        name=f"token {token_id}",
        token=f"sk-{token_id}",
        metadata={"remain_quota": 5},
        created_at=created_at,
    )


def test_add_then_get_round_trip(store):
    station = _station()
    store.add_station(station)

    assert store.get_station("st-1") == station


def test_create_request_builds_station_with_fresh_identity():
    station = CreateStationRequest(
        name="Relay", api_url="https://relay.example", system_token="sys"
    ).build()

    assert station.id
    assert station.adapter is StationAdapterKind.NEWAPI
    assert station.created_at == station.updated_at


def test_get_missing_station_returns_none(store):
    assert store.get_station("missing") is None


def test_list_stations_newest_first(store):
    store.add_station(_station("old", created_at=1000))
    store.add_station(_station("new", created_at=3000))
    store.add_station(_station("mid", created_at=2000))

    assert [station.id for station in store.list_stations()] == ["new", "mid", "old"]


def test_sparse_update_changes_only_named_field(store):
    before = _station()
    store.add_station(before)

    assert store.update_station("st-1", StationPatch.model_validate({"name": "X"}))

    after = store.get_station("st-1")
    assert after.name == "X"
    assert after.updated_at >= before.updated_at
    assert after.model_dump(exclude={"name", "updated_at"}) == before.model_dump(
        exclude={"name", "updated_at"}
    )


def test_sparse_update_ignores_unknown_and_immutable_keys(store):
    store.add_station(_station())

    patch = StationPatch.model_validate(
        {"enabled": False, "adapter": "newapi", "id": "hijack", "created_at": 1, "bogus": 1}
    )
    store.update_station("st-1", patch)

    after = store.get_station("st-1")
    assert after.enabled is False
    assert after.adapter is StationAdapterKind.ONEAPI
    assert after.created_at == 1000
    assert store.get_station("hijack") is None


def test_sparse_update_can_clear_optional_columns(store):
    store.add_station(_station())

    store.update_station("st-1", StationPatch.model_validate({"description": None, "name": None}))

    after = store.get_station("st-1")
    assert after.description is None
    assert after.name == "Relay"


def test_update_always_bumps_timestamp_without_going_backwards(store):
    future = int(time.time()) + 10_000
    store.add_station(_station("future", created_at=future))
    store.add_station(_station("past", created_at=1000))

    store.update_station("future", StationPatch())
    store.update_station("past", StationPatch())

    assert store.get_station("future").updated_at == future
    assert store.get_station("past").updated_at >= int(time.time()) - 5


def test_update_missing_station_reports_false(store):
    assert store.update_station("missing", StationPatch(name="x")) is False


def test_delete_station_cascades_tokens(store):
    store.add_station(_station())
    store.add_token(_token("a"))
    store.add_token(_token("b"))
    store.delete_token("a")

    assert store.delete_station("st-1") is True

    assert store.list_tokens("st-1") == []
    assert store.get_token("b") is None
    assert store.delete_station("st-1") is False


def test_token_crud(store):
    store.add_station(_station())
    store.add_token(_token("a", created_at=10))
    store.add_token(_token("b", created_at=20))

    assert [token.id for token in store.list_tokens("st-1")] == ["b", "a"]

    assert store.update_token("a", TokenPatch.model_validate({"enabled": False, "station_id": "x"}))
    updated = store.get_token("a")
    assert updated.enabled is False
    assert updated.station_id == "st-1"
    assert updated.metadata == {"remain_quota": 5}

    assert store.delete_token("a") is True
    assert store.get_token("a") is None


def test_token_requires_existing_station(store):
    with pytest.raises(StorageError):
        store.add_token(_token("orphan", station_id="nope"))


def test_malformed_optional_columns_degrade_on_read(store, database):
    store.add_station(_station())
    with database.session_scope() as session:
        session.execute(
            text(
                "UPDATE relay_stations SET adapter_config = '{broken', adapter = 'mystery',"
                " auth_method = 'unknown' WHERE id = 'st-1'"
            )
        )

    station = store.get_station("st-1")

    assert station.adapter_config is None
    assert station.adapter is StationAdapterKind.NEWAPI
    assert station.auth_method is AuthMethod.BEARER_TOKEN
    assert len(store.list_stations()) == 1


def test_wrongly_typed_optional_columns_degrade_to_none(store, database):
    store.add_station(_station())
    store.add_token(_token("t1"))
    store.add_token(_token("t2"))
    with database.session_scope() as session:
        session.execute(text("UPDATE relay_station_tokens SET expires_at = 'never' WHERE id = 't1'"))
        session.execute(text("UPDATE relay_station_tokens SET user_id = X'00ff' WHERE id = 't2'"))
        session.execute(
            text("UPDATE relay_stations SET user_id = X'01', description = X'02' WHERE id = 'st-1'")
        )

    tokens = {token.id: token for token in store.list_tokens("st-1")}
    station = store.get_station("st-1")

    assert set(tokens) == {"t1", "t2"}
    assert tokens["t1"].expires_at is None
    assert tokens["t2"].user_id is None
    assert station.user_id is None
    assert station.description is None


def test_unreadable_required_column_is_an_error(store, database):
    store.add_station(_station())
    with database.session_scope() as session:
        session.execute(text("UPDATE relay_stations SET created_at = 'yesterday' WHERE id = 'st-1'"))

    with pytest.raises(StorageError):
        store.get_station("st-1")


def test_legacy_database_gains_user_id_column():
    db = Database("sqlite:///:memory:")
    with db.engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE relay_stations (id TEXT PRIMARY KEY, name TEXT NOT NULL,"
                " description TEXT, api_url TEXT NOT NULL, adapter TEXT NOT NULL,"
                " auth_method TEXT NOT NULL, system_token TEXT NOT NULL, adapter_config TEXT,"
                " enabled INTEGER NOT NULL DEFAULT 1, created_at INTEGER NOT NULL,"
                " updated_at INTEGER NOT NULL)"
            )
        )

    db.init_schema()
    db.init_schema()

    columns = {column["name"] for column in inspect(db.engine).get_columns("relay_stations")}
    assert "user_id" in columns
    StationStore(db).add_station(_station())
    assert StationStore(db).get_station("st-1").user_id == "7"
    db.dispose()
