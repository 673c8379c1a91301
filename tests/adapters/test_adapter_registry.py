from relay_manager.adapters.newapi import NewApiAdapter
from relay_manager.adapters.registry import AdapterRegistry
from relay_manager.core.config import AppConfig
from relay_manager.storage.schemas import Station, StationAdapterKind


def _station(adapter: StationAdapterKind) -> Station:
    return Station(
        id="s",
        name="S",
        api_url="https://relay.example",
        adapter=adapter,
        system_token="t",
    )


def test_every_declared_dialect_resolves_to_an_adapter():
    registry = AdapterRegistry(AppConfig())

    for kind in StationAdapterKind:
        assert isinstance(registry.get_adapter(_station(kind)), NewApiAdapter)


def test_unknown_dialect_falls_back_to_default():
    registry = AdapterRegistry(AppConfig())

    assert registry.adapter_class("some-future-dialect") is AdapterRegistry.default


def test_adapter_instances_are_reused():
    registry = AdapterRegistry(AppConfig())

    first = registry.get_adapter(_station(StationAdapterKind.NEWAPI))
    second = registry.get_adapter(_station(StationAdapterKind.ONEAPI))

    assert first is second
