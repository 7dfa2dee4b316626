from __future__ import annotations

import pytest

from lanwatch.config import get_settings
from lanwatch.core import DeviceRegistry
from lanwatch.protocol import ServerContext
from lanwatch.storage import AllowlistStore


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.delenv("LANWATCH_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path) -> AllowlistStore:
    return AllowlistStore.open(tmp_path / "store" / "allowlist.txt")


@pytest.fixture
def registry(store: AllowlistStore) -> DeviceRegistry:
    return DeviceRegistry(store)


@pytest.fixture
def context(store: AllowlistStore, registry: DeviceRegistry) -> ServerContext:
    return ServerContext(allowlist=store, registry=registry)
