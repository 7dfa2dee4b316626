from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator

from .paths import default_config_path, default_data_dir, expand_path, resolve_under

CONFIG_ENV_VAR = "LANWATCH_CONFIG"

DEFAULT_EXTRA_NETWORKS = [
    "10.0.0.0/24",
    "172.16.0.0/24",
    "192.168.0.0/24",
    "192.168.2.0/24",
    "192.168.3.0/24",
]


class StorageConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))
    allowlist_file: str = "allowlist.txt"


class ServerConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    host: str = "0.0.0.0"
    port: int = Field(default=9099, ge=0, le=65535)
    tls_enabled: bool = False
    tls_port: int = Field(default=9443, ge=0, le=65535)
    certfile: str | None = None
    keyfile: str | None = None
    read_timeout: float = Field(default=30.0, gt=0)
    timeout_retries: int = Field(default=3, ge=1)
    keepalive: bool = True
    max_connections: int = Field(default=20, ge=1)

    @model_validator(mode="after")
    def _tls_needs_certificate(self) -> ServerConfig:
        if self.tls_enabled and not self.certfile:
            raise ValueError("tls_enabled requires certfile")
        return self


class MonitorConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    poll_seconds: float = Field(default=10.0, gt=0)
    ban_seconds: float = Field(default=600.0, ge=0)
    ping_timeout: float = Field(default=0.5, gt=0)
    port_timeout: float = Field(default=0.3, gt=0)
    parallel_probes: int = Field(default=64, ge=1, le=1024)
    scan_range: int = Field(default=254, ge=1)
    networks: list[str] = Field(default_factory=list)
    extra_networks: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXTRA_NETWORKS)
    )
    extra_host_limit: int = Field(default=100, ge=0)
    auto_add: bool = False
    stop_grace: float = Field(default=5.0, ge=0)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.storage.path)


def allowlist_path_from_settings(settings: Settings) -> Path:
    return resolve_under(data_dir_from_settings(settings), settings.storage.allowlist_file)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _toml_list(values: list[str]) -> str:
    return "[" + ", ".join(_toml_string(value) for value in values) + "]"


def render_settings_toml(settings: Settings) -> str:
    server = settings.server
    monitor = settings.monitor
    lines = [
        "# lanwatch configuration",
        "",
        "[storage]",
        f"path = {_toml_string(settings.storage.path)}",
        f"allowlist_file = {_toml_string(settings.storage.allowlist_file)}",
        "",
        "[server]",
        f"host = {_toml_string(server.host)}",
        f"port = {server.port}",
        f"tls_enabled = {_toml_bool(server.tls_enabled)}",
        f"tls_port = {server.tls_port}",
    ]
    if server.certfile:
        lines.append(f"certfile = {_toml_string(server.certfile)}")
    if server.keyfile:
        lines.append(f"keyfile = {_toml_string(server.keyfile)}")
    lines += [
        f"read_timeout = {server.read_timeout}",
        f"timeout_retries = {server.timeout_retries}",
        f"keepalive = {_toml_bool(server.keepalive)}",
        f"max_connections = {server.max_connections}",
        "",
        "[monitor]",
        f"poll_seconds = {monitor.poll_seconds}",
        f"ban_seconds = {monitor.ban_seconds}",
        f"ping_timeout = {monitor.ping_timeout}",
        f"port_timeout = {monitor.port_timeout}",
        f"parallel_probes = {monitor.parallel_probes}",
        f"scan_range = {monitor.scan_range}",
        f"networks = {_toml_list(monitor.networks)}",
        f"extra_networks = {_toml_list(monitor.extra_networks)}",
        f"extra_host_limit = {monitor.extra_host_limit}",
        f"auto_add = {_toml_bool(monitor.auto_add)}",
        f"stop_grace = {monitor.stop_grace}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
