"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import ipaddress
import os
import re
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class APIConfig:
    base_url: str = "https://engine.anexia-it.com"
    token: str = ""
    timeout: int = 30
    verify_ssl: bool = True


@dataclass(frozen=True)
class BackoffConfig:
    """Exponential backoff used while waiting for resources to become ready."""

    initial_interval: float = 1.0
    factor: float = 1.5
    jitter: float = 1.5
    steps: int = 10
    max_interval: float = 300.0


@dataclass(frozen=True)
class ReconciliationConfig:
    backoff: BackoffConfig = field(default_factory=BackoffConfig)


@dataclass(frozen=True)
class PortConfig:
    internal: int = 0
    external: int = 0


@dataclass(frozen=True)
class ServerConfig:
    name: str = ""
    address: str = ""


@dataclass(frozen=True)
class ServiceConfig:
    """Desired state of one service, reconciled on every listed load balancer."""

    service_uid: str = ""
    name_suffix: str = ""
    load_balancers: list[str] = field(default_factory=list)
    external_addresses: list[str] = field(default_factory=list)
    ports: dict[str, PortConfig] = field(default_factory=dict)
    servers: list[ServerConfig] = field(default_factory=list)


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: int = 60
    jitter_seconds: int = 5
    max_backoff_seconds: int = 300
    backoff_base_seconds: int = 5


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    api: APIConfig = field(default_factory=APIConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    services: list[ServiceConfig] = field(default_factory=list)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _container_item_type(ft: Any) -> tuple[Any, type | None]:
    """For list[X] / dict[str, X] annotations return (origin, X) when X is a dataclass."""
    origin = typing.get_origin(ft)
    args = typing.get_args(ft)
    if origin is list and args:
        return list, _get_dataclass_type(args[0])
    if origin is dict and len(args) == 2:
        return dict, _get_dataclass_type(args[1])
    return origin, None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        container, item_type = _container_item_type(ft)
        if dc_type is not None and isinstance(value, dict):
            kwargs[key] = _build_nested(dc_type, value)
        elif container is list and item_type is not None and isinstance(value, list):
            kwargs[key] = [_build_nested(item_type, v) for v in value]
        elif container is dict and item_type is not None and isinstance(value, dict):
            kwargs[key] = {k: _build_nested(item_type, v) for k, v in value.items()}
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.api.token:
        raise ConfigError("api.token is required")

    backoff = config.reconciliation.backoff
    if backoff.steps < 1:
        raise ConfigError("reconciliation.backoff.steps must be >= 1")
    if backoff.factor < 1.0:
        raise ConfigError("reconciliation.backoff.factor must be >= 1.0")
    if backoff.initial_interval <= 0 or backoff.max_interval < backoff.initial_interval:
        raise ConfigError(
            "reconciliation.backoff intervals must be positive with max_interval >= initial_interval"
        )

    if config.polling.interval_seconds < 5:
        raise ConfigError("polling.interval_seconds must be >= 5")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")

    if not config.services:
        raise ConfigError("at least one service must be configured")

    seen_uids: set[str] = set()
    for svc in config.services:
        _validate_service(svc)
        if svc.service_uid in seen_uids:
            raise ConfigError(f"service_uid '{svc.service_uid}' is configured more than once")
        seen_uids.add(svc.service_uid)


def _validate_service(svc: ServiceConfig) -> None:
    if not isinstance(svc, ServiceConfig):
        raise ConfigError("services must be a list of mappings")
    if not svc.service_uid:
        raise ConfigError("services[].service_uid is required")

    where = f"service '{svc.service_uid}'"
    if not svc.load_balancers:
        raise ConfigError(f"{where}: at least one load balancer is required")

    for addr in svc.external_addresses:
        try:
            ipaddress.ip_address(addr)
        except ValueError:
            raise ConfigError(f"{where}: invalid external address '{addr}'") from None

    for name, port in svc.ports.items():
        if not isinstance(port, PortConfig):
            raise ConfigError(f"{where}: port '{name}' must be a mapping with internal/external")
        for value in (port.internal, port.external):
            if not isinstance(value, int) or not 0 < value <= 65535:
                raise ConfigError(f"{where}: port '{name}' values must be integers in 1-65535")

    for server in svc.servers:
        if not isinstance(server, ServerConfig) or not server.name:
            raise ConfigError(f"{where}: every server needs a name")
        try:
            ipaddress.ip_address(server.address)
        except ValueError:
            raise ConfigError(f"{where}: server '{server.name}' has invalid address '{server.address}'") from None
