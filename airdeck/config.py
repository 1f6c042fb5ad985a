"""Configuration loading, persistence and constants.

The config file is YAML, found at $AIRDECK_CONFIG or ~/.airdeck.yaml:

    active_server: local
    managed_services: [astronomer]
    servers:
      - name: local
        endpoint: http://localhost:8080
        airflow_version: 2
        auth:
          basic: {username: airflow, password: ${AIRFLOW_PASSWORD}}
        proxy: http://proxy:3128
    runtime:
      tick_interval_ms: 200
      refresh_ticks: 10
      queue_capacity: 0
      request_timeout: 5
      log_level: WARNING
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AIRDECK_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".airdeck.yaml"
DEFAULT_LOG_PATH = Path.home() / ".airdeck" / "logs" / "airdeck.log"

AUTH_METHODS = ("basic", "token", "astronomer", "conveyor", "none")
MANAGED_SERVICES = ("astronomer", "conveyor")
AIRFLOW_VERSIONS = (2, 3)

_ENV_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} and $VAR references; a missing variable is an error."""

    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name not in os.environ:
            raise ConfigError(f"Environment variable '{name}' referenced in config is not set")
        return os.environ[name]

    return _ENV_VAR_RE.sub(_sub, value)


def get_config_path() -> Path:
    """Path of the config file; AIRDECK_CONFIG overrides the default."""
    env_override = os.environ.get(CONFIG_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser()
    return DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class AuthConfig:
    """How to authenticate against one server."""
    method: str = "none"
    username: str | None = None
    password: str | None = None
    token: str | None = None
    cmd: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AuthConfig":
        if not data:
            return cls()
        if len(data) != 1:
            raise ConfigError(f"auth must have exactly one method, got: {sorted(data)}")
        method, params = next(iter(data.items()))
        method = str(method).lower()
        params = params or {}
        if method not in AUTH_METHODS:
            raise ConfigError(f"Unknown auth method '{method}' (expected one of {', '.join(AUTH_METHODS)})")
        if method == "basic" and not (params.get("username") and params.get("password") is not None):
            raise ConfigError("basic auth needs username and password")
        if method == "token" and not (params.get("token") or params.get("cmd")):
            raise ConfigError("token auth needs either token or cmd")
        if method == "astronomer" and not params.get("api_token"):
            raise ConfigError("astronomer auth needs api_token")
        return cls(
            method=method,
            username=params.get("username"),
            password=params.get("password"),
            token=params.get("token") or params.get("api_token"),
            cmd=params.get("cmd"),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.method == "none":
            return {}
        if self.method == "basic":
            return {"basic": {"username": self.username, "password": self.password}}
        if self.method == "token":
            params = {"cmd": self.cmd} if self.cmd else {"token": self.token}
            return {"token": params}
        if self.method == "astronomer":
            return {"astronomer": {"api_token": self.token}}
        return {self.method: {}}

    def __repr__(self) -> str:
        secret = "***redacted***" if (self.password or self.token) else None
        return f"AuthConfig(method={self.method!r}, username={self.username!r}, cmd={self.cmd!r}, secret={secret!r})"


@dataclass(frozen=True)
class ServerConfig:
    """One Airflow server, configured by hand or discovered from a managed service."""
    name: str
    endpoint: str
    auth: AuthConfig = field(default_factory=AuthConfig)
    airflow_version: int = 2
    proxy: str | None = None
    managed: str | None = None

    @property
    def key(self) -> str:
        return self.name

    @property
    def api_path(self) -> str:
        return "api/v2" if self.airflow_version >= 3 else "api/v1"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConfig":
        for required in ("name", "endpoint"):
            if not data.get(required):
                raise ConfigError(f"server entry is missing '{required}': {data!r}")
        version = int(data.get("airflow_version", 2))
        if version not in AIRFLOW_VERSIONS:
            raise ConfigError(f"Unsupported airflow_version {version} for server '{data['name']}'")
        return cls(
            name=str(data["name"]),
            endpoint=str(data["endpoint"]),
            auth=AuthConfig.from_dict(data.get("auth")),
            airflow_version=version,
            proxy=data.get("proxy"),
            managed=data.get("managed"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "endpoint": self.endpoint,
            "airflow_version": self.airflow_version,
        }
        auth = self.auth.to_dict()
        if auth:
            data["auth"] = auth
        if self.proxy:
            data["proxy"] = self.proxy
        if self.managed:
            data["managed"] = self.managed
        return data


@dataclass(frozen=True)
class RuntimeSettings:
    """Operational tuning for the event loop and worker."""
    tick_interval_ms: int = 200
    refresh_ticks: int = 10
    queue_capacity: int = 0  # 0 = unbounded
    request_timeout: float = 5.0
    log_level: str = "WARNING"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RuntimeSettings":
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown runtime settings: %s", ", ".join(sorted(unknown)))
        settings = cls(**{k: v for k, v in data.items() if k in known})
        if settings.tick_interval_ms <= 0:
            raise ConfigError("runtime.tick_interval_ms must be positive")
        if settings.queue_capacity < 0:
            raise ConfigError("runtime.queue_capacity must be >= 0")
        if settings.request_timeout <= 0:
            raise ConfigError("runtime.request_timeout must be positive")
        return settings

    @property
    def tick_interval(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def log_path(self) -> Path:
        return Path(self.log_file).expanduser() if self.log_file else DEFAULT_LOG_PATH


class ConfigStore:
    """Configured servers, enabled managed services and the active server.

    Discovered servers are kept in memory only; ``save`` writes back the
    hand-configured entries.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or get_config_path()
        self.servers: list[ServerConfig] = []
        self.managed_services: list[str] = []
        self.active_server: str | None = None
        self.runtime = RuntimeSettings()
        self.discovered: list[ServerConfig] = []

    @classmethod
    def load(cls, path: Path | None = None) -> "ConfigStore":
        store = cls(path)
        if not store.path.exists():
            logger.info("No config file at %s, starting empty", store.path)
            return store
        try:
            with open(store.path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {store.path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read {store.path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"{store.path} must contain a mapping at top level")

        store.servers = [ServerConfig.from_dict(s) for s in data.get("servers") or []]
        store.managed_services = [str(s).lower() for s in data.get("managed_services") or []]
        for service in store.managed_services:
            if service not in MANAGED_SERVICES:
                raise ConfigError(f"Unknown managed service '{service}'")
        store.active_server = data.get("active_server")
        store.runtime = RuntimeSettings.from_dict(data.get("runtime"))
        return store

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"servers": [s.to_dict() for s in self.servers]}
        if self.managed_services:
            data["managed_services"] = list(self.managed_services)
        if self.active_server:
            data["active_server"] = self.active_server
        runtime = asdict(self.runtime)
        defaults = asdict(RuntimeSettings())
        changed = {k: v for k, v in runtime.items() if v != defaults[k]}
        if changed:
            data["runtime"] = changed
        return data

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        logger.info("Saved config to %s", self.path)

    # -- servers --------------------------------------------------------------

    def all_servers(self) -> list[ServerConfig]:
        return list(self.servers) + list(self.discovered)

    def get_server(self, name: str) -> ServerConfig:
        for server in self.all_servers():
            if server.name == name:
                return server
        raise ConfigError(f"Server '{name}' is not configured")

    def has_server(self, name: str) -> bool:
        return any(s.name == name for s in self.all_servers())

    def add_server(self, server: ServerConfig) -> None:
        if any(s.name == server.name for s in self.servers):
            raise ConfigError(f"Server '{server.name}' already exists")
        self.servers.append(server)

    def remove_server(self, name: str) -> ServerConfig:
        for index, server in enumerate(self.servers):
            if server.name == name:
                del self.servers[index]
                if self.active_server == name:
                    self.active_server = None
                return server
        raise ConfigError(f"Server '{name}' is not configured")

    def update_server(self, name: str, /, **changes: Any) -> ServerConfig:
        for index, server in enumerate(self.servers):
            if server.name == name:
                updated = replace(server, **{k: v for k, v in changes.items() if v is not None})
                if updated.name != name and any(s.name == updated.name for s in self.servers):
                    raise ConfigError(f"Server '{updated.name}' already exists")
                self.servers[index] = updated
                if self.active_server == name:
                    self.active_server = updated.name
                return updated
        raise ConfigError(f"Server '{name}' is not configured")

    def set_active(self, name: str | None) -> None:
        if name is not None and not self.has_server(name):
            raise ConfigError(f"Server '{name}' is not configured")
        self.active_server = name

    def active(self) -> ServerConfig | None:
        if not self.active_server or not self.has_server(self.active_server):
            return None
        return self.get_server(self.active_server)

    # -- managed services -----------------------------------------------------

    def enable_managed(self, service: str) -> bool:
        service = service.lower()
        if service not in MANAGED_SERVICES:
            raise ConfigError(f"Unknown managed service '{service}' (expected one of {', '.join(MANAGED_SERVICES)})")
        if service in self.managed_services:
            return False
        self.managed_services.append(service)
        return True

    def disable_managed(self, service: str) -> bool:
        service = service.lower()
        if service not in self.managed_services:
            return False
        self.managed_services.remove(service)
        return True

    def discover(self) -> list[str]:
        """Discover servers of the enabled managed services.

        Returns human-readable errors; one failing service does not stop the
        others.
        """
        from .managed import discover_servers

        self.discovered, errors = discover_servers(self.managed_services)
        return errors
