"""Discovery of Airflow servers hosted by managed services.

Supported services:
- astronomer: lists deployments of every active organization via the
  Astronomer platform API, authenticated with $ASTRO_API_TOKEN
- conveyor: lists environments with the ``conveyor`` CLI
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tomllib
from pathlib import Path
from typing import Any, Callable

import requests

from .config import AuthConfig, ServerConfig
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ASTRONOMER_API_URL = "https://api.astronomer.io/platform/v1beta1"
ASTRONOMER_PAGE_SIZE = 100
CONVEYOR_DEFAULT_API = "https://app.conveyordata.com"
DISCOVERY_TIMEOUT = 10


# ---------------------------------------------------------------------------
# Astronomer
# ---------------------------------------------------------------------------

class AstronomerClient:
    """Minimal client for the Astronomer platform API."""

    def __init__(self, api_token: str | None = None, base_url: str = ASTRONOMER_API_URL,
                 timeout: int = DISCOVERY_TIMEOUT):
        api_token = api_token or os.environ.get("ASTRO_API_TOKEN")
        if not api_token:
            raise ConfigError("ASTRO_API_TOKEN environment variable not set")
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["Authorization"] = f"Bearer {api_token}"

    def _list_paginated(self, path: str, key: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        offset = 0
        while True:
            response = self.session.get(
                f"{self.base_url}{path}",
                params={"offset": offset, "limit": ASTRONOMER_PAGE_SIZE},
                timeout=self.timeout,
            )
            response.raise_for_status()
            page = response.json()
            batch = page.get(key) or []
            items.extend(batch)
            limit = int(page.get("limit") or 0)
            if not batch or limit == 0:
                break
            offset += limit
            if offset >= int(page.get("totalCount") or 0):
                break
        return items

    def list_organizations(self) -> list[dict[str, Any]]:
        return self._list_paginated("/organizations", "organizations")

    def list_deployments(self, organization_id: str) -> list[dict[str, Any]]:
        return self._list_paginated(f"/organizations/{organization_id}/deployments", "deployments")


def discover_astronomer(client: AstronomerClient | None = None) -> tuple[list[ServerConfig], list[str]]:
    servers: list[ServerConfig] = []
    errors: list[str] = []
    try:
        client = client or AstronomerClient()
        organizations = client.list_organizations()
    except (ConfigError, requests.RequestException, ValueError) as e:
        return servers, [f"Astronomer: failed to list organizations: {e}"]

    logger.info("Found %d Astronomer organization(s)", len(organizations))
    for org in organizations:
        if org.get("status") != "ACTIVE":
            continue
        try:
            deployments = client.list_deployments(org["id"])
        except (requests.RequestException, ValueError) as e:
            errors.append(f"Astronomer: failed to list deployments for '{org.get('name')}': {e}")
            continue
        for deployment in deployments:
            airflow_version = str(deployment.get("airflowVersion", ""))
            if airflow_version.startswith("2."):
                version = 2
            elif airflow_version.startswith("3."):
                version = 3
            else:
                errors.append(
                    f"Astronomer: unsupported Airflow version '{airflow_version}' "
                    f"for deployment '{deployment.get('name')}'"
                )
                continue
            endpoint = deployment.get("webServerUrl", "")
            if not endpoint.startswith(("http://", "https://")):
                endpoint = f"https://{endpoint}"
            if not endpoint.endswith("/"):
                endpoint += "/"
            servers.append(ServerConfig(
                name=f"{org.get('name')}/{deployment.get('name')}",
                endpoint=endpoint,
                auth=AuthConfig(method="astronomer", token=client.api_token),
                airflow_version=version,
                managed="astronomer",
            ))
    return servers, errors


# ---------------------------------------------------------------------------
# Conveyor
# ---------------------------------------------------------------------------

def conveyor_token() -> str:
    """Fetch an access token from the conveyor CLI."""
    try:
        result = subprocess.run(
            ["conveyor", "auth", "get", "--quiet"],
            capture_output=True, text=True, timeout=DISCOVERY_TIMEOUT, check=True,
        )
        return json.loads(result.stdout)["access_token"]
    except (OSError, subprocess.SubprocessError, ValueError, KeyError) as e:
        raise ConfigError(f"Failed to get a conveyor token: {e}")


def conveyor_api_endpoint(profiles_path: Path | None = None) -> str:
    """API endpoint of the active profile in ~/.conveyor/profiles.toml."""
    profiles_path = profiles_path or Path.home() / ".conveyor" / "profiles.toml"
    if not profiles_path.exists():
        return CONVEYOR_DEFAULT_API
    with open(profiles_path, "rb") as f:
        profiles = tomllib.load(f)
    active = profiles.get("activeprofile", "default")
    if active == "default":
        return CONVEYOR_DEFAULT_API
    profile = profiles.get(active)
    if not isinstance(profile, dict) or "api" not in profile:
        raise ConfigError(f"Active conveyor profile '{active}' not found in {profiles_path}")
    return str(profile["api"]).rstrip("/")


def discover_conveyor() -> tuple[list[ServerConfig], list[str]]:
    try:
        conveyor_token()
        result = subprocess.run(
            ["conveyor", "environment", "list", "-o", "json"],
            capture_output=True, text=True, timeout=DISCOVERY_TIMEOUT, check=True,
        )
        environments = json.loads(result.stdout)
        api = conveyor_api_endpoint()
    except (ConfigError, OSError, subprocess.SubprocessError, ValueError, tomllib.TOMLDecodeError) as e:
        return [], [f"Conveyor: {e}"]

    servers = [
        ServerConfig(
            name=env["name"],
            endpoint=f"{api}/environments/{env['name']}/airflow/",
            auth=AuthConfig(method="conveyor"),
            airflow_version=3 if env.get("airflowVersion") == "AirflowVersion_V3" else 2,
            managed="conveyor",
        )
        for env in environments
    ]
    logger.info("Found %d Conveyor environment(s)", len(servers))
    return servers, []


DISCOVERERS: dict[str, Callable[[], tuple[list[ServerConfig], list[str]]]] = {
    "astronomer": discover_astronomer,
    "conveyor": discover_conveyor,
}


def discover_servers(services: list[str]) -> tuple[list[ServerConfig], list[str]]:
    """Run discovery for each enabled service, collecting servers and errors."""
    servers: list[ServerConfig] = []
    errors: list[str] = []
    for service in services:
        discoverer = DISCOVERERS.get(service)
        if discoverer is None:
            errors.append(f"Unknown managed service '{service}'")
            continue
        found, failed = discoverer()
        servers.extend(found)
        errors.extend(failed)
    for error in errors:
        logger.warning("Discovery error: %s", error)
    return servers, errors
