"""Tests for managed-service discovery."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from airdeck import managed
from airdeck.exceptions import ConfigError


def _page(key, items, total, limit=100):
    resp = MagicMock()
    resp.json.return_value = {key: items, "totalCount": total, "limit": limit}
    resp.raise_for_status.return_value = None
    return resp


class TestAstronomerClient:

    def test_requires_token(self, monkeypatch):
        monkeypatch.delenv("ASTRO_API_TOKEN", raising=False)
        with pytest.raises(ConfigError):
            managed.AstronomerClient()

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("ASTRO_API_TOKEN", "tok")
        client = managed.AstronomerClient()
        assert client.session.headers["Authorization"] == "Bearer tok"

    def test_paginates(self):
        client = managed.AstronomerClient(api_token="tok")
        client.session.get = MagicMock(side_effect=[
            _page("organizations", [{"id": "o1"}, {"id": "o2"}], total=3, limit=2),
            _page("organizations", [{"id": "o3"}], total=3, limit=2),
        ])
        orgs = client.list_organizations()
        assert [o["id"] for o in orgs] == ["o1", "o2", "o3"]
        offsets = [c.kwargs["params"]["offset"] for c in client.session.get.call_args_list]
        assert offsets == [0, 2]


class TestDiscoverAstronomer:

    def _client(self):
        client = MagicMock()
        client.api_token = "tok"
        client.list_organizations.return_value = [
            {"id": "o1", "name": "acme", "status": "ACTIVE"},
            {"id": "o2", "name": "old", "status": "INACTIVE"},
        ]
        client.list_deployments.return_value = [
            {"name": "prod", "airflowVersion": "2.9.1", "webServerUrl": "acme.astronomer.run/d1"},
            {"name": "next", "airflowVersion": "3.0.0", "webServerUrl": "https://acme.astronomer.run/d2/"},
            {"name": "ancient", "airflowVersion": "1.10.15", "webServerUrl": "x"},
        ]
        return client

    def test_servers_from_active_orgs(self):
        servers, errors = managed.discover_astronomer(self._client())
        assert [s.name for s in servers] == ["acme/prod", "acme/next"]
        assert servers[0].endpoint == "https://acme.astronomer.run/d1/"
        assert servers[0].airflow_version == 2
        assert servers[1].airflow_version == 3
        assert servers[0].auth.method == "astronomer"
        assert servers[0].managed == "astronomer"
        assert len(errors) == 1
        assert "1.10.15" in errors[0]

    def test_listing_failure_is_reported(self):
        client = MagicMock()
        client.list_organizations.side_effect = requests.ConnectionError("offline")
        servers, errors = managed.discover_astronomer(client)
        assert servers == []
        assert "offline" in errors[0]


class TestConveyor:

    def test_token(self):
        done = subprocess.CompletedProcess([], 0, stdout=json.dumps({"access_token": "abc"}), stderr="")
        with patch("airdeck.managed.subprocess.run", return_value=done):
            assert managed.conveyor_token() == "abc"

    def test_token_missing_cli(self):
        with patch("airdeck.managed.subprocess.run", side_effect=FileNotFoundError("conveyor")):
            with pytest.raises(ConfigError):
                managed.conveyor_token()

    def test_default_endpoint_without_profiles(self, temp_dir):
        assert managed.conveyor_api_endpoint(temp_dir / "missing.toml") == managed.CONVEYOR_DEFAULT_API

    def test_active_profile_endpoint(self, temp_dir):
        path = temp_dir / "profiles.toml"
        path.write_text('activeprofile = "eu"\n\n[eu]\napi = "https://eu.conveyor.example/"\n')
        assert managed.conveyor_api_endpoint(path) == "https://eu.conveyor.example"

    def test_missing_active_profile(self, temp_dir):
        path = temp_dir / "profiles.toml"
        path.write_text('activeprofile = "gone"\n')
        with pytest.raises(ConfigError):
            managed.conveyor_api_endpoint(path)

    def test_discover(self):
        token = subprocess.CompletedProcess([], 0, stdout=json.dumps({"access_token": "abc"}), stderr="")
        envs = subprocess.CompletedProcess([], 0, stdout=json.dumps([
            {"name": "dev", "airflowVersion": "AirflowVersion_V2"},
            {"name": "prd", "airflowVersion": "AirflowVersion_V3"},
        ]), stderr="")
        with patch("airdeck.managed.subprocess.run", side_effect=[token, envs]), \
                patch("airdeck.managed.conveyor_api_endpoint", return_value="https://c.example"):
            servers, errors = managed.discover_conveyor()
        assert errors == []
        assert [s.endpoint for s in servers] == [
            "https://c.example/environments/dev/airflow/",
            "https://c.example/environments/prd/airflow/",
        ]
        assert [s.airflow_version for s in servers] == [2, 3]


class TestDiscoverServers:

    def test_collects_errors_per_service(self):
        with patch.dict(managed.DISCOVERERS, {
            "astronomer": lambda: ([], ["astro down"]),
            "conveyor": lambda: ([], []),
        }):
            servers, errors = managed.discover_servers(["astronomer", "conveyor", "mwaa"])
        assert servers == []
        assert errors[0] == "astro down"
        assert "mwaa" in errors[1]
