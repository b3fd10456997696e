"""Unit tests for the service reachability and container probes.

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from src.botstatus.config.manager import ConfigManager
from src.botstatus.probes import docker, services
from src.botstatus.probes.docker import container_health, fetch_containers, parse_container
from src.botstatus.probes.services import check_file_exists, check_http, check_service


def _transport(status_by_path: dict[str, int]):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_by_path.get(request.url.path, 404), text="ok")
    return httpx.MockTransport(handler)


def _refusing_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.MockTransport(handler)


# ===================================================================
# HTTP services
# ===================================================================


class TestHttpCheck:

    @pytest.mark.asyncio
    async def test_2xx_is_reachable(self):
        service = {
            "name": "homeassistant",
            "type": "http",
            "url": "http://ha.local:8123",
            "health_path": "/api/",
            "label": "home",
        }
        result = await check_http(service, transport=_transport({"/api/": 200}))
        assert result.status == "reachable"
        assert result.url == "ha.local:8123"
        assert result.account == "home"

    @pytest.mark.asyncio
    async def test_non_2xx_is_unreachable(self):
        service = {"name": "ha", "type": "http", "url": "https://ha.local", "health_path": "/api/"}
        result = await check_http(service, transport=_transport({"/api/": 401}))
        assert result.status == "unreachable"
        assert result.url == "ha.local"

    @pytest.mark.asyncio
    async def test_connection_error_is_unreachable(self):
        service = {"name": "ha", "type": "http", "url": "http://ha.local"}
        result = await check_http(service, transport=_refusing_transport())
        assert result.status == "unreachable"

    @pytest.mark.asyncio
    async def test_method_headers_and_body_are_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = request.content
            return httpx.Response(204)

        service = {
            "name": "api",
            "type": "http",
            "url": "http://api.local",
            "health_path": "/ping",
            "method": "POST",
            "headers": {"Authorization": "Bearer t"},
            "body": "{}",
        }
        result = await check_http(service, transport=httpx.MockTransport(handler))

        assert result.status == "reachable"
        assert seen == {"method": "POST", "auth": "Bearer t", "body": b"{}"}


# ===================================================================
# Command and file-exists services
# ===================================================================


class TestOtherServiceTypes:

    @pytest.mark.asyncio
    async def test_command_exit_zero_is_authenticated(self):
        result = await check_service({"name": "gh", "type": "command", "command": "true", "label": "octo"})
        assert result.status == "authenticated"
        assert result.account == "octo"

    @pytest.mark.asyncio
    async def test_command_failure_is_error(self):
        result = await check_service({"name": "gh", "type": "command", "command": "false"})
        assert result.status == "error"

    @pytest.mark.asyncio
    async def test_credential_dir_with_token(self, tmp_path):
        (tmp_path / "token.json").write_text("{}")
        result = await check_file_exists({"name": "g", "type": "file-exists", "path": str(tmp_path)})
        assert result.status == "authenticated"

    @pytest.mark.asyncio
    async def test_empty_credential_dir_is_not_configured(self, tmp_path):
        result = await check_file_exists({"name": "g", "type": "file-exists", "path": str(tmp_path)})
        assert result.status == "not configured"

    @pytest.mark.asyncio
    async def test_credential_file_present(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("{}")
        result = await check_file_exists({"name": "g", "type": "file-exists", "path": str(path)})
        assert result.status == "authenticated"

    @pytest.mark.asyncio
    async def test_missing_credential_path(self, tmp_path):
        result = await check_file_exists(
            {"name": "g", "type": "file-exists", "path": str(tmp_path / "absent")}
        )
        assert result.status == "not configured"

    @pytest.mark.asyncio
    async def test_unknown_type(self):
        result = await check_service({"name": "x", "type": "smtp"})
        assert result.status == "unknown"
        assert result.error == "Unknown type: smtp"

    @pytest.mark.asyncio
    async def test_missing_setting(self):
        result = await check_service({"name": "x", "type": "command"})
        assert result.status == "error"
        assert "command" in result.error


class TestServicesCollect:

    @pytest.mark.asyncio
    async def test_collect_keys_by_name(self, tmp_path):
        config = ConfigManager.from_mapping({"services": [
            {"name": "gh", "type": "command", "command": "true"},
            {"name": "broken", "type": "command", "command": "false"},
            {"name": "creds", "type": "file-exists", "path": str(tmp_path / "absent")},
            {"type": "command", "command": "true"},
        ]})

        result = await services.collect(config)

        assert list(result) == ["gh", "broken", "creds"]
        assert result["gh"].status == "authenticated"
        assert result["broken"].status == "error"
        assert result["creds"].status == "not configured"

    @pytest.mark.asyncio
    async def test_collect_without_services(self):
        assert await services.collect(ConfigManager.from_mapping({})) == {}

    def test_fallback_marks_every_configured_service(self):
        config = ConfigManager.from_mapping({"services": [
            {"name": "gh", "type": "command", "command": "true", "label": "octo"},
            {"name": "ha", "type": "http", "url": "http://ha.local"},
            {"type": "command", "command": "true"},
        ]})
        result = services.fallback(config, "timed out after 10s")
        assert list(result) == ["gh", "ha"]
        assert result["gh"].status == "error"
        assert result["gh"].error == "timed out after 10s"
        assert result["gh"].account == "octo"

    def test_fallback_without_services(self):
        assert services.fallback(ConfigManager.from_mapping({}), "boom") == {}


class TestServiceIsolation:

    @pytest.mark.asyncio
    async def test_hung_command_does_not_hide_healthy_service(self):
        config = ConfigManager.from_mapping({"services": [
            {"name": "gh", "type": "command", "command": "true"},
            {"name": "slow", "type": "command", "command": "sleep 30", "timeout_seconds": 0.3},
        ]})
        loop = asyncio.get_running_loop()
        start = loop.time()

        result = await services.collect(config)

        assert loop.time() - start < 5
        assert result["gh"].status == "authenticated"
        assert result["slow"].status == "error"

    @pytest.mark.asyncio
    async def test_each_check_has_a_hard_deadline(self):
        async def never_answers(service):
            await asyncio.Event().wait()

        with patch.dict(services._CHECKS, {"http": never_answers}):
            result = await check_service(
                {"name": "ha", "type": "http", "url": "http://ha.local", "timeout_seconds": 0.2}
            )

        assert result.status == "error"
        assert result.error == "timed out after 0.2s"

    @pytest.mark.asyncio
    async def test_malformed_service_does_not_hide_healthy_service(self):
        config = ConfigManager.from_mapping({"services": [
            {"name": "gh", "type": "command", "command": "true"},
            {"name": "ha", "type": "http", "url": "http://127.0.0.1:9", "headers": {"X-Port": 8123}},
            {"name": "odd", "type": "command", "command": "true", "timeout_seconds": "soon"},
        ]})

        result = await services.collect(config)

        assert result["gh"].status == "authenticated"
        assert result["ha"].status == "error"
        assert result["ha"].error
        assert result["odd"].status == "error"

    @pytest.mark.asyncio
    async def test_unexpected_check_error_is_reported_per_service(self):
        async def explode(service):
            raise RuntimeError("exploded")

        with patch.dict(services._CHECKS, {"command": explode}):
            result = await check_service({"name": "gh", "type": "command", "command": "true"})

        assert result.status == "error"
        assert result.error == "exploded"


# ===================================================================
# Containers
# ===================================================================


CONTAINERS = [
    {
        "Names": ["/web"],
        "State": "running",
        "Status": "Up 2 hours (healthy)",
        "Ports": [{"PrivatePort": 80, "PublicPort": 8080}, {"PrivatePort": 443}],
    },
    {
        "Names": ["/db"],
        "State": "running",
        "Status": "Up 5 minutes (unhealthy)",
        "Ports": [],
    },
    {
        "Names": ["/job"],
        "State": "exited",
        "Status": "Exited (0) 3 hours ago",
    },
]

DOCKER_BLOCK = {
    "url": "https://portainer.local:9443",
    "endpoint_id": 2,
    "token": "ptr_key",
}


class TestContainerProbe:

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("Up 2 hours (healthy)", "healthy"),
            ("Up 2 hours (unhealthy)", "unhealthy"),
            ("Up 2 hours", "none"),
            ("", "none"),
        ],
    )
    def test_container_health(self, status, expected):
        assert container_health(status) == expected

    def test_parse_container(self):
        info = parse_container(CONTAINERS[0])
        assert info.name == "web"
        assert info.status == "running"
        assert info.health == "healthy"
        assert info.uptime == "Up 2 hours (healthy)"
        assert info.ports == [8080]

    def test_parse_container_sparse(self):
        info = parse_container({})
        assert info.name == ""
        assert info.status == "unknown"
        assert info.ports == []

    @pytest.mark.asyncio
    async def test_fetch_containers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers.get("x-api-key")
            seen["filters"] = request.url.params.get("filters")
            return httpx.Response(200, json=CONTAINERS)

        block = {**DOCKER_BLOCK, "container_filter": "web"}
        result = await fetch_containers(block, transport=httpx.MockTransport(handler))

        assert seen["path"] == "/api/endpoints/2/docker/containers/json"
        assert seen["key"] == "ptr_key"
        assert json.loads(seen["filters"]) == {"name": ["web"]}
        assert [c.name for c in result] == ["web", "db", "job"]
        assert [c.health for c in result] == ["healthy", "unhealthy", "none"]

    @pytest.mark.asyncio
    async def test_fetch_without_filter_sends_no_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["query"] = request.url.query
            return httpx.Response(200, json=[])

        assert await fetch_containers(DOCKER_BLOCK, transport=httpx.MockTransport(handler)) == []
        assert seen["query"] == b""

    @pytest.mark.asyncio
    async def test_error_status_yields_empty_list(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"message": "down"}))
        assert await fetch_containers(DOCKER_BLOCK, transport=transport) == []

    @pytest.mark.asyncio
    async def test_non_list_body_yields_empty_list(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"message": "?"}))
        assert await fetch_containers(DOCKER_BLOCK, transport=transport) == []

    @pytest.mark.asyncio
    async def test_connection_error_yields_empty_list(self):
        assert await fetch_containers(DOCKER_BLOCK, transport=_refusing_transport()) == []

    @pytest.mark.asyncio
    async def test_collect_unconfigured(self):
        assert await docker.collect(ConfigManager.from_mapping({})) == []

    def test_fallback_is_empty(self):
        assert docker.fallback(ConfigManager.from_mapping({}), "boom") == []
