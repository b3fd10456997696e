"""Container probe: container list from the Portainer Docker API."""

from __future__ import annotations

import json

import httpx
import structlog

from ..observe import ContainerInfo

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5


def container_health(status_text: str) -> str:
    # "Up 3 hours (unhealthy)" contains "healthy" too, so check it first
    if "unhealthy" in status_text:
        return "unhealthy"
    if "healthy" in status_text:
        return "healthy"
    return "none"


def parse_container(raw: dict) -> ContainerInfo:
    names = raw.get("Names") or [""]
    status_text = raw.get("Status") or ""
    return ContainerInfo(
        name=str(names[0]).replace("/", "", 1),
        status=raw.get("State") or "unknown",
        health=container_health(status_text),
        uptime=status_text,
        ports=[p["PublicPort"] for p in raw.get("Ports") or [] if p.get("PublicPort")],
    )


async def fetch_containers(
    block: dict,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ContainerInfo]:
    url = f"{block['url']}/api/endpoints/{block['endpoint_id']}/docker/containers/json"
    params = {}
    if block.get("container_filter"):
        params["filters"] = json.dumps({"name": [block["container_filter"]]})

    try:
        async with httpx.AsyncClient(
            verify=block.get("verify_tls", True),
            timeout=block.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            transport=transport,
        ) as client:
            response = await client.get(
                url,
                params=params,
                headers={"X-API-Key": str(block.get("token", ""))},
            )
        data = response.json() if response.is_success else None
    except (httpx.HTTPError, ValueError) as exc:
        logger.debug("container_list_failed", error=str(exc))
        return []

    if not isinstance(data, list):
        return []
    return [parse_container(c) for c in data if isinstance(c, dict)]


async def collect(config) -> list[ContainerInfo]:
    block = config.section("docker")
    if not block:
        return []
    return await fetch_containers(block)


def fallback(config, note: str) -> list:
    return []
