"""Service reachability probe.

Each [[services]] block has a type:
- http: request url + health_path; 2xx is "reachable"
- command: shell command; exit 0 is "authenticated"
- file-exists: credential file or directory present; "authenticated"
All services are checked concurrently. The "_summary" entry is added by the
aggregator, not here.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import httpx
import structlog

from ..observe import ServiceStatus
from ._shell import run_command

logger = structlog.get_logger(__name__)

# Per service; the services section deadline (probes.DEFAULT_SECTION_TIMEOUTS) sits above it
DEFAULT_TIMEOUT_SECONDS = 5

_SCHEME = re.compile(r"^https?://")


async def check_http(
    service: dict,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceStatus:
    url = service["url"] + service.get("health_path", "")
    try:
        async with httpx.AsyncClient(
            verify=service.get("verify_tls", True),
            timeout=service.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            transport=transport,
        ) as client:
            response = await client.request(
                service.get("method", "GET"),
                url,
                headers=service.get("headers"),
                content=service.get("body"),
            )
        reachable = response.is_success
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.debug("service_http_check_failed", service=service.get("name"), error=str(exc))
        reachable = False
    return ServiceStatus(
        status="reachable" if reachable else "unreachable",
        url=_SCHEME.sub("", service["url"]),
        account=service.get("label"),
    )


async def check_command(service: dict) -> ServiceStatus:
    result = await run_command(
        service["command"],
        timeout=service.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
        env=service.get("env"),
    )
    return ServiceStatus(
        status="authenticated" if result.ok else "error",
        account=service.get("label"),
    )


def _credential_listing(path: Path) -> str | None:
    if not path.exists():
        return None
    if path.is_dir():
        return "\n".join(sorted(p.name for p in path.iterdir()))
    return str(path)


async def check_file_exists(service: dict) -> ServiceStatus:
    path = Path(service["path"]).expanduser()
    try:
        listing = await asyncio.to_thread(_credential_listing, path)
    except OSError:
        listing = None
    configured = listing is not None and ("token" in listing or len(listing) > 10)
    return ServiceStatus(
        status="authenticated" if configured else "not configured",
        account=service.get("label"),
    )


_CHECKS = {
    "http": check_http,
    "command": check_command,
    "file-exists": check_file_exists,
}


async def check_service(service: dict) -> ServiceStatus:
    """Run one service check; any failure becomes that service's "error" status."""
    kind = service.get("type")
    check = _CHECKS.get(kind)
    if check is None:
        return ServiceStatus(status="unknown", error=f"Unknown type: {kind}")

    try:
        deadline = float(service.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
        # httpx timeouts are per phase, so the whole check gets a hard cap too
        return await asyncio.wait_for(check(service), timeout=deadline)
    except asyncio.TimeoutError:
        return ServiceStatus(status="error", account=service.get("label"),
                             error=f"timed out after {deadline:g}s")
    except KeyError as exc:
        return ServiceStatus(status="error", account=service.get("label"),
                             error=f"missing setting {exc}")
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "service_check_failed",
            service=service.get("name"),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return ServiceStatus(status="error", account=service.get("label"),
                             error=str(exc) or type(exc).__name__)


def _configured(config) -> list[dict]:
    return [
        s for s in (config.section("services", []) or [])
        if isinstance(s, dict) and s.get("name")
    ]


async def collect(config) -> dict[str, ServiceStatus]:
    services = _configured(config)
    results = await asyncio.gather(*(check_service(s) for s in services))
    return {service["name"]: result for service, result in zip(services, results)}


def fallback(config, note: str) -> dict[str, ServiceStatus]:
    """Every configured service reported as failed, so the summary total stays right."""
    return {
        service["name"]: ServiceStatus(status="error", account=service.get("label"), error=note)
        for service in _configured(config)
    }
