"""Communication probe: unread counts for configured mail accounts.

Each [[email]] block names a shell command that prints the unread count.
All accounts are checked concurrently.
"""

from __future__ import annotations

import asyncio
import re

import structlog

from ..observe import CommunicationStatus, EmailAccountStatus, iso_utc, parse_timestamp
from ._files import read_heartbeat_state
from ._shell import run_command

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8

_LEADING_INT = re.compile(r"^\s*(\d+)")


def parse_unread(output: str) -> int:
    """Leading integer of the command output; 0 for "No results" or junk."""
    match = _LEADING_INT.match(output)
    return int(match.group(1)) if match else 0


async def _check_account(account: dict, last_check: str | None) -> EmailAccountStatus:
    try:
        result = await run_command(
            account["command"],
            timeout=account.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            env=account.get("env"),
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "email_check_failed",
            account=account.get("name"),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        result = None

    if result is not None and result.ok:
        return EmailAccountStatus(
            status="connected",
            unread=parse_unread(result.output),
            address=account.get("address"),
            last_check=last_check,
        )
    return EmailAccountStatus(
        status="error",
        unread=0,
        address=account.get("address"),
        last_check=last_check,
    )


async def collect(config) -> CommunicationStatus:
    accounts = [a for a in (config.section("email", []) or []) if a.get("command")]

    state = await read_heartbeat_state(config)
    last_checks = state.get("lastChecks") if isinstance(state.get("lastChecks"), dict) else {}
    last_check = iso_utc(parse_timestamp(last_checks.get("email")))

    statuses = await asyncio.gather(*(_check_account(a, last_check) for a in accounts))
    return CommunicationStatus(
        email={
            account.get("name") or account["command"]: status
            for account, status in zip(accounts, statuses)
        },
    )


def fallback(config, note: str) -> CommunicationStatus:
    return CommunicationStatus(email={}, note=note)
