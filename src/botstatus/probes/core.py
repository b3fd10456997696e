"""Bot core probe: heartbeat, model and context vitals."""

from __future__ import annotations

import os
import time
from datetime import datetime, timedelta
from typing import Optional

import psutil

from ..observe import BotCoreStatus, DegradedSection, format_uptime, iso_utc, parse_timestamp
from ._files import openclaw_home, read_heartbeat_state, read_json

DEFAULT_AUTH_PROFILE = "anthropic:manual"
DEFAULT_HEARTBEAT_INTERVAL_MINUTES = 30

# Process handle cached at module level; avoids repeated PID lookups
_process: Optional[psutil.Process] = None


def _get_process() -> psutil.Process:
    """Return a cached psutil.Process handle for this process."""
    global _process
    if _process is None:
        _process = psutil.Process(os.getpid())
    return _process


def last_heartbeat_from_state(state: dict) -> Optional[datetime]:
    """vitals.updatedAt if present, else the newest lastChecks timestamp."""
    vitals = state.get("vitals") if isinstance(state.get("vitals"), dict) else {}
    if vitals.get("updatedAt"):
        return parse_timestamp(vitals["updatedAt"])

    last_checks = state.get("lastChecks") if isinstance(state.get("lastChecks"), dict) else {}
    stamps = [
        v for v in last_checks.values()
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v
    ]
    return parse_timestamp(max(stamps)) if stamps else None


async def _has_auth_token(config, profile: str) -> Optional[bool]:
    """True/False when the auth profile file is readable, None otherwise."""
    home = openclaw_home(config)
    if home is None:
        return None
    try:
        auth = await read_json(home / "agents" / "main" / "agent" / "auth-profiles.json")
    except (OSError, ValueError):
        return None
    profiles = auth.get("profiles") if isinstance(auth, dict) else None
    entry = profiles.get(profile) if isinstance(profiles, dict) else None
    return bool(isinstance(entry, dict) and entry.get("token"))


async def collect(config) -> BotCoreStatus:
    block = config.section("core", {}) or {}
    model = config.get("model")

    has_token = await _has_auth_token(config, block.get("auth_profile", DEFAULT_AUTH_PROFILE))
    if has_token is False:
        model = "no token"

    state = await read_heartbeat_state(config)
    vitals = state.get("vitals") if isinstance(state.get("vitals"), dict) else {}
    # Vitals are written by the bot itself, so they are fresher than config
    if vitals.get("model"):
        model = vitals["model"]

    last_heartbeat = last_heartbeat_from_state(state)
    interval = timedelta(
        minutes=block.get("heartbeat_interval_minutes", DEFAULT_HEARTBEAT_INTERVAL_MINUTES)
    )
    next_heartbeat = last_heartbeat + interval if last_heartbeat else None

    uptime_seconds = max(0.0, time.time() - _get_process().create_time())

    return BotCoreStatus(
        status="online",
        model=model,
        uptime=format_uptime(uptime_seconds),
        uptime_ms=int(uptime_seconds * 1000),
        last_heartbeat=iso_utc(last_heartbeat),
        next_heartbeat=iso_utc(next_heartbeat),
        context_percent=vitals.get("contextPercent"),
        context_used=vitals.get("contextUsed"),
        context_max=vitals.get("contextMax"),
    )


def fallback(config, note: str) -> DegradedSection:
    return DegradedSection(status="error", note=note)
