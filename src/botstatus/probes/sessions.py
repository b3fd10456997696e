"""Session registry probe.

Returns the raw registry only; classification into primary, scheduled and
spawned sessions happens in the aggregator.
"""

from __future__ import annotations

from pathlib import Path

from ..observe import SessionRegistry
from ._files import openclaw_home, read_json


def _sessions_path(config) -> Path | None:
    block = config.section("sessions", {}) or {}
    if block.get("path"):
        return Path(block["path"]).expanduser()
    home = openclaw_home(config)
    return home / "agents" / "main" / "sessions" / "sessions.json" if home else None


async def collect(config) -> SessionRegistry:
    path = _sessions_path(config)
    if path is None:
        return SessionRegistry(entries={}, note="no openclaw_home configured")
    try:
        raw = await read_json(path)
    except (OSError, ValueError) as exc:
        return SessionRegistry(entries={}, note=f"failed to read sessions: {exc}")
    if not isinstance(raw, dict):
        return SessionRegistry(entries={}, note="sessions file is not an object")
    return SessionRegistry(entries=raw)


def fallback(config, note: str) -> SessionRegistry:
    return SessionRegistry(entries={}, note=note)
