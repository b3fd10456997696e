"""File helpers shared by probes. Blocking reads run in a worker thread."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Optional

HEARTBEAT_STATE = Path("memory") / "heartbeat-state.json"


async def read_text(path: str | Path, limit: Optional[int] = None) -> str:
    text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    return text[:limit] if limit is not None else text


async def read_json(path: str | Path) -> Any:
    return json.loads(await read_text(path))


def openclaw_home(config) -> Optional[Path]:
    """Bot home directory from config, else the OPENCLAW_HOME variable."""
    home = config.get("openclaw_home") or os.environ.get("OPENCLAW_HOME")
    return Path(home).expanduser() if home else None


async def read_heartbeat_state(config) -> dict:
    """Heartbeat state written by the bot into its workspace ({} if unreadable)."""
    path = Path(config.get("workspace")).expanduser() / HEARTBEAT_STATE
    try:
        state = await read_json(path)
    except (OSError, ValueError):
        return {}
    return state if isinstance(state, dict) else {}
