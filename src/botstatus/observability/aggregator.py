"""Snapshot aggregation: concurrent fan-out over all probes, then merge.

Every probe goes through run_probe(), so no single probe can fail the
aggregation. Section order follows registration order, not completion
order. Two rules that combine data across probes live here rather than in
the probes themselves: session classification and the services summary.
"""

from __future__ import annotations

import asyncio
import enum
import json
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

import structlog

from ..observe import (
    ProbeDescriptor,
    SessionSummary,
    Snapshot,
    SpawnedSession,
    iso_utc,
    parse_timestamp,
    to_jsonable,
)
from .probe_runner import run_probe

logger = structlog.get_logger(__name__)

SESSIONS_SECTION = "sessions"
SERVICES_SECTION = "services"
SUMMARY_KEY = "_summary"

ONLINE_STATUSES = frozenset({"reachable", "authenticated"})

PostProcessor = Callable[[Any], Any]


class SessionKind(str, enum.Enum):
    PRIMARY = "main"
    SCHEDULED = "cron"
    SPAWNED = "spawn"


def classify_session_key(key: str) -> Optional[SessionKind]:
    """Classify a session registry key.

    Spawned/subagent patterns win over cron, which wins over the primary
    ":main" suffix. Keys matching none return None.
    """
    if ":spawn:" in key or ":subagent:" in key or key.startswith("spawn:"):
        return SessionKind.SPAWNED
    if ":cron:" in key:
        return SessionKind.SCHEDULED
    if key.endswith(":main"):
        return SessionKind.PRIMARY
    return None


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def summarize_sessions(registry: Any) -> dict[str, Any]:
    """Turn the raw session registry section into counts plus spawned tasks.

    Args:
        registry: {"entries": {key: entry}, "note"?: str} as produced by the
            sessions probe (or its fallback).
    """
    registry = registry if isinstance(registry, Mapping) else {}
    entries = registry.get("entries")
    entries = entries if isinstance(entries, Mapping) else {}

    counts = {kind: 0 for kind in SessionKind}
    spawned: list[tuple[Optional[datetime], SpawnedSession]] = []

    for key, data in entries.items():
        kind = classify_session_key(str(key))
        if kind is None:
            continue
        counts[kind] += 1
        if kind is not SessionKind.SPAWNED:
            continue

        data = data if isinstance(data, Mapping) else {}
        origin = data.get("origin") if isinstance(data.get("origin"), Mapping) else {}
        updated = parse_timestamp(data.get("updatedAt"))
        spawned.append((
            updated,
            SpawnedSession(
                key=str(key),
                label=data.get("label") or origin.get("label") or "Unknown Task",
                model=data.get("model") or "unknown",
                tokens=_as_int(data.get("totalTokens")),
                updated_at=iso_utc(updated),
                status="aborted" if data.get("abortedLastRun") else "running",
            ),
        ))

    # Most recent first; entries without a timestamp go last
    spawned.sort(key=lambda pair: (pair[0] is None, -(pair[0].timestamp() if pair[0] else 0.0)))

    summary = SessionSummary(
        total=len(entries),
        main=counts[SessionKind.PRIMARY],
        cron=counts[SessionKind.SCHEDULED],
        spawn=counts[SessionKind.SPAWNED],
        spawns=[session for _, session in spawned],
        note=registry.get("note"),
    )
    return to_jsonable(summary)


def summarize_services(services: Any) -> dict[str, Any]:
    """Append the synthetic "_summary" entry to the services section.

    online counts entries whose status is "reachable" or "authenticated";
    total counts every non-summary entry.
    """
    services = dict(services) if isinstance(services, Mapping) else {}
    services.pop(SUMMARY_KEY, None)

    online = sum(
        1
        for result in services.values()
        if isinstance(result, Mapping) and result.get("status") in ONLINE_STATUSES
    )
    services[SUMMARY_KEY] = {"online": online, "total": len(services)}
    return services


DEFAULT_POST_PROCESSORS: dict[str, PostProcessor] = {
    SESSIONS_SECTION: summarize_sessions,
    SERVICES_SECTION: summarize_services,
}


class SnapshotAggregator:
    """Runs every registered probe concurrently and assembles a Snapshot."""

    def __init__(
        self,
        probes: Iterable[ProbeDescriptor],
        post_processors: Optional[Mapping[str, PostProcessor]] = None,
    ):
        self.probes: tuple[ProbeDescriptor, ...] = tuple(probes)
        names = [probe.name for probe in self.probes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate probe names: {', '.join(duplicates)}")
        if "timestamp" in names:
            raise ValueError("'timestamp' is reserved and cannot be a probe name")

        self.post_processors: dict[str, PostProcessor] = dict(
            DEFAULT_POST_PROCESSORS if post_processors is None else post_processors
        )

    @property
    def section_names(self) -> list[str]:
        return [probe.name for probe in self.probes]

    async def run(self, config: Any) -> Snapshot:
        """Collect every section and return a fully formed Snapshot.

        Probe failures are already replaced by fallbacks; only assembling the
        snapshot itself can fail.

        Raises:
            ValueError: If a section result cannot be rendered as JSON
        """
        results = await asyncio.gather(*(run_probe(probe, config) for probe in self.probes))

        sections: dict[str, Any] = {}
        for probe, result in zip(self.probes, results):
            section = to_jsonable(result)
            post_process = self.post_processors.get(probe.name)
            if post_process is not None:
                section = post_process(section)
            sections[probe.name] = section

        try:
            json.dumps(sections, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"snapshot is not JSON-serializable: {exc}") from exc

        timestamp = iso_utc(datetime.now(timezone.utc))
        logger.debug("snapshot_assembled", timestamp=timestamp, sections=len(sections))
        return Snapshot(timestamp=timestamp, sections=sections)
