"""Status data models and the in-memory snapshot cache.

Provides the section dataclass hierarchy produced by probes, the immutable
Snapshot published by the refresh scheduler, and the SnapshotCache that the
HTTP server reads from. Nothing here performs I/O.
"""

import dataclasses
import enum
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds/milliseconds or an ISO-8601 string to an aware datetime.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Values past 1e12 are milliseconds
        seconds = value / 1000 if value >= 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def iso_utc(dt: Optional[datetime]) -> Optional[str]:
    """Render as "2026-01-02T03:04:05.000Z"."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_jsonable(value: Any) -> Any:
    """Convert section results (dataclasses, enums, containers) to JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def format_uptime(seconds: float) -> str:
    """Render an uptime as "3h 12m" (or "12m" under an hour)."""
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


# ---------------------------------------------------------------------------
# Section results
# ---------------------------------------------------------------------------


@dataclass
class DegradedSection:
    """Generic result for a probe with no richer failure shape."""

    status: str = "error"
    note: str = ""


@dataclass
class BotCoreStatus:
    """Heartbeat and context vitals of the monitored bot process."""

    status: str  # "online"
    model: str
    uptime: str
    uptime_ms: int
    last_heartbeat: Optional[str]  # ISO-8601
    next_heartbeat: Optional[str]
    context_percent: Optional[float]
    context_used: Optional[int]
    context_max: Optional[int]


@dataclass
class EmailAccountStatus:
    status: str  # "connected" | "error"
    unread: int
    address: Optional[str]
    last_check: Optional[str]


@dataclass
class CommunicationStatus:
    email: dict[str, EmailAccountStatus]
    note: Optional[str] = None


@dataclass
class CronJob:
    id: Optional[str]
    name: Optional[str]
    schedule: str  # "every 15m" | "<expr> (<tz>)" | "at <iso>" | "unknown"
    enabled: bool
    last_status: str
    next_run: Optional[str]
    last_run: Optional[str]


@dataclass
class CronJobs:
    jobs: list[CronJob]
    note: Optional[str] = None


@dataclass
class SessionRegistry:
    """Raw session registry; classified into a SessionSummary by the aggregator."""

    entries: dict[str, dict]
    note: Optional[str] = None


@dataclass
class SpawnedSession:
    key: str
    label: str
    model: str
    tokens: int
    updated_at: Optional[str]
    status: str  # "running" | "aborted"


@dataclass
class SessionSummary:
    total: int
    main: int
    cron: int
    spawn: int
    spawns: list[SpawnedSession]
    note: Optional[str] = None


@dataclass
class ServiceStatus:
    status: str  # "reachable" | "unreachable" | "authenticated" | "error" | "not configured" | "unknown"
    url: Optional[str] = None
    account: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ContainerInfo:
    name: str
    status: str
    health: str  # "healthy" | "unhealthy" | "none"
    uptime: str
    ports: list[int]


@dataclass
class DevServerInfo:
    project: str
    status: str
    url: str
    pid: int


@dataclass
class SystemMetrics:
    hostname: str
    ip: str
    cpu: int = 0  # Percent of cores busy (1-min load)
    memory_used: float = 0.0  # GiB
    memory_total: float = 0.0  # GiB
    disk_used: int = 0  # GiB
    disk_total: int = 0  # GiB
    error: Optional[str] = None


@dataclass
class SkillInfo:
    name: str
    description: str
    required_bins: list[str]
    available: bool
    custom: bool


@dataclass
class SkillsSection:
    total: int
    available: int
    skills: list[SkillInfo]
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Probes and snapshots
# ---------------------------------------------------------------------------

DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class ProbeDescriptor:
    """A registered probe.

    collect: async (config) -> section result
    fallback: (config, note) -> section result returned on timeout or error
    """

    name: str
    collect: Callable[[Any], Awaitable[Any]]
    fallback: Callable[[Any, str], Any]
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class Snapshot:
    """Complete status snapshot, published atomically to the cache."""

    timestamp: str  # ISO-8601 UTC
    sections: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Detach from the caller's dict so the snapshot cannot change after publication
        object.__setattr__(self, "sections", MappingProxyType(dict(self.sections)))

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON shape: {"timestamp": ..., "<section>": ...}."""
        return {"timestamp": self.timestamp, **self.sections}


class SnapshotCache:
    """Holds the latest published Snapshot.

    Single writer (the refresh scheduler), any number of readers. set() is a
    plain reference swap, so readers see either the old or the new snapshot
    and never a mix of both.
    """

    def __init__(self) -> None:
        self._current: Optional[Snapshot] = None

    def get(self) -> Optional[Snapshot]:
        """Return the latest snapshot, or None before the first refresh completes."""
        return self._current

    def set(self, snapshot: Snapshot) -> None:
        if not isinstance(snapshot, Snapshot):
            raise TypeError(f"Expected Snapshot, got {type(snapshot).__name__}")
        self._current = snapshot
