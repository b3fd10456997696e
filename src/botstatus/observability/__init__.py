"""Snapshot pipeline for botstatus.

probe_runner: bounded-time execution of one probe with fallback
aggregator: concurrent fan-out over all probes, merge into a Snapshot
scheduler: cold-start refresh plus periodic, non-overlapping refreshes
http_server: read-only HTTP endpoints over the snapshot cache
"""

from .aggregator import SnapshotAggregator, classify_session_key, summarize_services, summarize_sessions
from .http_server import create_app
from .probe_runner import run_probe
from .scheduler import RefreshScheduler, RefreshState

__all__ = [
    "SnapshotAggregator",
    "RefreshScheduler",
    "RefreshState",
    "classify_session_key",
    "create_app",
    "run_probe",
    "summarize_services",
    "summarize_sessions",
]
