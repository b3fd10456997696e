"""Bounded-time execution of a single probe.

run_probe() never raises to its caller: a probe that times out or throws
is replaced by its own fallback result. On timeout the runner stops waiting
right away, even when the probe ignores cancellation.
"""

import asyncio
import time
from typing import Any

import structlog

from ..observe import DegradedSection, ProbeDescriptor

logger = structlog.get_logger(__name__)


async def run_probe(probe: ProbeDescriptor, config: Any) -> Any:
    """Run one probe with its deadline and return its section result.

    Args:
        probe: The registered probe.
        config: Static configuration passed through to the probe.

    Returns:
        The probe's result, or probe.fallback(config, note) on timeout/error.
    """
    start = time.perf_counter()
    try:
        task = asyncio.ensure_future(probe.collect(config))
    except Exception as exc:  # noqa: BLE001
        logger.warning("probe_failed", probe=probe.name, error=str(exc))
        return _fallback(probe, config, str(exc) or type(exc).__name__)

    try:
        done, _ = await asyncio.wait({task}, timeout=probe.timeout_seconds)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_drain)
        raise

    if not done:
        # Abandon the probe; whatever it eventually does is drained, not awaited.
        task.cancel()
        task.add_done_callback(_drain)
        note = f"timed out after {probe.timeout_seconds:g}s"
        logger.warning("probe_timed_out", probe=probe.name, timeout_seconds=probe.timeout_seconds)
        return _fallback(probe, config, note)

    if task.cancelled():
        logger.warning("probe_cancelled", probe=probe.name)
        return _fallback(probe, config, "cancelled")

    exc = task.exception()
    if exc is not None:
        logger.warning(
            "probe_failed",
            probe=probe.name,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return _fallback(probe, config, str(exc) or type(exc).__name__)

    logger.debug(
        "probe_completed",
        probe=probe.name,
        duration_ms=round((time.perf_counter() - start) * 1000, 1),
    )
    return task.result()


def _fallback(probe: ProbeDescriptor, config: Any, note: str) -> Any:
    try:
        return probe.fallback(config, note)
    except Exception as exc:  # noqa: BLE001
        logger.error("probe_fallback_failed", probe=probe.name, error=str(exc))
        return DegradedSection(status="error", note=note)


def _drain(task: asyncio.Future) -> None:
    """Retrieve an abandoned probe's outcome so it is never reported as unhandled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("abandoned_probe_failed", error=str(exc))
