"""System probe: CPU load, memory and disk of the local host via psutil."""

from __future__ import annotations

import asyncio
import socket

import psutil

from ..observe import SystemMetrics

GIB = 1024 ** 3


def _collect_metrics(hostname: str, ip: str, disk_path: str) -> SystemMetrics:
    """Synchronous psutil reads; run in a worker thread."""
    load_1m = psutil.getloadavg()[0]
    cores = psutil.cpu_count() or 1
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage(disk_path)

    return SystemMetrics(
        hostname=hostname,
        ip=ip,
        cpu=min(100, round(load_1m / cores * 100)),
        memory_used=round((memory.total - memory.available) / GIB, 1),
        memory_total=round(memory.total / GIB, 1),
        disk_used=round(disk.used / GIB),
        disk_total=round(disk.total / GIB),
    )


async def collect(config) -> SystemMetrics:
    block = config.section("system", {}) or {}
    return await asyncio.to_thread(
        _collect_metrics,
        socket.gethostname(),
        config.get("host_ip"),
        block.get("disk_path", "/"),
    )


def fallback(config, note: str) -> SystemMetrics:
    return SystemMetrics(hostname=socket.gethostname(), ip=config.get("host_ip"), error=note)
