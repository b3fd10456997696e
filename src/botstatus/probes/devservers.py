"""Dev server probe: local development servers found in the process table."""

from __future__ import annotations

import asyncio
import re

import psutil

from ..observe import DevServerInfo

DEFAULT_PROCESS_GREP = "next dev"
DEFAULT_PROCESS_MATCH = r"node.*next"
DEFAULT_PORT = "3000"

_PORT = re.compile(r"--port\s+(\d+)")


def _command_lines() -> list[tuple[int, str]]:
    lines = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmdline = proc.info.get("cmdline")
        if cmdline:
            lines.append((proc.info["pid"], " ".join(cmdline)))
    return lines


def find_dev_servers(
    processes: list[tuple[int, str]],
    block: dict,
    host_ip: str,
) -> list[DevServerInfo]:
    """Match command lines against the configured pattern, one entry per port."""
    grep = block.get("process_grep", DEFAULT_PROCESS_GREP)
    match = re.compile(block.get("process_match", DEFAULT_PROCESS_MATCH))
    base = block.get("project_base_path", "/")
    project_pattern = re.compile(re.escape(base) + r"([^/\s]+)")

    servers = []
    seen_ports = set()
    for pid, cmdline in processes:
        if grep not in cmdline or not match.search(cmdline):
            continue
        port_match = _PORT.search(cmdline)
        port = port_match.group(1) if port_match else DEFAULT_PORT
        if port in seen_ports:
            continue
        seen_ports.add(port)
        project_match = project_pattern.search(cmdline)
        servers.append(DevServerInfo(
            project=project_match.group(1) if project_match else "unknown",
            status="running",
            url=f"{host_ip}:{port}",
            pid=pid,
        ))
    return servers


async def collect(config) -> list[DevServerInfo]:
    block = config.section("dev_servers")
    if not block:
        return []
    processes = await asyncio.to_thread(_command_lines)
    return find_dev_servers(processes, block, config.get("host_ip"))


def fallback(config, note: str) -> list:
    return []
