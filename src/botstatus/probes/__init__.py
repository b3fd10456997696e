"""Default probe set.

Each probe module exposes async collect(config) and fallback(config, note).
build_default_probes() registers them in snapshot order.
"""

from __future__ import annotations

from ..observe import ProbeDescriptor
from . import core, cron, devservers, docker, email, services, sessions, skills, system

# (section name, module) in the order sections appear in the snapshot
DEFAULT_PROBE_MODULES = (
    ("bot", core),
    ("communication", email),
    ("crons", cron),
    ("sessions", sessions),
    ("services", services),
    ("containers", docker),
    ("dev_servers", devservers),
    ("system", system),
    ("skills", skills),
)

# Sections whose items carry their own deadline (mail 8s, services 5s) need headroom above it
DEFAULT_SECTION_TIMEOUTS = {
    "communication": 10,
    "services": 10,
}


def probe_timeout(config, name: str) -> float:
    """[probes.timeouts] override, else the section default, else probes.timeout_seconds."""
    probes_block = config.section("probes", {}) or {}
    overrides = probes_block.get("timeouts", {}) if isinstance(probes_block, dict) else {}
    if name in overrides:
        return float(overrides[name])
    return float(DEFAULT_SECTION_TIMEOUTS.get(name, config.get("probes.timeout_seconds")))


def build_default_probes(config) -> list[ProbeDescriptor]:
    return [
        ProbeDescriptor(
            name=name,
            collect=module.collect,
            fallback=module.fallback,
            timeout_seconds=probe_timeout(config, name),
        )
        for name, module in DEFAULT_PROBE_MODULES
    ]


__all__ = ["DEFAULT_PROBE_MODULES", "build_default_probes", "probe_timeout"]
