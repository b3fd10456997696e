"""Installed skills probe.

Scans each configured skill directory for <name>/SKILL.md, reads the
description and required binaries from its frontmatter, and marks a skill
available when every required binary is on PATH.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from pathlib import Path

import structlog

from ..observe import SkillInfo, SkillsSection
from ._files import read_text

logger = structlog.get_logger(__name__)

FRONTMATTER_LIMIT = 2000
DESCRIPTION_LIMIT = 100

_DESCRIPTION = re.compile(r"description:\s*[\"']?(.+?)[\"']?\s*\n")
_BINS = re.compile(r"\"bins\":\s*\[([^\]]*)\]")


def parse_skill_frontmatter(content: str) -> tuple[str, list[str]]:
    """Return (description, required_bins) from the head of a SKILL.md."""
    match = _DESCRIPTION.search(content)
    description = match.group(1).strip().strip("\"'").strip() if match else ""

    bins = []
    match = _BINS.search(content)
    if match:
        for item in match.group(1).split(","):
            binary = item.strip().replace('"', "")
            if binary:
                bins.append(binary)
    return description[:DESCRIPTION_LIMIT], bins


def _list_dir(base: Path) -> list[str]:
    return sorted(p.name for p in base.iterdir())


async def _scan_base(base: Path) -> list[SkillInfo]:
    try:
        names = await asyncio.to_thread(_list_dir, base)
    except OSError:
        logger.debug("skill_dir_unreadable", base=str(base))
        return []

    custom = "workspace" in str(base)
    skills = []
    for name in names:
        try:
            content = await read_text(base / name / "SKILL.md", limit=FRONTMATTER_LIMIT)
        except (OSError, UnicodeDecodeError):
            continue
        description, bins = parse_skill_frontmatter(content)
        skills.append(SkillInfo(
            name=name,
            description=description,
            required_bins=bins,
            available=all(shutil.which(b) is not None for b in bins),
            custom=custom,
        ))
    return skills


async def collect(config) -> SkillsSection:
    block = config.section("skills", {}) or {}
    skills: list[SkillInfo] = []
    for base in block.get("dirs", []):
        skills.extend(await _scan_base(Path(base).expanduser()))

    return SkillsSection(
        total=len(skills),
        available=sum(1 for s in skills if s.available),
        skills=skills,
    )


def fallback(config, note: str) -> SkillsSection:
    return SkillsSection(total=0, available=0, skills=[], note=note)
