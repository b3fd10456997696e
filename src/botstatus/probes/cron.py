"""Scheduled jobs probe: enabled jobs from the bot's cron jobs file."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..observe import CronJob, CronJobs, iso_utc, parse_timestamp
from ._files import openclaw_home, read_json


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def describe_schedule(schedule: Optional[dict]) -> str:
    """Human-readable schedule: "every 15m", "every 2h", "0 7 * * * (UTC)", "at <iso>"."""
    if not isinstance(schedule, dict):
        return "unknown"
    kind = schedule.get("kind")
    if kind == "every" and isinstance(schedule.get("everyMs"), (int, float)):
        minutes = _round_half_up(schedule["everyMs"] / 60_000)
        if minutes >= 60:
            return f"every {_round_half_up(minutes / 60)}h"
        return f"every {minutes}m"
    if kind == "cron" and schedule.get("expr"):
        text = str(schedule["expr"])
        if schedule.get("tz"):
            text += f" ({schedule['tz']})"
        return text
    if kind == "at":
        at = iso_utc(parse_timestamp(schedule.get("atMs")))
        if at:
            return f"at {at}"
    return "unknown"


def _jobs_path(config) -> Optional[Path]:
    block = config.section("cron", {}) or {}
    if block.get("jobs_path"):
        return Path(block["jobs_path"]).expanduser()
    home = openclaw_home(config)
    return home / "cron" / "jobs.json" if home else None


def parse_jobs(raw: dict) -> list[CronJob]:
    jobs = []
    for job in raw.get("jobs") or []:
        if not isinstance(job, dict) or not job.get("enabled"):
            continue
        state = job.get("state") if isinstance(job.get("state"), dict) else {}
        jobs.append(CronJob(
            id=job.get("id"),
            name=job.get("name"),
            schedule=describe_schedule(job.get("schedule")),
            enabled=True,
            last_status=state.get("lastStatus") or "unknown",
            next_run=iso_utc(parse_timestamp(state.get("nextRunAtMs"))),
            last_run=iso_utc(parse_timestamp(state.get("lastRunAtMs"))),
        ))
    return jobs


async def collect(config) -> CronJobs:
    path = _jobs_path(config)
    if path is None:
        return CronJobs(jobs=[], note="no cron.jobs_path or openclaw_home configured")
    try:
        raw = await read_json(path)
    except OSError:
        return CronJobs(jobs=[], note="cron jobs file not found")
    except ValueError as exc:
        return CronJobs(jobs=[], note=f"cron jobs file unreadable: {exc}")
    return CronJobs(jobs=parse_jobs(raw if isinstance(raw, dict) else {}))


def fallback(config, note: str) -> CronJobs:
    return CronJobs(jobs=[], note=note)
