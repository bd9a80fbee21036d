"""Log acquisition strategies, one per fallback tier.

Each strategy takes a :class:`FetchContext` and returns a non-empty
:class:`LogBundle`, or None when it cannot produce anything usable.
"""

import logging
import shutil
import subprocess
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from ..constants import (
    LOCAL_LOG_PATHS,
    LOG_UNAVAILABLE_PLACEHOLDER,
    PER_JOB_LINE_DIVISOR,
    PER_JOB_LINE_FLOOR,
)
from ..utils import split_log_lines, tail_lines
from .models import AnalysisScope, FetchContext, LogBundle, LogSource

if TYPE_CHECKING:
    from ..buildkite.models import RunContext

logger = logging.getLogger(__name__)

Strategy = Callable[[FetchContext], LogBundle | None]

JOURNAL_TIMEOUT = 15


def per_job_line_budget(
    max_lines: int, divisor: int = PER_JOB_LINE_DIVISOR, floor: int = PER_JOB_LINE_FLOOR
) -> int:
    """Lines kept from each job when logs of a whole build are combined."""
    return max(max_lines // divisor, floor)


def job_header(name: str, job_id: str) -> str:
    return f"=== Job: {name} ({job_id}) ==="


def fetch_build_logs_via_api(ctx: FetchContext) -> LogBundle | None:
    """Combine the tail of every command job's log in the current build."""
    if ctx.scope is not AnalysisScope.BUILD:
        return None
    if ctx.client is None:
        ctx.note("build logs: no Buildkite API token")
        return None
    if not ctx.run.has_build_coordinates:
        ctx.note("build logs: missing organization, pipeline or build number")
        return None

    build = ctx.client.get_build(ctx.run.build_number)
    if build is None:
        ctx.note(f"build logs: could not fetch build #{ctx.run.build_number}")
        return None

    jobs = build.script_jobs
    if not jobs:
        ctx.note(f"build logs: no command jobs in build #{ctx.run.build_number}")
        return None

    logger.info(f"Found {len(jobs)} jobs in build #{ctx.run.build_number}")
    budget = per_job_line_budget(ctx.max_lines)

    sections: list[list[str]] = []
    fetched = 0
    any_truncated = False
    for job in jobs:
        section = [job_header(job.name, job.id)]

        raw = ctx.client.get_job_log(ctx.run.build_number, job.id)
        job_lines = split_log_lines(raw) if raw else []
        if not any(line.strip() for line in job_lines):
            logger.warning(f"Failed to fetch logs for job {job.id}")
            section.append(LOG_UNAVAILABLE_PLACEHOLDER)
        else:
            kept, dropped = tail_lines(job_lines, budget)
            section.extend(kept)
            any_truncated = any_truncated or dropped
            fetched += 1
        section.append("")
        sections.append(section)

    if fetched == 0:
        ctx.note("build logs: no job log could be fetched")
        return None

    logger.info(f"Successfully fetched logs for {fetched}/{len(jobs)} jobs ({budget} lines per job)")
    kept_sections = drop_leading_sections(sections, ctx.max_lines)
    if len(kept_sections) < len(sections):
        logger.info(f"Kept the last {len(kept_sections)} of {len(sections)} job sections to fit {ctx.max_lines} lines")
        any_truncated = True

    combined = [line for section in kept_sections for line in section]
    return LogBundle(lines=combined, source=LogSource.API_BUILD_MULTI_JOB, truncated=any_truncated)


def drop_leading_sections(sections: list[list[str]], max_lines: int) -> list[list[str]]:
    """Drop whole job sections from the front until the rest fits in ``max_lines``.

    The last section is always kept, so a single job may use its full
    per-job budget even when that exceeds ``max_lines``.
    """
    kept = list(sections)
    total = sum(len(section) for section in kept)
    while len(kept) > 1 and total > max_lines:
        total -= len(kept.pop(0))
    return kept


def fetch_job_log_via_api(ctx: FetchContext) -> LogBundle | None:
    """Fetch the log of the current job and keep its tail."""
    if ctx.client is None:
        ctx.note("job log: no Buildkite API token")
        return None
    if not ctx.run.has_build_coordinates or not ctx.run.job_id:
        ctx.note("job log: missing build coordinates or job id")
        return None

    logger.info("Attempting to fetch logs via Buildkite API...")
    raw = ctx.client.get_job_log(ctx.run.build_number, ctx.run.job_id)
    lines = split_log_lines(raw) if raw else []
    if not any(line.strip() for line in lines):
        ctx.note(f"job log: no content for job {ctx.run.job_id}")
        return None

    bundle = LogBundle.from_lines(lines, LogSource.API_JOB, ctx.max_lines)
    logger.info(f"Successfully fetched logs via API ({bundle.line_count} lines)")
    return bundle


def summarize_agent_environment(ctx: FetchContext) -> LogBundle | None:
    """Describe the job from agent environment variables when running on an agent."""
    if shutil.which("buildkite-agent") is None:
        ctx.note("agent summary: buildkite-agent not found on PATH")
        return None

    logger.info("Collecting information from buildkite-agent environment...")
    run = ctx.run
    fields = _run_fields(run) + [
        f"Command: {run.command or 'Unknown'}",
        f"Working Directory: {run.working_directory or 'Unknown'}",
    ]
    notes = ["", "Note: Step logs cannot be directly accessed via buildkite-agent."]
    return summary_bundle(
        "Build Information from Agent Environment:", fields, notes, LogSource.AGENT_ENVIRONMENT_SUMMARY, ctx.max_lines
    )


def _run_fields(run: "RunContext") -> list[str]:
    exit_status = run.exit_status if run.exit_status is not None else "Unknown"
    return [
        f"Pipeline: {run.pipeline_slug or 'Unknown'}",
        f"Build: #{run.build_number or 'Unknown'}",
        f"Job: {run.label or 'Unknown'}",
        f"Branch: {run.branch or 'Unknown'}",
        f"Commit: {run.commit or 'Unknown'}",
        f"Exit Status: {exit_status}",
    ]


def summary_bundle(
    title: str, fields: list[str], notes: list[str], source: LogSource, max_lines: int
) -> LogBundle:
    """Bound a summary block by keeping its head.

    When the title and fields do not fit in ``max_lines`` they are collapsed
    onto a single line, so the build fields survive any line cap.
    """
    max_lines = max(max_lines, 1)
    if len(fields) + 1 > max_lines:
        return LogBundle(lines=[f"{title} {' | '.join(fields)}"], source=source, truncated=True)

    lines = [title, *(f"- {field}" for field in fields), *notes]
    return LogBundle(lines=lines[:max_lines], source=source, truncated=len(lines) > max_lines)


def candidate_log_paths(checkout_path: str, home: str | None = None) -> list[Path]:
    """Well-known agent log locations, in probing order."""
    home_dir = home if home is not None else str(Path.home())
    return [
        Path(template.format(checkout=checkout_path or "/tmp", home=home_dir)) for template in LOCAL_LOG_PATHS
    ]


def _read_tail(path: Path, max_lines: int) -> list[str]:
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        return [line.rstrip("\n") for line in deque(handle, maxlen=max_lines)]


def _read_journal(max_lines: int) -> list[str]:
    if shutil.which("journalctl") is None:
        return []

    logger.info("Attempting to get logs from journalctl...")
    try:
        result = subprocess.run(
            ["journalctl", "-u", "buildkite-agent", "-n", str(max_lines), "--no-pager"],
            capture_output=True,
            text=True,
            timeout=JOURNAL_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"journalctl failed: {e}")
        return []

    if result.returncode != 0:
        logger.debug(f"journalctl exited with {result.returncode}")
        return []
    return split_log_lines(result.stdout)


def scan_local_logs(ctx: FetchContext) -> LogBundle | None:
    """Read agent logs from the system journal or well-known log files."""
    logger.info("Attempting to find logs in common locations...")

    journal = _read_journal(ctx.max_lines)
    if any(line.strip() for line in journal):
        logger.info(f"Successfully captured logs from journalctl ({len(journal)} lines)")
        return LogBundle.from_lines(journal, LogSource.SYSTEM_LOG_FILE, ctx.max_lines)

    for path in candidate_log_paths(ctx.run.checkout_path):
        if not path.is_file():
            continue
        try:
            lines = _read_tail(path, ctx.max_lines)
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            continue
        if any(line.strip() for line in lines):
            logger.info(f"Successfully captured logs from {path} ({len(lines)} lines)")
            return LogBundle.from_lines(lines, LogSource.SYSTEM_LOG_FILE, ctx.max_lines)

    ctx.note("local logs: no readable agent log found")
    return None


def synthetic_fallback(ctx: FetchContext) -> LogBundle:
    """Summarize what is known about the build and how to get real logs next time."""
    logger.warning("Could not retrieve detailed logs, creating summary with available information")
    run = ctx.run
    fields = _run_fields(run) + [f"Build URL: {run.build_url or 'Unknown'}"]
    notes = [
        "",
        "Note: Detailed logs could not be retrieved. This may be due to:",
        "- Missing BUILDKITE_API_TOKEN environment variable",
        "- Insufficient permissions to access logs",
        "- Log files not available in expected locations",
        "",
        "To improve log analysis, ensure:",
        "1. BUILDKITE_API_TOKEN is set with read_builds and read_build_logs scopes",
        "2. The buildkite-agent has access to log files",
        "3. The plugin runs in the same environment as the failed command",
    ]
    return summary_bundle("Build Information Summary:", fields, notes, LogSource.SYNTHETIC_FALLBACK, ctx.max_lines)


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    fetch_build_logs_via_api,
    fetch_job_log_via_api,
    summarize_agent_environment,
    scan_local_logs,
)
