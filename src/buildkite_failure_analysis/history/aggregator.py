import logging
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ..constants import (
    FINISHED_BUILD_STATES,
    HISTORY_LOOKBACK_DAYS,
    HISTORY_MARGIN,
    STEP_HISTORY_MARGIN,
    TREND_THRESHOLD_SECONDS,
)
from ..logs.models import AnalysisScope
from ..utils import seconds_between
from .models import ComparisonLevel, CurrentDuration, DurationStats, HistorySample, Trend

if TYPE_CHECKING:
    from ..buildkite.client import BuildkiteClient
    from ..buildkite.models import BuildRecord, RunContext

logger = logging.getLogger(__name__)


def _current_build_number(run: "RunContext") -> int | None:
    try:
        return int(run.build_number)
    except ValueError:
        return None


def _candidate_builds(
    client: "BuildkiteClient",
    current_number: int,
    per_page: int,
    today: date,
    lookback_days: int = HISTORY_LOOKBACK_DAYS,
) -> list["BuildRecord"] | None:
    """Finished builds other than the current one, most recent first."""
    builds = client.list_builds(per_page=per_page, finished_from=today - timedelta(days=lookback_days))
    if builds is None:
        return None

    candidates = [b for b in builds if b.number != current_number and b.state in FINISHED_BUILD_STATES]
    candidates.sort(key=lambda b: b.number, reverse=True)
    return candidates


def _step_samples(
    client: "BuildkiteClient",
    candidates: list["BuildRecord"],
    step_key: str,
    comparison_range: int,
) -> list[HistorySample]:
    samples: list[HistorySample] = []
    for candidate in candidates:
        build = client.get_build(candidate.number)
        if build is None:
            continue

        job = build.find_job_by_step_key(step_key)
        if job is None or job.duration is None:
            continue

        samples.append(
            HistorySample(
                build_number=build.number,
                duration_seconds=job.duration,
                label=job.name or "Unknown step",
                level=ComparisonLevel.STEP,
                state=job.state,
            )
        )
        if len(samples) >= comparison_range:
            break
    return samples


def _build_samples(candidates: list["BuildRecord"], comparison_range: int) -> list[HistorySample]:
    samples: list[HistorySample] = []
    for build in candidates:
        if build.duration is None:
            continue
        samples.append(
            HistorySample(
                build_number=build.number,
                duration_seconds=build.duration,
                label=build.message.splitlines()[0] if build.message else "No message",
                level=ComparisonLevel.BUILD,
                state=build.state,
            )
        )
        if len(samples) >= comparison_range:
            break
    return samples


def fetch_history(
    client: "BuildkiteClient | None",
    run: "RunContext",
    comparison_range: int,
    scope: AnalysisScope,
    step_key: str | None = None,
    today: date | None = None,
) -> list[HistorySample] | None:
    """Collect durations of recent finished builds, or of the same step in them.

    Args:
        client: Buildkite API client; None when no token is available
        run: Current run context (its build is excluded)
        comparison_range: Number of previous builds to compare against
        scope: Step-level comparison is attempted only for step scope
        step_key: Step key of the current job
        today: Reference date for the lookback window

    Returns:
        Samples ordered most recent first, or None when nothing could be collected
    """
    if client is None:
        logger.warning("No API token available for build history comparison")
        return None

    current_number = _current_build_number(run)
    if current_number is None:
        logger.warning(f"Cannot compare build history: invalid build number {run.build_number!r}")
        return None

    today = today or datetime.now(timezone.utc).date()
    logger.info(f"Fetching historical data for {comparison_range} builds (level: {scope.value})")

    if scope is AnalysisScope.STEP and step_key:
        logger.info(f"Fetching step-level comparison data for step key: {step_key}")
        candidates = _candidate_builds(client, current_number, comparison_range + STEP_HISTORY_MARGIN, today)
        if candidates:
            samples = _step_samples(client, candidates, step_key, comparison_range)
            if samples:
                logger.info(f"Successfully fetched step-level history for {len(samples)} previous builds")
                return samples
            logger.warning("Could not find matching steps in previous builds")
        logger.warning("Falling back to build-level comparison")

    candidates = _candidate_builds(client, current_number, comparison_range + HISTORY_MARGIN, today)
    if candidates:
        samples = _build_samples(candidates, comparison_range)
        if samples:
            logger.info(f"Successfully fetched build-level history for {len(samples)} previous builds")
            return samples

    logger.warning("Could not fetch build history for comparison")
    return None


def current_duration(
    client: "BuildkiteClient | None",
    run: "RunContext",
    scope: AnalysisScope,
    now: datetime | None = None,
) -> CurrentDuration | None:
    """Duration of the current job (step scope) or build (build scope).

    A job or build without a finish timestamp is still running: its duration
    is measured up to ``now`` and flagged as partial.
    """
    if client is None or not run.has_build_coordinates:
        return None

    if scope is AnalysisScope.STEP:
        if not run.job_id:
            return None
        logger.info("Fetching step timing data via API...")
        record = client.get_job(run.build_number, run.job_id)
    else:
        logger.info("Fetching build timing data via API...")
        record = client.get_build(run.build_number)

    if record is None or record.started_at is None:
        return None

    if record.finished_at is not None:
        return CurrentDuration(seconds=seconds_between(record.started_at, record.finished_at))

    now = now or datetime.now(timezone.utc)
    return CurrentDuration(seconds=seconds_between(record.started_at, now), partial=True)


def classify_trend(current: int, average: int, threshold: int = TREND_THRESHOLD_SECONDS) -> Trend:
    """Classify the current duration against the historical average."""
    if current > average + threshold:
        return Trend.MUCH_SLOWER
    if current > average:
        return Trend.SLOWER
    if current < average - threshold:
        return Trend.MUCH_FASTER
    return Trend.NORMAL


def compute_stats(
    samples: list[HistorySample],
    current: CurrentDuration,
    threshold: int = TREND_THRESHOLD_SECONDS,
) -> DurationStats | None:
    """Compute average, extremes and trend of the sample durations."""
    if not samples:
        return None

    durations = [s.duration_seconds for s in samples]
    average = int(round(sum(durations) / len(durations)))
    level = ComparisonLevel.STEP if all(s.level is ComparisonLevel.STEP for s in samples) else ComparisonLevel.BUILD

    return DurationStats(
        average=average,
        minimum=min(durations),
        maximum=max(durations),
        sample_count=len(durations),
        current=current.seconds,
        current_vs_average_delta=current.seconds - average,
        trend=classify_trend(current.seconds, average, threshold),
        level=level,
        partial=current.partial,
    )
