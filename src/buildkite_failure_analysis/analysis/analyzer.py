import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..buildkite.client import BuildkiteClient
from ..buildkite.models import RunContext
from ..config import Config
from ..constants import CHARS_PER_TOKEN
from ..history.aggregator import compute_stats, current_duration, fetch_history
from ..history.models import CurrentDuration, DurationStats, HistorySample
from ..logs.fetcher import fetch_logs
from ..logs.models import AnalysisScope, FetchContext, LogBundle, LogSource
from ..security.leak_detector import LeakDetector
from .client import AnalysisClient
from .models import AnalysisResult
from .prompt import AnalysisRequest, build_prompt, load_agent_context

logger = logging.getLogger(__name__)

# Share of the model context the log block may occupy
LOG_CONTEXT_SHARE = 0.6


@dataclass
class AnalysisReport:
    """Analysis outcome ready to be rendered as a build annotation."""

    pipeline: str
    build_number: str
    label: str
    scope: AnalysisScope
    model: str
    exit_status: int
    result: AnalysisResult
    log_source: LogSource
    log_lines: int
    log_truncated: bool = False
    duration_stats: DurationStats | None = None
    history_samples: list[HistorySample] = field(default_factory=list)

    @property
    def title(self) -> str:
        subject = "Build" if self.scope is AnalysisScope.BUILD else "Step"
        return f"🤖 Claude {subject} Analysis"

    @property
    def style(self) -> str:
        """Annotation style: warning on analysis failure, else by run outcome."""
        if not self.result.ok:
            return "warning"
        return "error" if self.exit_status != 0 else "info"

    def to_markdown(self, leak_detector: LeakDetector | None = None) -> str:
        """Generate markdown formatted report with leak detection."""
        target = f"`{self.pipeline or 'Unknown'}` #{self.build_number or '?'}"
        if self.scope is AnalysisScope.STEP and self.label:
            target += f" | **Step:** {self.label}"

        parts = [
            f"## {self.title}\n\n",
            f"**Build:** {target} | **Model:** `{self.model}`",
            f" | **Exit Status:** {self.exit_status}\n\n",
        ]

        if self.result.ok:
            parts.append(f"{self.result.text}\n\n")
        else:
            parts.append("### ⚠️ Analysis failed\n\n")
            parts.append(f"{self.result.error or 'Unknown error'}\n\n")
            parts.append("The build itself is unaffected; check the step log for details.\n\n")

        if self.duration_stats is not None:
            stats = self.duration_stats
            parts.append(
                f"<details>\n<summary><b>⏱️ {stats.unit.capitalize()} time comparison</b></summary>\n\n"
                f"- Current: {stats.current}s{' (still running)' if stats.partial else ''}\n"
                f"- Average: {stats.average}s over {stats.sample_count} {stats.unit}s "
                f"(fastest {stats.minimum}s, slowest {stats.maximum}s)\n"
                f"- Trend: {stats.describe_trend()}\n\n</details>\n\n"
            )

        truncated = ", truncated" if self.log_truncated else ""
        parts.append(f"---\n*Logs: {self.log_source.value} ({self.log_lines} lines{truncated})*\n")

        markdown_output = "".join(parts)
        detector = leak_detector or LeakDetector()
        return detector.sanitize_text(markdown_output)


def fit_to_char_budget(bundle: LogBundle, max_chars: int) -> LogBundle:
    """Drop leading lines until the bundle text fits in ``max_chars``."""
    if len(bundle.text) <= max_chars:
        return bundle

    kept: list[str] = []
    size = 0
    for line in reversed(bundle.lines):
        size += len(line) + 1
        if size > max_chars and kept:
            break
        kept.append(line[-max_chars:])
    kept.reverse()
    logger.info(f"Trimmed logs from {bundle.line_count} to {len(kept)} lines to fit the model context")
    return LogBundle(lines=kept, source=bundle.source, truncated=True)


class BuildAnalyzer:
    """Runs log acquisition, history comparison, prompting and the LLM call for one job."""

    def __init__(
        self,
        config: Config,
        run: RunContext,
        analysis_client: AnalysisClient,
        buildkite_client: BuildkiteClient | None = None,
        leak_detector: LeakDetector | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            config: Validated configuration
            run: Current run context
            analysis_client: LLM client
            buildkite_client: Buildkite API client, None when no token is available
            leak_detector: Scrubber applied to the prompt before it is sent
        """
        self.config = config
        self.run = run
        self.analysis_client = analysis_client
        self.buildkite_client = buildkite_client
        self.leak_detector = leak_detector or LeakDetector()

    @property
    def scope(self) -> AnalysisScope:
        return self.config.scope

    def _build_metadata(self, duration: CurrentDuration | None) -> list[str]:
        run = self.run
        lines = [
            f"Build: {run.pipeline_slug or 'Unknown'} #{run.build_number or 'Unknown'}",
            f"Job: {run.label or 'Unknown'}",
            f"Branch: {run.branch or 'Unknown'}",
            f"Commit: {run.commit or 'Unknown'}",
            f"Build URL: {run.build_url or 'Unknown'}",
        ]
        if duration is not None:
            subject = "Build" if self.scope is AnalysisScope.BUILD else "Step"
            suffix = " (so far)" if duration.partial else ""
            lines.append(f"{subject} Duration{suffix}: {duration.seconds}s")
        return lines

    def _compare_durations(
        self, duration: CurrentDuration | None
    ) -> tuple[DurationStats | None, list[HistorySample]]:
        if not self.config.compare_builds or duration is None:
            return None, []

        samples = fetch_history(
            self.buildkite_client,
            self.run,
            self.config.comparison_range or 1,
            self.scope,
            step_key=self.run.step_key or None,
        )
        if not samples:
            return None, []
        return compute_stats(samples, duration), samples

    def _current_label(self, stats: DurationStats | None) -> str:
        if stats is not None and stats.unit == "step":
            return self.run.label or "Unknown"
        return f"#{self.run.build_number or 'Unknown'}"

    def error_report(self, error: Exception) -> AnalysisReport:
        """Create report when the analysis pipeline itself raised."""
        return AnalysisReport(
            pipeline=self.run.pipeline_slug,
            build_number=self.run.build_number,
            label=self.run.label,
            scope=self.scope,
            model=self.config.model,
            exit_status=self.run.effective_exit_status,
            result=AnalysisResult.failure(f"Analysis failed: {error}"),
            log_source=LogSource.SYNTHETIC_FALLBACK,
            log_lines=0,
        )

    def forward(self, now: datetime | None = None) -> AnalysisReport:
        """Analyze the current job or build and produce a report."""
        duration = current_duration(self.buildkite_client, self.run, self.scope, now=now)
        stats, samples = self._compare_durations(duration)

        max_lines = self.config.max_log_lines or 1
        bundle = fetch_logs(
            FetchContext(run=self.run, scope=self.scope, max_lines=max_lines, client=self.buildkite_client)
        )
        char_budget = int(self.config.detect_model_context_limit() * LOG_CONTEXT_SHARE) * CHARS_PER_TOKEN
        bundle = fit_to_char_budget(bundle, char_budget)

        request = AnalysisRequest(
            scope=self.scope,
            build_metadata=self._build_metadata(duration),
            log_bundle=bundle,
            max_log_lines=max_lines,
            exit_status=self.run.effective_exit_status,
            label=self.run.label,
            command=self.run.command,
            agent_context=load_agent_context(self.config.agent_file),
            duration_stats=stats,
            history_samples=samples,
            current_label=self._current_label(stats),
            step_key=self.run.step_key,
            custom_instructions=self.config.custom_prompt or None,
        )
        prompt = self.leak_detector.sanitize_text(build_prompt(request))

        result = self.analysis_client.analyze(prompt)

        return AnalysisReport(
            pipeline=self.run.pipeline_slug,
            build_number=self.run.build_number,
            label=self.run.label,
            scope=self.scope,
            model=self.config.model,
            exit_status=self.run.effective_exit_status,
            result=result,
            log_source=bundle.source,
            log_lines=bundle.line_count,
            log_truncated=bundle.truncated,
            duration_stats=stats,
            history_samples=samples,
        )
