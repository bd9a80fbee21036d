import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..history.models import DurationStats, HistorySample
from ..logs.models import AnalysisScope, LogBundle

logger = logging.getLogger(__name__)

DEFAULT_AGENT_FILE = "AGENT.md"

PERSONA = "You are an expert software engineer and DevOps specialist."


@dataclass
class AnalysisRequest:
    """Everything the prompt is assembled from."""

    scope: AnalysisScope
    build_metadata: list[str]
    log_bundle: LogBundle
    max_log_lines: int
    exit_status: int = 0
    label: str = ""
    command: str = ""
    agent_context: str | None = None
    duration_stats: DurationStats | None = None
    history_samples: list[HistorySample] = field(default_factory=list)
    current_label: str = ""
    step_key: str = ""
    custom_instructions: str | None = None

    @property
    def failed(self) -> bool:
        return self.exit_status != 0


def load_agent_context(agent_file: str | None, base_dir: Path | None = None) -> str | None:
    """Read the optional project context file.

    Args:
        agent_file: ``"true"`` for AGENT.md, a path, or ``"false"``/empty to disable
        base_dir: Directory relative paths are resolved against (default: cwd)

    Returns:
        Context block for the prompt, or None
    """
    if not agent_file or agent_file.lower() == "false":
        return None

    path = Path(DEFAULT_AGENT_FILE if agent_file.lower() == "true" else agent_file)
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path

    try:
        content = path.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        logger.warning(f"Agent file '{path}' not found or not readable")
        return None

    if not content:
        logger.warning(f"Agent file '{path}' is empty")
        return None

    logger.info(f"Using agent context from {path}")
    return f"Using {path.name}:\n\n{content}"


def requested_sections(scope: AnalysisScope, has_stats: bool, failed: bool) -> list[tuple[str, str]]:
    """Output sections the model is asked for, in order."""
    is_build = scope is AnalysisScope.BUILD
    subject = "build" if is_build else "step"

    if is_build:
        question = "Why did any jobs fail?" if failed else "Any notable issues or warnings across jobs?"
    else:
        question = "Why did it fail?" if failed else "Any notable issues or warnings?"

    sections = [
        ("Analysis", f"What happened in this {subject}? {question}"),
        (
            "Key Points",
            "Important information across all jobs and their significance"
            if is_build
            else "Important information and their significance",
        ),
    ]
    if is_build:
        sections.append(("Problematic Jobs", "Identify which jobs had issues and summarize each problem"))

    if has_stats:
        sections.append(
            (
                "Build Time Analysis",
                "Based on the build time comparison data above, analyze performance trends "
                "and identify potential causes for any significant time changes",
            )
        )
        sections.append(
            ("Recommendations", "Specific actionable steps to resolve issues and optimize build performance")
        )
        sections.append(
            ("Best Practices", f"How to improve this {subject} for the future, including performance optimization")
        )
    else:
        target = "the issues" if is_build else "the issue"
        sections.append(("Recommendations", f"Specific actionable steps to resolve {target}"))
        sections.append(("Best Practices", f"How to improve this {subject} for the future"))

    return sections


def build_prompt(request: AnalysisRequest) -> str:
    """Assemble the analysis prompt."""
    is_build = request.scope is AnalysisScope.BUILD
    parts: list[str] = []

    if is_build:
        parts.append(
            f"{PERSONA} Please analyze this Buildkite build output "
            "(containing logs from multiple jobs) and provide insights."
        )
    else:
        parts.append(f"{PERSONA} Please analyze this Buildkite step output and provide insights.")

    if request.agent_context:
        parts.append(request.agent_context)

    stats = request.duration_stats
    if stats is not None:
        parts.append(stats.to_text(request.history_samples, request.current_label, request.step_key))
        note = stats.partial_note("build" if is_build else "step")
        if note:
            parts.append(note)

    metadata = "\n".join(request.build_metadata)
    if is_build:
        parts.append(
            f"Build Information:\n{metadata}\nAnalysis Level: Full Build (multiple jobs)\n\n"
            f"Build Logs (from multiple jobs):\n```\n{request.log_bundle.text}\n```"
        )
    else:
        exit_status = request.exit_status
        parts.append(
            f"Step Information:\n{metadata}\nAnalysis Level: Single Step\n"
            f"Step: {request.label or 'Unknown'}\n"
            f"Command: {request.command or 'Unknown'}\n"
            f"Exit Status: {exit_status}\n\n"
            f"Step Logs (last {request.max_log_lines} lines):\n```\n{request.log_bundle.text}\n```"
        )

    if not request.log_bundle.source.is_real_log:
        parts.append(
            f"Note: Full logs were not available; the content above is a {request.log_bundle.source.value} "
            "and may only describe the build context."
        )

    sections = requested_sections(request.scope, stats is not None, request.failed)
    numbered = "\n".join(f"{i}. **{title}**: {description}" for i, (title, description) in enumerate(sections, 1))
    parts.append(f"Please provide:\n{numbered}")

    across = " across multiple jobs" if is_build else ""
    guidance = (
        "Focus on being practical and actionable. If you see common patterns "
        f"(dependency issues, test failures, configuration problems, etc.){across}, highlight them clearly."
    )
    if stats is not None:
        guidance += " Pay special attention to build time trends and performance implications."
    parts.append(guidance)

    if request.custom_instructions:
        parts.append(f"Additional Context:\n{request.custom_instructions}")

    return "\n\n".join(parts)
