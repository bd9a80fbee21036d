import logging
import sys

import click

from .analysis.analyzer import AnalysisReport, BuildAnalyzer
from .analysis.client import AnalysisClient
from .buildkite.client import BuildkiteClient
from .buildkite.models import RunContext
from .buildkite.token import validate_token
from .config import Config
from .errors import ConfigurationError
from .logs.models import AnalysisScope
from .output.annotation import annotation_context, post_annotation
from .security.leak_detector import LeakDetector, describe_secret
from .trigger import should_run

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _group(title: str) -> None:
    """Start a collapsible section in the Buildkite job log."""
    click.echo(f"--- {title}", err=True)


@click.group()
@click.version_option()
def cli() -> None:
    """AI-powered build failure analysis for Buildkite pipelines."""
    pass


def _setup_config(
    model: str | None,
    trigger: str | None,
    analysis_level: str | None,
    max_log_lines: int | None,
    timeout: int | None,
    compare_builds: bool | None,
    comparison_range: int | None,
    annotate: bool | None,
) -> Config:
    """Setup and validate configuration."""
    config = Config()

    if model:
        config.model = model
    if trigger:
        config.trigger = trigger
    if analysis_level:
        config.analysis_level = analysis_level
    if max_log_lines is not None:
        config.max_log_lines = max_log_lines
    if timeout is not None:
        config.timeout = timeout
    if compare_builds is not None:
        config.compare_builds = compare_builds
    if comparison_range is not None:
        config.comparison_range = comparison_range
    if annotate is not None:
        config.annotate = annotate

    errors = config.validate()
    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    for warning in config.warnings():
        logger.warning(warning)

    return config


def _create_buildkite_client(config: Config, run: RunContext) -> BuildkiteClient | None:
    token = config.resolve_buildkite_token()
    if not token:
        logger.info("No Buildkite API token available, API-based features are disabled")
        return None
    if not (run.organization_slug and run.pipeline_slug):
        logger.warning("Missing BUILDKITE_ORGANIZATION_SLUG or BUILDKITE_PIPELINE_SLUG, API features are disabled")
        return None

    logger.debug(f"Using Buildkite API token {describe_secret(token)}")
    return BuildkiteClient(
        api_token=token,
        organization_slug=run.organization_slug,
        pipeline_slug=run.pipeline_slug,
        api_url=config.buildkite_api_url,
        timeout=config.timeout or 60,
    )


def _evaluate_trigger(config: Config, run: RunContext, client: BuildkiteClient | None) -> bool:
    """Apply the trigger policy, counting failures elsewhere in the build for build scope."""
    exit_status = run.effective_exit_status
    if (
        config.trigger == "on-failure"
        and exit_status == 0
        and config.analysis_level == AnalysisScope.BUILD.value
        and client is not None
        and run.build_number
    ):
        logger.info("Checking the build for failed jobs...")
        if client.build_has_failures(run.build_number):
            logger.info("Build has failed jobs, treating run as failed")
            exit_status = 1

    return should_run(config.trigger, exit_status, manual_flag=run.manual_trigger, message=run.message)


def _publish(config: Config, run: RunContext, report: AnalysisReport, markdown: str) -> None:
    """Post report as a Buildkite annotation."""
    if not config.annotate:
        return

    _group(":memo: Creating annotation")
    if not post_annotation(markdown, report.style, annotation_context(run.build_id)):
        logger.error("Failed to create annotation; the analysis is still available in the job log")


@cli.command()
@click.option("--model", help="Claude model id (or set the model plugin option)")
@click.option("--trigger", type=click.Choice(["on-failure", "always", "manual"]), help="When to run analysis")
@click.option("--analysis-level", type=click.Choice(["step", "build"]), help="Analyze the step or the whole build")
@click.option("--max-log-lines", type=int, help="Maximum number of log lines sent for analysis")
@click.option("--timeout", type=int, help="LLM request timeout in seconds")
@click.option("--compare-builds/--no-compare-builds", default=None, help="Compare duration with recent builds")
@click.option("--comparison-range", type=int, help="Number of previous builds to compare against")
@click.option("--annotate/--no-annotate", default=None, help="Post the result as a build annotation")
@click.option("--verbose", is_flag=True, help="Enable verbose logging")
def analyze(
    model: str | None,
    trigger: str | None,
    analysis_level: str | None,
    max_log_lines: int | None,
    timeout: int | None,
    compare_builds: bool | None,
    comparison_range: int | None,
    annotate: bool | None,
    verbose: bool,
) -> None:
    """Analyze the current Buildkite job and annotate the build."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = _setup_config(
        model, trigger, analysis_level, max_log_lines, timeout, compare_builds, comparison_range, annotate
    )
    run = RunContext.from_env()

    logger.info(f"Analyzing {run.pipeline_slug or 'unknown pipeline'} #{run.build_number or '?'} ({run.label})")

    buildkite_client = _create_buildkite_client(config, run)

    try:
        if not _evaluate_trigger(config, run, buildkite_client):
            logger.info(f"Trigger '{config.trigger}' not met (exit status {run.effective_exit_status}), skipping")
            return
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    if buildkite_client is not None:
        validate_token(buildkite_client)

    api_key = config.resolve_api_key() or ""

    analysis_client = AnalysisClient(
        api_key=api_key,
        model=config.model,
        timeout=config.timeout or 60,
        base_url=config.api_base_url,
        max_tokens=config.detect_max_output_tokens(),
    )
    leak_detector = LeakDetector(known_secrets=[api_key, config.resolve_buildkite_token()])

    _group(f":mag: Fetching build logs (level: {config.analysis_level})")
    analyzer = BuildAnalyzer(
        config=config,
        run=run,
        analysis_client=analysis_client,
        buildkite_client=buildkite_client,
        leak_detector=leak_detector,
    )

    _group(":robot_face: Analyzing with Claude")
    try:
        report = analyzer.forward()
    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        report = analyzer.error_report(e)
    markdown = report.to_markdown(leak_detector)

    print("\n" + "=" * 80)
    print(markdown)
    print("=" * 80 + "\n")

    if not report.result.ok:
        logger.warning("Analysis did not complete; the pipeline is not affected")

    _publish(config, run, report, markdown)


@cli.command()
def validate() -> None:
    """Validate plugin configuration and report warnings."""
    config = Config()

    errors = config.validate()
    for warning in config.warnings():
        logger.warning(warning)

    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    logger.info("Configuration is valid")


@cli.command(name="should-run")
@click.option("--trigger", help="Trigger policy (defaults to the trigger plugin option)")
def should_run_command(trigger: str | None) -> None:
    """Exit 0 if analysis should run for the current job, 1 otherwise."""
    config = Config()
    if trigger:
        config.trigger = trigger
    run = RunContext.from_env()

    try:
        result = _evaluate_trigger(config, run, _create_buildkite_client(config, run))
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(2)

    click.echo("true" if result else "false")
    sys.exit(0 if result else 1)


if __name__ == "__main__":
    cli()
