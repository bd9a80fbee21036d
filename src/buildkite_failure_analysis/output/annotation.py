import logging
import shutil
import subprocess

from ..constants import ANNOTATION_CONTEXT_PREFIX, ANNOTATION_STYLES

logger = logging.getLogger(__name__)

ANNOTATE_TIMEOUT = 30


def annotation_context(build_id: str) -> str:
    """Context key so repeated runs in one build replace the same annotation."""
    return f"{ANNOTATION_CONTEXT_PREFIX}-{build_id or 'unknown'}"


def post_annotation(body: str, style: str, context: str) -> bool:
    """Post a Markdown annotation on the current build via ``buildkite-agent``.

    Args:
        body: Markdown body (already sanitized)
        style: One of info, warning, error, success
        context: Annotation context key

    Returns:
        True if the annotation was created
    """
    if style not in ANNOTATION_STYLES:
        logger.warning(f"Unknown annotation style {style!r}, using 'info'")
        style = "info"

    agent = shutil.which("buildkite-agent")
    if agent is None:
        logger.warning("buildkite-agent not found on PATH, skipping annotation")
        return False

    logger.info(f"Creating {style} annotation (context: {context})")
    try:
        result = subprocess.run(
            [agent, "annotate", "--style", style, "--context", context],
            input=body,
            capture_output=True,
            text=True,
            timeout=ANNOTATE_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.error(f"Failed to run buildkite-agent annotate: {e}")
        return False

    if result.returncode != 0:
        logger.error(f"buildkite-agent annotate exited with {result.returncode}: {result.stderr.strip()}")
        return False

    logger.info("Annotation created successfully")
    return True
