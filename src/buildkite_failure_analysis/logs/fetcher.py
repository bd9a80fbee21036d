import logging
from collections.abc import Sequence

from .models import FetchContext, LogBundle
from .strategies import DEFAULT_STRATEGIES, Strategy, synthetic_fallback

logger = logging.getLogger(__name__)


def fetch_logs(ctx: FetchContext, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES) -> LogBundle:
    """Acquire log content by trying each strategy in order.

    Never raises and never returns an empty bundle: when every strategy fails
    the synthetic build summary is returned.

    Args:
        ctx: Run context, scope, line cap and optional API client
        strategies: Ordered fallback tiers tried before the synthetic summary

    Returns:
        The first non-empty bundle produced
    """
    logger.info(f"Fetching logs (level: {ctx.scope.value}, max lines: {ctx.max_lines})")

    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        try:
            bundle = strategy(ctx)
        except Exception as e:
            logger.warning(f"Log strategy {name} failed: {e}")
            ctx.note(f"{name}: {e}")
            continue

        if bundle is None or bundle.is_empty():
            logger.debug(f"Log strategy {name} produced nothing")
            continue

        logger.info(f"Using logs from {bundle.source.value} ({bundle.line_count} lines)")
        return bundle

    for note in ctx.notes:
        logger.debug(f"Log acquisition: {note}")
    return synthetic_fallback(ctx)
