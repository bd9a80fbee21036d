"""Decide whether analysis should run for the current job."""

import logging

from .constants import MANUAL_TRIGGER_MARKER
from .errors import UnknownTriggerError

logger = logging.getLogger(__name__)

TRIGGER_POLICIES = ("on-failure", "always", "manual")


def should_run(policy: str, exit_status: int, manual_flag: bool = False, message: str = "") -> bool:
    """Evaluate the trigger policy.

    Args:
        policy: One of ``always``, ``on-failure`` or ``manual``
        exit_status: Exit status of the command being analyzed
        manual_flag: Whether a manual analysis request was set explicitly
        message: Commit or trigger message of the build

    Returns:
        True if analysis should run

    Raises:
        UnknownTriggerError: If the policy is not recognized
    """
    if policy == "always":
        return True
    if policy == "on-failure":
        return exit_status != 0
    if policy == "manual":
        return manual_flag or MANUAL_TRIGGER_MARKER in (message or "")
    raise UnknownTriggerError(policy)
