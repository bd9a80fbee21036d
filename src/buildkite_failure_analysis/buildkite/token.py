import logging
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING

from ..security.leak_detector import describe_secret

if TYPE_CHECKING:
    from .client import BuildkiteClient

logger = logging.getLogger(__name__)


def resolve_token(
    config_value: str | None,
    env_var_name: str,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Resolve a credential from configuration or the environment.

    An explicit configuration value wins over the environment variable.
    Absence is a valid outcome and is returned as None.
    """
    if config_value and config_value.strip():
        token = config_value.strip()
        logger.debug(f"Using credential from configuration: {describe_secret(token)}")
        return token

    env = os.environ if environ is None else environ
    env_value = env.get(env_var_name, "").strip()
    if env_value:
        logger.debug(f"Using credential from {env_var_name}: {describe_secret(env_value)}")
        return env_value

    logger.debug(f"No credential configured and {env_var_name} is not set")
    return None


def validate_token(client: "BuildkiteClient") -> bool:
    """Check a resolved token against the Buildkite API; failure is only a warning."""
    if client.check_token():
        return True
    logger.warning("Buildkite API token could not be validated; API features may be degraded")
    return False
