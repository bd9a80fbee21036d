import logging
from collections.abc import Iterable

from detect_secrets.core.plugins.util import get_mapping_from_secret_type_to_class

logger = logging.getLogger(__name__)

CREDENTIAL_REDACTION = "[REDACTED: credential]"


def describe_secret(secret: str | None) -> str:
    """Describe a credential for diagnostics without revealing it.

    Only a short prefix and the length are shown, e.g. ``bkua*** (40 chars)``.
    """
    if not secret:
        return "<absent>"
    prefix = secret[:4] if len(secret) > 12 else ""
    return f"{prefix}*** ({len(secret)} chars)"


class LeakDetector:
    """Detects and redacts secrets from text before it leaves the process.

    Build logs routinely echo environment values, so everything sent to the
    LLM or posted as an annotation goes through here first.
    """

    def __init__(self, known_secrets: Iterable[str | None] = ()) -> None:
        """Initialize the leak detector with default detect-secrets plugins.

        Args:
            known_secrets: Credential values of this run; always redacted verbatim
        """
        self.plugins = {name: plugin_class() for name, plugin_class in get_mapping_from_secret_type_to_class().items()}
        self.known_secrets = sorted({s for s in known_secrets if s}, key=len, reverse=True)
        logger.debug(f"Initialized leak detector with {len(self.plugins)} plugins")

    def sanitize_text(self, text: str) -> str:
        """Redact known credentials, then scan for any other secrets.

        Args:
            text: The text to scan for secrets

        Returns:
            The sanitized text with secrets replaced by [REDACTED: type] labels
        """
        if not text:
            return text

        sanitized = self._redact_known_secrets(text)

        secrets = self._detect_secrets(sanitized)
        if not secrets:
            return sanitized

        # replace from the end so earlier positions stay valid
        secrets.sort(key=lambda x: x[0], reverse=True)
        for start, end, secret_type in secrets:
            sanitized = sanitized[:start] + self._get_redaction_label(secret_type) + sanitized[end:]

        logger.info(f"Redacted {len(secrets)} secret(s) from text")
        return sanitized

    def _redact_known_secrets(self, text: str) -> str:
        for secret in self.known_secrets:
            if secret in text:
                text = text.replace(secret, CREDENTIAL_REDACTION)
                logger.info("Redacted a configured credential from text")
        return text

    def _detect_secrets(self, text: str) -> list[tuple[int, int, str]]:
        """Detect all secrets in the text and return their positions.

        Returns:
            List of (start_pos, end_pos, secret_type) for each secret found
        """
        secrets: list[tuple[int, int, str]] = []
        current_pos = 0

        for line_num, line in enumerate(text.split("\n"), start=1):
            for plugin_name, plugin in self.plugins.items():
                try:
                    findings = plugin.analyze_line(filename="", line=line, line_number=line_num)
                except Exception as e:
                    logger.debug(f"Plugin {plugin_name} failed on line {line_num}: {e}")
                    continue

                for secret in findings:
                    for match_start, match_end in self._find_secret_positions(line, secret):
                        secrets.append((current_pos + match_start, current_pos + match_end, secret.type))

            current_pos += len(line) + 1

        return self._drop_overlaps(secrets)

    def _drop_overlaps(self, secrets: list[tuple[int, int, str]]) -> list[tuple[int, int, str]]:
        """Keep the first finding of overlapping spans so replacement stays consistent."""
        kept: list[tuple[int, int, str]] = []
        for start, end, secret_type in sorted(secrets, key=lambda x: (x[0], -x[1])):
            if kept and start < kept[-1][1]:
                continue
            kept.append((start, end, secret_type))
        return kept

    def _find_secret_positions(self, line: str, secret: object) -> list[tuple[int, int]]:
        """Find the start and end positions of every occurrence of a secret in a line."""
        secret_value = getattr(secret, "secret_value", None)
        if not secret_value:
            return []

        positions = []
        start = 0
        while True:
            pos = line.find(secret_value, start)
            if pos == -1:
                break
            positions.append((pos, pos + len(secret_value)))
            start = pos + 1
        return positions

    def _get_redaction_label(self, secret_type: str) -> str:
        return f"[REDACTED: {secret_type}]"
