"""
Credential redaction for log output.

Subscribe frames on the user channel carry the API key triple, so every
handler installed by ``setup_logging`` runs records through this filter.
"""

import logging
import re


class CredentialRedactionFilter(logging.Filter):
    """
    Redacts credentials from log records.

    - Ethereum private keys (0x followed by 64 hex chars)
    - API keys, secrets and passphrases in key=value or JSON form
    - Long base64 strings

    Usage:
        >>> handler = logging.StreamHandler()
        >>> handler.addFilter(CredentialRedactionFilter())
        >>> logger.addHandler(handler)
    """

    PRIVATE_KEY_PATTERN = re.compile(r'0x[0-9a-fA-F]{64}')
    # Group 1 keeps the field name and separator, only the value is replaced
    API_SECRET_PATTERN = re.compile(
        r'((?:secret|passphrase|password|key)["\']?\s*[:=]\s*["\']?)[a-zA-Z0-9+/=_\-]{20,}["\']?',
        re.IGNORECASE
    )
    # Asset ids are long decimal strings, so at least one letter is required
    BASE64_SECRET_PATTERN = re.compile(r'(?=[A-Za-z0-9+/]*[A-Za-z])[A-Za-z0-9+/]{40,}={0,2}')

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact credentials from log record.

        Args:
            record: Log record to filter

        Returns:
            Always True (record is never dropped, just sanitized)
        """
        if record.msg:
            record.msg = self.redact(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self.redact(str(v))
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.redact(str(arg))
                    for arg in record.args
                )

        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)

        return True

    @classmethod
    def redact(cls, text: str) -> str:
        """Redact all credential patterns from text."""
        if not text:
            return text

        text = cls.PRIVATE_KEY_PATTERN.sub('0x[REDACTED]', text)
        text = cls.API_SECRET_PATTERN.sub(r'\1[REDACTED]', text)

        def redact_base64(match):
            return match.group(0)[:8] + '...[REDACTED]'

        return cls.BASE64_SECRET_PATTERN.sub(redact_base64, text)
