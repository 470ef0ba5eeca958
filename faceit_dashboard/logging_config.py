"""Logging setup with token redaction."""

import logging
import re
import sys

REDACTED = "[REDACTED]"

_PATTERNS = [
    # Authorization: Bearer <token>
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    # access_token=..., refresh_token=..., code=..., client_secret=...
    re.compile(r"(?i)\b((?:access_token|refresh_token|id_token|client_secret|code)=)[^&\s\"']+"),
    # "access_token": "..."  (JSON / repr of dicts)
    re.compile(r"(?i)([\"'](?:access_token|refresh_token|id_token|client_secret)[\"']\s*:\s*[\"'])[^\"']+"),
]


def redact(text: str) -> str:
    """Mask token material in a string."""
    for pattern in _PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
    return text


class TokenRedactionFilter(logging.Filter):
    """Logging filter that strips token values from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def configure_logging(debug: bool = False) -> None:
    """Configure root logging and attach the redaction filter to every handler."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    redaction_filter = TokenRedactionFilter()
    for handler in logging.root.handlers:
        if not any(isinstance(f, TokenRedactionFilter) for f in handler.filters):
            handler.addFilter(redaction_filter)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
