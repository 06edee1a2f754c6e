"""Process logging setup with redaction of credentials.

Registry passwords, GitHub tokens and cloud access keys pass through the
pipeline as plain strings and can end up in exception messages or in the
output of ``docker`` commands. Every record emitted through the
``image_porter`` logger hierarchy is scrubbed before it is written, and the
same scrubbing is applied to the text posted back on tickets.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_SENSITIVE_PATTERNS = [
    # password=..., token: ..., secret_key=... style pairs
    (
        re.compile(
            r"(?i)((?:password|passwd|secret|secret_key|access_key|api_key|token)"
            r"\s*[=:]\s*)[^\s,;\"']+"
        ),
        r"\1<REDACTED>",
    ),
    # Authorization headers
    (re.compile(r"(?i)((?:bearer|token)\s+)[A-Za-z0-9_\-\.]{8,}"), r"\1<REDACTED_TOKEN>"),
    # GitHub personal access tokens
    (re.compile(r"\b(?:ghp|gho|ghs|ghu|github_pat)_[A-Za-z0-9_]{10,}\b"), "<REDACTED_TOKEN>"),
]


def redact(message: str, secrets: Iterable[str] = ()) -> str:
    """Replace known credential shapes and any literal ``secrets`` in ``message``."""
    for secret in secrets:
        if secret and len(secret) >= 4:
            message = message.replace(secret, "<REDACTED>")
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def mask_sensitive(value: str) -> str:
    """Show only the edges of a secret, e.g. ``abcd****wxyz``."""
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


class RedactingFilter(logging.Filter):
    """Scrubs the fully formatted message of every record."""

    def __init__(self, secrets: Optional[Iterable[str]] = None) -> None:
        super().__init__()
        self.secrets: List[str] = [s for s in (secrets or []) if s]

    def add_secrets(self, secrets: Iterable[str]) -> None:
        self.secrets.extend(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage(), self.secrets)
        record.args = None
        return True


_filter = RedactingFilter()


def configure_logging(level: str = "info", debug: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Calling this more than once replaces the previous handler, so the CLI can
    reconfigure after the config file has been read.
    """
    logger = logging.getLogger("image_porter")
    resolved = logging.DEBUG if debug else _parse_level(level)
    logger.setLevel(resolved)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(_filter)
    logger.addHandler(handler)
    return logger


def register_secrets(*secrets: str) -> None:
    """Make literal credential values redacted in all subsequent log output."""
    _filter.add_secrets(secrets)


def _parse_level(level: str) -> int:
    name = (level or "info").strip().upper()
    if name == "WARN":
        name = "WARNING"
    value = logging.getLevelName(name)
    if isinstance(value, int):
        return value
    return logging.INFO
