"""Typed errors shared by every stage of the porting pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Categories surfaced to the requester in the outcome report."""

    CONFIG = "CONFIG_ERROR"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
    BUILD = "BUILD_ERROR"
    REGISTRY = "REGISTRY_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    SYSTEM = "SYSTEM_ERROR"
    PROBE = "PROBE_ERROR"


class PorterError(Exception):
    """Base error carrying a kind, an optional cause and key/value context."""

    kind: ErrorKind = ErrorKind.SYSTEM

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context: Dict[str, Any] = dict(context or {})

    def with_context(self, key: str, value: Any) -> PorterError:
        self.context[key] = value
        return self

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self.kind.value}] {self.message}: {self.cause}"
        return f"[{self.kind.value}] {self.message}"


class ConfigError(PorterError):
    """Configuration file, environment or flags are invalid."""

    kind = ErrorKind.CONFIG


class ExternalServiceError(PorterError):
    """The ticket queue could not be read or updated."""

    kind = ErrorKind.EXTERNAL_SERVICE


class BuildError(PorterError):
    """Login, build or push of the target image failed."""

    kind = ErrorKind.BUILD


class RegistryError(PorterError):
    """A post-publish registry action failed."""

    kind = ErrorKind.REGISTRY


class ValidationError(PorterError):
    """Bad image name, unsupported registry or empty platform intersection."""

    kind = ErrorKind.VALIDATION


class SystemFailureError(PorterError):
    """The process environment is unusable, e.g. no reachable Docker backend."""

    kind = ErrorKind.SYSTEM


class ProbeError(PorterError):
    """No platform information could be obtained for an upstream image."""

    kind = ErrorKind.PROBE


_USER_PREFIXES = {
    ErrorKind.VALIDATION: "input validation failed",
    ErrorKind.BUILD: "image build or push failed",
    ErrorKind.REGISTRY: "registry operation failed",
    ErrorKind.EXTERNAL_SERVICE: "ticket queue operation failed",
    ErrorKind.CONFIG: "configuration error",
}


def format_user_error(err: BaseException, requester: str = "") -> str:
    """One-line summary addressed to the person who filed the request."""
    mention = f"@{requester} " if requester else ""
    if isinstance(err, PorterError):
        prefix = _USER_PREFIXES.get(err.kind, "operation failed")
        return f"{mention}{prefix}: {err.message}"
    return f"{mention}operation failed: {err}"


def format_error_details(err: BaseException) -> str:
    """Structured key/value block for the failure report."""
    if not isinstance(err, PorterError):
        return str(err)

    lines = [
        f"type: {err.kind.value}",
        f"message: {err.message}",
    ]
    if err.cause is not None:
        lines.append(f"cause: {err.cause}")
    if err.context:
        lines.append("context:")
        for key in sorted(err.context):
            value = err.context[key]
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            lines.append(f"  {key}: {value}")
    return "\n".join(lines)
