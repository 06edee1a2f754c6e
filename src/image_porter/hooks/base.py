"""Capability interface for post-publish actions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


def host_matches(host: str, patterns: Iterable[str]) -> bool:
    """True when the bare domain of ``host`` contains any of ``patterns``."""
    domain = host
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
    domain = domain.split("/", 1)[0].lower()
    return any(pattern in domain for pattern in patterns)


class PostPublishHook(ABC):
    """An optional action run against the target registry after a push.

    ``matches`` and ``is_configured`` must be cheap and side-effect free; the
    chain skips the hook silently when either is False.
    """

    name: str = "hook"
    description: str = ""

    @abstractmethod
    def matches(self, host: str) -> bool:
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def apply(self, namespace: str, repository: str) -> None:
        """Performs the action, raising RegistryError on failure."""
