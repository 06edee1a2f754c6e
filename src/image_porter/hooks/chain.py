"""Builds and runs the ordered list of post-publish hooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

from ..config import PorterConfig
from ..errors import RegistryError
from ..naming import ImageReference
from .base import PostPublishHook
from .huawei_swr import HuaweiSWRVisibilityHook

logger = logging.getLogger(__name__)

# Registration order is execution order. New hooks only need an entry here.
HOOK_FACTORIES: List[Callable[[PorterConfig], PostPublishHook]] = [
    lambda config: HuaweiSWRVisibilityHook(config.registries.huawei_swr),
]


def build_chain(config: PorterConfig) -> List[PostPublishHook]:
    hooks = [factory(config) for factory in HOOK_FACTORIES]
    logger.debug("Post-publish hooks: %s", ", ".join(h.name for h in hooks) or "(none)")
    return hooks


@dataclass
class HookChainResult:
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[Tuple[str, RegistryError]] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)


class HookChain:
    """Runs hooks in order; failures are collected, never raised."""

    def __init__(self, hooks: Sequence[PostPublishHook]):
        self.hooks = list(hooks)

    def run(self, target: ImageReference) -> HookChainResult:
        host = target.host
        result = HookChainResult()

        for hook in self.hooks:
            if not hook.matches(host):
                logger.debug("Hook %s does not apply to %s", hook.name, host)
                result.skipped.append(hook.name)
                continue
            if not hook.is_configured():
                logger.debug("Hook %s applies to %s but has no credentials, skipping", hook.name, host)
                result.skipped.append(hook.name)
                continue

            logger.info("Applying post-publish hook %s", hook.name)
            try:
                hook.apply(target.namespace, target.repository)
            except Exception as e:
                error = e if isinstance(e, RegistryError) else RegistryError(
                    f"hook {hook.name} failed", cause=e
                )
                logger.warning("Post-publish hook %s failed: %s", hook.name, error)
                result.failures.append((hook.name, error))
            else:
                result.applied.append(hook.name)

        if result.applied:
            logger.info("Post-processing done: %d hook(s) applied", result.applied_count)
        return result
