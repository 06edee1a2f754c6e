"""Per-run build/publish state machine.

A run moves ``IDLE -> LOGGED_IN -> BUILT -> PUSHED -> POST_PROCESSED -> DONE``
and can drop to ``FAILED`` from any non-terminal state. The publisher drives
it up to ``PUSHED``; the orchestrator finishes it after the hook chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .builders.buildkit import BuildKitBuilder
from .builders.credentials import RegistryCredentials
from .builders.daemon import DaemonBuilder
from .errors import PorterError, SystemFailureError
from .naming import ImageReference
from .prober import ArchitectureProber
from .strategy import (
    ArchitectureReport,
    BuildStrategy,
    MultiPlatform,
    PlatformSet,
    SinglePlatform,
    choose_strategy,
    compare,
    render_architecture_summary,
    require_resolved,
)

logger = logging.getLogger(__name__)


class PublishState(str, Enum):
    IDLE = "idle"
    LOGGED_IN = "logged_in"
    BUILT = "built"
    PUSHED = "pushed"
    POST_PROCESSED = "post_processed"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    PublishState.IDLE: {PublishState.LOGGED_IN},
    PublishState.LOGGED_IN: {PublishState.BUILT},
    PublishState.BUILT: {PublishState.PUSHED},
    PublishState.PUSHED: {PublishState.POST_PROCESSED},
    PublishState.POST_PROCESSED: {PublishState.DONE},
}


@dataclass
class PublishRun:
    """Everything one run learned, returned to the caller as a value."""

    source: ImageReference
    target: ImageReference
    requested: PlatformSet
    state: PublishState = PublishState.IDLE
    history: List[PublishState] = field(default_factory=lambda: [PublishState.IDLE])
    report: Optional[ArchitectureReport] = None
    strategy: Optional[BuildStrategy] = None
    error: Optional[PorterError] = None

    @property
    def failed(self) -> bool:
        return self.state == PublishState.FAILED

    @property
    def architecture_summary(self) -> str:
        return render_architecture_summary(self.report) if self.report else ""

    def advance(self, state: PublishState) -> None:
        terminal = self.state in (PublishState.DONE, PublishState.FAILED)
        allowed = state == PublishState.FAILED and not terminal
        if not allowed and state not in _TRANSITIONS.get(self.state, ()):
            raise SystemFailureError(
                f"illegal publish transition {self.state.value} -> {state.value}",
                context={"target_image": str(self.target)},
            )
        logger.debug("Publish %s: %s -> %s", self.target, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, error: PorterError) -> None:
        self.error = error
        self.advance(PublishState.FAILED)


class ImagePublisher:
    """Logs in, probes, picks a strategy and executes it."""

    def __init__(
        self,
        daemon: DaemonBuilder,
        buildkit: BuildKitBuilder,
        prober: ArchitectureProber,
        credentials: RegistryCredentials,
    ):
        self.daemon = daemon
        self.buildkit = buildkit
        self.prober = prober
        self.credentials = credentials

    def publish(
        self, source: ImageReference, target: ImageReference, requested: PlatformSet
    ) -> PublishRun:
        """Drives a run to ``PUSHED`` or ``FAILED``; never retries."""
        run = PublishRun(source=source, target=target, requested=requested)
        logger.info("Publishing %s -> %s", source, target)

        try:
            self.daemon.login(self.credentials)
            run.advance(PublishState.LOGGED_IN)

            upstream, fallback = self.prober.probe_or_default(str(source))
            run.report = compare(requested, upstream, probe_fallback=fallback)
            require_resolved(run.report)
            run.strategy = choose_strategy(run.report)

            self._execute(run, run.strategy)
        except PorterError as e:
            self._fail(run, e)
        except Exception as e:
            logger.exception("Unexpected error while publishing %s", target)
            self._fail(run, SystemFailureError(f"unexpected {type(e).__name__} while publishing", cause=e))

        return run

    def _fail(self, run: PublishRun, error: PorterError) -> None:
        built = run.report.resolved if run.report else ()
        error.context.setdefault("source_image", str(run.source))
        error.context.setdefault("target_image", str(run.target))
        error.context.setdefault("platforms", list(built or run.requested))
        logger.error("Publishing %s failed: %s", run.target, error)
        run.fail(error)

    def _execute(self, run: PublishRun, strategy: BuildStrategy) -> None:
        if isinstance(strategy, SinglePlatform):
            self.daemon.build(run.source, run.target, strategy.platform)
            run.advance(PublishState.BUILT)
            self.daemon.push(run.target, self.credentials)
            run.advance(PublishState.PUSHED)
        elif isinstance(strategy, MultiPlatform):
            self.buildkit.login(self.credentials)
            # buildx builds and pushes in one step
            self.buildkit.build_and_push(run.source, run.target, strategy.platforms)
            run.advance(PublishState.BUILT)
            run.advance(PublishState.PUSHED)
        else:
            raise SystemFailureError(f"unknown build strategy {strategy!r}")
