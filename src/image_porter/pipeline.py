"""Sequences one image-move request end to end."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import PorterConfig
from .errors import ConfigError, ErrorKind, ExternalServiceError, PorterError, format_error_details
from .hooks.chain import HookChain, HookChainResult
from .naming import ImageReference, ImageTransformer
from .publisher import ImagePublisher, PublishRun, PublishState
from .report import progress_comment, render_report
from .strategy import ArchitectureReport, BuildStrategy, PlatformSet, render_architecture_summary
from .tickets import GitHubIssueQueue, parse_ticket_title

logger = logging.getLogger(__name__)


@dataclass
class BuildOutcome:
    """Result of one request, consumed by the reporter. Not persisted."""

    success: bool
    raw_image: str
    requested: PlatformSet
    platforms_named: bool = False
    source: Optional[ImageReference] = None
    target: Optional[ImageReference] = None
    report: Optional[ArchitectureReport] = None
    strategy: Optional[BuildStrategy] = None
    error: Optional[PorterError] = None
    hook_result: Optional[HookChainResult] = None
    history: List[PublishState] = field(default_factory=list)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def error_detail(self) -> str:
        return format_error_details(self.error) if self.error else ""

    @property
    def architecture_summary(self) -> str:
        return render_architecture_summary(self.report) if self.report else ""

    @property
    def hook_warnings(self) -> List[str]:
        if not self.hook_result:
            return []
        return [f"{name}: {error.message}" for name, error in self.hook_result.failures]


class PortingPipeline:
    def __init__(
        self,
        config: PorterConfig,
        transformer: ImageTransformer,
        publisher: ImagePublisher,
        hook_chain: HookChain,
        queue: Optional[GitHubIssueQueue] = None,
    ):
        self.config = config
        self.transformer = transformer
        self.publisher = publisher
        self.hook_chain = hook_chain
        self.queue = queue

    def process(self, raw_image: str, platforms: PlatformSet = ()) -> BuildOutcome:
        """Transforms, publishes and post-processes one image."""
        requested = platforms or self.config.default_platforms()
        outcome = BuildOutcome(
            success=False,
            raw_image=raw_image,
            requested=requested,
            platforms_named=bool(platforms),
        )

        generic = self.config.registries.generic
        try:
            outcome.source, outcome.target = self.transformer.transform(
                raw_image, generic.registry, generic.namespace
            )
        except PorterError as e:
            e.context.setdefault("requested_image", raw_image)
            logger.error("Rejected image %r: %s", raw_image, e)
            outcome.error = e
            return outcome

        run = self.publisher.publish(outcome.source, outcome.target, requested)
        outcome.report = run.report
        outcome.strategy = run.strategy
        if run.failed:
            outcome.error = run.error
            outcome.history = list(run.history)
            return outcome

        self._post_process(run, outcome)
        outcome.success = True
        logger.info("Ported %s -> %s", outcome.source, outcome.target)
        return outcome

    def _post_process(self, run: PublishRun, outcome: BuildOutcome) -> None:
        outcome.hook_result = self.hook_chain.run(run.target)
        run.advance(PublishState.POST_PROCESSED)
        run.advance(PublishState.DONE)
        outcome.history = list(run.history)

    def run_once(self) -> Optional[BuildOutcome]:
        """Handles the newest open ticket; None when the queue is empty."""
        if self.queue is None:
            raise ConfigError("no ticket queue configured")

        ticket = self.queue.fetch_one_open_request()
        if ticket is None:
            logger.info("No pending image-move requests")
            return None

        logger.info("Processing issue #%d: %s", ticket.id, ticket.title)
        log_url = self.config.github.build_log_url
        self._notify("post progress comment", self.queue.post_comment, ticket.id, progress_comment(log_url))

        raw_image, platforms = parse_ticket_title(ticket.title)
        outcome = self.process(raw_image, platforms)

        body = render_report(outcome, log_url, ticket.requester, secrets=self.config.secrets())
        labels = ["success" if outcome.success else "failed"]
        if platforms:
            labels.append("platform")

        self._notify("post report", self.queue.post_comment, ticket.id, body)
        self._notify("add labels", self.queue.add_labels, ticket.id, labels)
        self._notify("close issue", self.queue.close, ticket.id)
        return outcome

    @staticmethod
    def _notify(action: str, call: Callable[..., None], *args: object) -> None:
        try:
            call(*args)
        except ExternalServiceError as e:
            logger.warning("Could not %s: %s", action, e)
