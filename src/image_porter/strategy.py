"""Decides which platforms to build and which build path to take.

The selector compares the platforms the requester asked for with the ones the
upstream image actually ships. One resolved platform goes through the Docker
daemon directly; two or more need a buildx builder capable of producing a
multi-platform manifest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM = "linux/amd64"

PlatformSet = Tuple[str, ...]


def parse_platforms(text: Union[str, Iterable[str], None]) -> PlatformSet:
    """Split ``linux/amd64, linux/arm64`` into a de-duplicated tuple."""
    if text is None:
        return ()
    items = text.split(",") if isinstance(text, str) else list(text)
    return unique_platforms(item.strip() for item in items)


def unique_platforms(platforms: Iterable[str]) -> PlatformSet:
    seen = []
    for platform in platforms:
        if platform and platform not in seen:
            seen.append(platform)
    return tuple(seen)


@dataclass(frozen=True)
class ArchitectureReport:
    """Comparison of upstream and requested platforms for one run."""

    upstream: PlatformSet
    requested: PlatformSet
    resolved: PlatformSet
    skipped: PlatformSet
    probe_fallback: bool = False


@dataclass(frozen=True)
class SinglePlatform:
    """Build through the daemon API for exactly one platform."""

    platform: str

    @property
    def platforms(self) -> PlatformSet:
        return (self.platform,)

    @property
    def label(self) -> str:
        return "single-platform (Docker daemon)"


@dataclass(frozen=True)
class MultiPlatform:
    """Build and push all platforms in one buildx invocation."""

    platforms: PlatformSet

    @property
    def label(self) -> str:
        return "multi-platform (docker buildx)"


BuildStrategy = Union[SinglePlatform, MultiPlatform]


def compare(
    requested: Iterable[str], upstream: Iterable[str], probe_fallback: bool = False
) -> ArchitectureReport:
    """Intersect requested and upstream platforms by exact string equality.

    No aliasing is done (``arm64`` is not ``aarch64``). The result may have
    nothing resolved; ``require_resolved`` rejects that.
    """
    requested = unique_platforms(requested)
    upstream = unique_platforms(upstream)

    resolved = tuple(p for p in requested if p in upstream)
    return ArchitectureReport(
        upstream=upstream,
        requested=requested,
        resolved=resolved,
        skipped=tuple(p for p in requested if p not in resolved),
        probe_fallback=probe_fallback,
    )


def require_resolved(report: ArchitectureReport) -> ArchitectureReport:
    if not report.resolved:
        raise ValidationError(
            "upstream image supports none of the requested platforms",
            context={
                "upstream_platforms": list(report.upstream),
                "requested_platforms": list(report.requested),
            },
        )

    if report.skipped:
        logger.warning("Upstream image lacks platforms %s, skipping them", ", ".join(report.skipped))
    return report


def select(
    requested: Iterable[str], upstream: Iterable[str], probe_fallback: bool = False
) -> ArchitectureReport:
    """``compare``, raising ValidationError when nothing requested is available upstream."""
    return require_resolved(compare(requested, upstream, probe_fallback=probe_fallback))


def choose_strategy(report: ArchitectureReport) -> BuildStrategy:
    if len(report.resolved) == 1:
        strategy: BuildStrategy = SinglePlatform(report.resolved[0])
    else:
        strategy = MultiPlatform(report.resolved)
    logger.info("Selected %s build for %s", strategy.label, ", ".join(report.resolved))
    return strategy


def render_architecture_summary(report: ArchitectureReport) -> str:
    """Markdown block describing what was compared and what got built."""
    lines = ["🏗️ **Architecture**:", "```"]
    upstream = ", ".join(report.upstream)
    if report.probe_fallback:
        upstream += " (assumed, probe failed)"
    lines.append(f"upstream:  {upstream}")
    lines.append(f"requested: {', '.join(report.requested)}")
    lines.append(f"built:     {', '.join(report.resolved) or '(none)'}")
    lines.append("```")

    if report.probe_fallback:
        lines.append(
            "⚠️ **Warning**: the upstream platforms could not be detected; "
            f"the default platform `{DEFAULT_PLATFORM}` was assumed. "
            "The upstream image may support more platforms."
        )
    elif not report.resolved:
        lines.append("❌ **None of the requested platforms is provided upstream.**")
    elif len(report.upstream) == 1:
        lines.append("ℹ️ **Note**: the upstream image is single-platform, so is the mirrored one.")
    else:
        lines.append("ℹ️ **Note**: the upstream image is multi-platform, the mirror keeps that.")

    if report.skipped:
        lines.append(f"⚠️ **Skipped platforms**: `{', '.join(report.skipped)}` (not provided upstream)")

    return "\n".join(lines) + "\n"
