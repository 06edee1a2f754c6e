"""Discovers which platforms an upstream image is published for."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Callable, Iterable, List, Optional, Tuple

import docker
from docker.errors import DockerException, ImageNotFound

from .errors import ProbeError
from .strategy import DEFAULT_PLATFORM, PlatformSet, unique_platforms

logger = logging.getLogger(__name__)


def clean_platforms(platforms: Iterable[str]) -> PlatformSet:
    """Drop empty and ``unknown`` entries (attestation manifests) and duplicates."""
    return unique_platforms(p for p in platforms if p and "unknown" not in p)


def _platform_of(entry: Any) -> Optional[str]:
    if not isinstance(entry, dict):
        return None
    os_name = entry.get("os") or entry.get("Os")
    arch = entry.get("architecture") or entry.get("Architecture")
    if os_name and arch:
        return f"{os_name}/{arch}"
    return None


def parse_manifest_platforms(data: Any) -> List[str]:
    """Extract ``os/arch`` strings from ``docker manifest inspect`` output.

    Handles a manifest list (``manifests[].platform``), a single image
    manifest carrying ``os``/``architecture``, and the ``--verbose`` shapes
    (a list of entries or one entry with ``Descriptor.platform``).
    """
    if isinstance(data, list):
        platforms: List[str] = []
        for item in data:
            platforms.extend(parse_manifest_platforms(item))
        return platforms

    if not isinstance(data, dict):
        return []

    manifests = data.get("manifests") or []
    if manifests:
        found = (_platform_of(m.get("platform")) for m in manifests if isinstance(m, dict))
        return [p for p in found if p]

    descriptor = data.get("Descriptor")
    if isinstance(descriptor, dict) and descriptor.get("platform"):
        platform = _platform_of(descriptor["platform"])
        return [platform] if platform else []

    platform = _platform_of(data)
    return [platform] if platform else []


class ArchitectureProber:
    """Asks the registry for an image's platforms, then the local cache.

    A locally cached image records only the platform that was pulled, so it
    is consulted last.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None, docker_bin: str = "docker"):
        self.client = client
        self.docker_bin = docker_bin

    def probe(self, image: str) -> PlatformSet:
        """Return the platforms of ``image``, raising ProbeError if none are found."""
        sources: List[Tuple[str, Callable[[str], List[str]]]] = []
        if self.client is not None:
            sources.append(("registry distribution data", self._from_registry))
        sources.append(("manifest inspect", self._from_manifest_inspect))
        if self.client is not None:
            sources.append(("local image cache", self._from_local_cache))

        failures = []
        for name, source in sources:
            try:
                platforms = clean_platforms(source(image))
            except (DockerException, OSError, subprocess.CalledProcessError, ValueError) as e:
                logger.debug("Probe source %s failed for %s: %s", name, image, e)
                failures.append(f"{name}: {e}")
                continue

            if platforms:
                logger.info("Upstream platforms of %s (%s): %s", image, name, ", ".join(platforms))
                return platforms
            logger.debug("Probe source %s returned no platforms for %s", name, image)

        raise ProbeError(
            f"no platform information available for {image}",
            context={"image": image, "attempts": failures},
        )

    def probe_or_default(self, image: str) -> Tuple[PlatformSet, bool]:
        """Probe, falling back to the default platform.

        The second element is True when the fallback was used; callers must
        surface that, since it may under-build a multi-platform image.
        """
        try:
            return self.probe(image), False
        except ProbeError as e:
            logger.warning(
                "Could not detect platforms of %s (%s); ASSUMING %s. "
                "This is a heuristic, not a probe result.",
                image,
                e.message,
                DEFAULT_PLATFORM,
            )
            return (DEFAULT_PLATFORM,), True

    def _from_local_cache(self, image: str) -> List[str]:
        try:
            local = self.client.images.get(image)
        except ImageNotFound:
            return []
        platform = _platform_of(local.attrs)
        return [platform] if platform else []

    def _from_registry(self, image: str) -> List[str]:
        data = self.client.images.get_registry_data(image)
        return [p for p in (_platform_of(e) for e in data.attrs.get("Platforms") or []) if p]

    def _from_manifest_inspect(self, image: str) -> List[str]:
        cmd = [self.docker_bin, "manifest", "inspect", "--verbose", image]
        logger.debug("Executing: %s", " ".join(cmd))
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return parse_manifest_platforms(json.loads(result.stdout))
