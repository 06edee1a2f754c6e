"""Wrapper for executing multi-platform BuildKit builds via the Docker CLI."""

from __future__ import annotations

import logging
import re
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..errors import BuildError, SystemFailureError
from ..naming import ImageReference
from .credentials import RegistryCredentials
from .dockerfile_gen import DOCKERFILE_NAME, DockerfileGenerator

logger = logging.getLogger(__name__)

DEFAULT_BUILDER_NAME = "image-porter-builder"
MULTIPLATFORM_DRIVERS = ("docker-container", "kubernetes", "remote")

_PLATFORM_PATTERN = re.compile(r"\b(?:linux|windows|darwin|freebsd)/[A-Za-z0-9_]+(?:/[A-Za-z0-9_]+)?")

# Builder creation is not atomic on the docker side; serialize it in-process.
_builder_lock = threading.Lock()


def parse_builder_listing(output: str) -> List[Tuple[str, str, bool, List[str]]]:
    """Parses ``docker buildx ls`` into (name, driver, active, platforms) rows."""
    builders: List[Tuple[str, str, bool, List[str]]] = []
    for line in output.splitlines():
        if not line.strip() or line.startswith("NAME"):
            continue

        if not line[0].isspace():
            tokens = line.split()
            active = tokens[0].endswith("*") or (len(tokens) > 1 and tokens[1] == "*")
            name = tokens[0].rstrip("*")
            driver = next((t for t in tokens[1:] if t != "*"), "")
            builders.append((name, driver, active, []))
        elif builders:
            builders[-1][3].extend(_PLATFORM_PATTERN.findall(line))
    return builders


def covers(available: Sequence[str], requested: Sequence[str]) -> bool:
    """True when every requested platform is listed (variants count as a match)."""
    if not available:
        # Not bootstrapped yet; the platform list appears after the first use.
        return True
    return all(any(a == p or a.startswith(p + "/") for a in available) for p in requested)


class BuildKitBuilder:
    """Interfaces with 'docker buildx' to build and push a multi-platform image."""

    def __init__(
        self,
        builder_name: str = DEFAULT_BUILDER_NAME,
        docker_bin: str = "docker",
        generator: Optional[DockerfileGenerator] = None,
    ):
        self.builder_name = builder_name
        self.docker_bin = docker_bin
        self.generator = generator or DockerfileGenerator()

    def _run(self, args: List[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        cmd = [self.docker_bin] + args
        logger.debug("Executing: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise SystemFailureError(
                f"could not run {self.docker_bin}; is the docker CLI installed?",
                cause=e,
                context={"command": " ".join(args[:2])},
            ) from e

    def login(self, credentials: RegistryCredentials) -> None:
        """Logs the docker CLI in, since buildx pushes with the CLI credential store."""
        if not credentials.configured:
            logger.debug("No registry credentials configured, skipping CLI login")
            return

        args = ["login"]
        if credentials.registry:
            args.append(credentials.registry)
        args += ["-u", credentials.username, "--password-stdin"]

        result = self._run(args, stdin=credentials.password)
        if result.returncode != 0:
            logger.error("docker login failed:\n%s", result.stdout)
            raise BuildError(
                "docker CLI login failed",
                context={"registry": credentials.display_name, "username": credentials.username},
            )
        logger.debug("docker CLI logged in to %s", credentials.display_name)

    def ensure_builder(self, platforms: Sequence[str]) -> str:
        """
        Returns the name of a builder able to produce ``platforms``.

        An active builder with a multi-platform driver is reused when its
        platform list covers the request; otherwise ``builder_name`` is created
        (or reused if it already exists) and bootstrapped.
        """
        with _builder_lock:
            if self._run(["buildx", "version"]).returncode != 0:
                raise SystemFailureError("docker buildx is not available")

            listing = self._run(["buildx", "ls"])
            if listing.returncode == 0:
                for name, driver, active, available in parse_builder_listing(listing.stdout):
                    if active and driver in MULTIPLATFORM_DRIVERS and covers(available, platforms):
                        logger.info("Reusing buildx builder %s (%s)", name, driver)
                        return name
            else:
                logger.warning("Could not list buildx builders:\n%s", listing.stdout)

            logger.info("Creating multi-platform buildx builder %s", self.builder_name)
            created = self._run(
                ["buildx", "create", "--name", self.builder_name, "--driver", "docker-container"]
            )
            if created.returncode != 0:
                if "already exists" not in created.stdout:
                    logger.error("buildx create failed:\n%s", created.stdout)
                    raise SystemFailureError(
                        "could not create a multi-platform buildx builder",
                        context={"builder": self.builder_name},
                    )
                logger.debug("Builder %s already exists, reusing it", self.builder_name)

            bootstrap = self._run(["buildx", "inspect", self.builder_name, "--bootstrap"])
            if bootstrap.returncode != 0:
                logger.warning("Bootstrapping %s failed, trying the build anyway:\n%s",
                               self.builder_name, bootstrap.stdout)
            return self.builder_name

    def build_and_push(
        self, source: ImageReference, target: ImageReference, platforms: Sequence[str]
    ) -> None:
        """
        Executes one ``docker buildx build --push`` spanning all ``platforms``.

        The Dockerfile lives in a temporary context directory that is removed
        whether or not the build succeeds.
        """
        builder = self.ensure_builder(platforms)

        with tempfile.TemporaryDirectory(prefix="image-porter-") as context_dir:
            context = Path(context_dir)
            dockerfile = context / DOCKERFILE_NAME
            dockerfile.write_text(self.generator.generate(str(source)))

            args = ["buildx", "build", "--builder", builder]
            args += ["--platform", ",".join(platforms)]
            args += ["-f", str(dockerfile)]
            args += ["-t", str(target)]
            args += ["--progress", "plain", "--push"]
            args.append(str(context))

            result = self._run(args)

        if result.returncode != 0:
            logger.error("buildx build failed:\n%s", result.stdout)
            raise BuildError(
                f"docker buildx build exited with status {result.returncode}",
                context={
                    "source_image": str(source),
                    "target_image": str(target),
                    "platforms": list(platforms),
                },
            )
        logger.info("Built and pushed %s for %s", target, ", ".join(platforms))
