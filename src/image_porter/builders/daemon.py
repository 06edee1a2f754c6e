"""Single-platform build and push through the Docker Engine API."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import docker
from docker.errors import DockerException

from ..errors import BuildError, SystemFailureError
from ..naming import ImageReference
from .credentials import RegistryCredentials
from .dockerfile_gen import DockerfileGenerator

logger = logging.getLogger(__name__)


def connect() -> docker.DockerClient:
    """Returns a client for the daemon configured in the environment.

    Raises SystemFailureError when no daemon answers, since nothing else in the
    pipeline can work without one.
    """
    try:
        client = docker.from_env()
    except DockerException as e:
        raise SystemFailureError(
            "Docker daemon is not reachable; make sure it is running, "
            "DOCKER_HOST is correct and the socket is accessible",
            cause=e,
        ) from e

    try:
        client.ping()
    except DockerException as e:
        client.close()
        raise SystemFailureError("Docker daemon did not answer ping", cause=e) from e

    logger.debug("Connected to Docker daemon")
    return client


class DaemonBuilder:
    """Builds one platform of a re-based image and pushes it to the target."""

    def __init__(self, client: docker.DockerClient, generator: Optional[DockerfileGenerator] = None):
        self.client = client
        self.generator = generator or DockerfileGenerator()

    def login(self, credentials: RegistryCredentials) -> None:
        if not credentials.configured:
            logger.debug("No registry credentials configured, skipping daemon login")
            return

        logger.debug("Logging in to %s through the Docker API", credentials.display_name)
        try:
            self.client.login(
                username=credentials.username,
                password=credentials.password,
                registry=credentials.server_address,
            )
        except DockerException as e:
            raise BuildError(
                "registry login failed",
                cause=e,
                context={"registry": credentials.display_name, "username": credentials.username},
            ) from e
        logger.info("Logged in to %s", credentials.display_name)

    def build(self, source: ImageReference, target: ImageReference, platform: str) -> None:
        """
        Executes a daemon build of ``FROM <source>`` for ``platform``.

        Build events are logged at DEBUG level; the first ``error`` event
        aborts the build.
        """
        context = self.generator.build_context(str(source))
        try:
            events = self.client.api.build(
                fileobj=context,
                custom_context=True,
                tag=str(target),
                platform=platform,
                pull=True,
                rm=True,
                forcerm=True,
                decode=True,
            )
            self._consume(events, "build")
        except DockerException as e:
            raise BuildError(
                "daemon build failed",
                cause=e,
                context={"source_image": str(source), "target_image": str(target), "platform": platform},
            ) from e
        except BuildError as e:
            e.with_context("source_image", str(source))
            e.with_context("target_image", str(target))
            e.with_context("platform", platform)
            raise
        finally:
            context.close()

        logger.info("Built %s for %s", target, platform)

    def push(self, target: ImageReference, credentials: RegistryCredentials) -> None:
        auth_config = credentials.auth_config() if credentials.configured else None
        try:
            events = self.client.api.push(
                target.name,
                tag=target.tag or "latest",
                auth_config=auth_config,
                stream=True,
                decode=True,
            )
            self._consume(events, "push")
        except DockerException as e:
            raise BuildError("image push failed", cause=e, context={"target_image": str(target)}) from e
        except BuildError as e:
            e.with_context("target_image", str(target))
            raise

        logger.info("Pushed %s", target)

    def _consume(self, events: Iterable[dict], stage: str) -> None:
        for event in events:
            if "error" in event:
                detail = event.get("errorDetail", {}).get("message") or event["error"]
                raise BuildError(f"{stage} error: {detail.strip()}")
            if "stream" in event:
                line = event["stream"].strip()
                if line:
                    logger.debug("%s: %s", stage, line)
            elif "status" in event:
                logger.debug("%s: %s %s", stage, event["status"], event.get("progress", ""))
