"""Main CLI entry point for image-porter."""

from __future__ import annotations

import logging
import sys
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Optional

import click
import docker
import httpx

from .builders.buildkit import BuildKitBuilder
from .builders.daemon import DaemonBuilder, connect
from .config import PorterConfig, load_config
from .errors import ConfigError, PorterError
from .hooks.chain import HookChain, build_chain
from .logging_utils import configure_logging, register_secrets
from .naming import ImageTransformer
from .pipeline import PortingPipeline
from .prober import ArchitectureProber
from .publisher import ImagePublisher
from .tickets import DEFAULT_TIMEOUT, GitHubIssueQueue

logger = logging.getLogger(__name__)

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to the YAML config (or a plain rules file).",
)


@click.group()
@click.version_option(package_name="image-porter")
def cli():
    """Image Porter: mirrors container images into a target registry."""
    pass


def _load(config_path: Optional[Path], overrides: Dict[str, Any]) -> PorterConfig:
    try:
        config = load_config(config_path, overrides=overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    register_secrets(*config.secrets())
    configure_logging(config.app.log_level, config.app.debug)
    return config


def _build_pipeline(
    config: PorterConfig, client: docker.DockerClient, http: httpx.Client
) -> PortingPipeline:
    publisher = ImagePublisher(
        daemon=DaemonBuilder(client),
        buildkit=BuildKitBuilder(),
        prober=ArchitectureProber(client),
        credentials=config.credentials(),
    )
    queue = GitHubIssueQueue(
        config.github.token,
        config.github.user,
        config.github.repo,
        label=config.github.label,
        client=http,
    )
    return PortingPipeline(
        config=config,
        transformer=ImageTransformer(config.rule_set()),
        publisher=publisher,
        hook_chain=HookChain(build_chain(config)),
        queue=queue,
    )


@cli.command()
@_config_option
@click.option("--github-token", help="GitHub token (overrides GITHUB_TOKEN).")
@click.option("--github-user", help="Owner of the ticket repository.")
@click.option("--github-repo", help="Name of the ticket repository.")
@click.option("--github-run-id", help="Actions run id linked from reports.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "warning", "error"], case_sensitive=False),
    help="Log level.",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
def run(
    config_path: Optional[Path],
    github_token: Optional[str],
    github_user: Optional[str],
    github_repo: Optional[str],
    github_run_id: Optional[str],
    log_level: Optional[str],
    debug: bool,
):
    """Processes the newest open image-move ticket."""
    configure_logging(log_level or "info", bool(debug))

    github = {
        key: value
        for key, value in (
            ("token", github_token),
            ("user", github_user),
            ("repo", github_repo),
            ("run_id", github_run_id),
        )
        if value
    }
    app: Dict[str, Any] = {}
    if log_level:
        app["log_level"] = log_level
    if debug:
        app["debug"] = True

    config = _load(config_path, {"github": github, "app": app})
    try:
        config.validate_for_run()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    logger.debug("Effective configuration: %s", config.safe_dump())

    try:
        with closing(connect()) as client, httpx.Client(
            base_url=config.github.api_url, timeout=DEFAULT_TIMEOUT
        ) as http:
            outcome = _build_pipeline(config, client, http).run_once()
    except PorterError as e:
        logger.error("Run aborted: %s", e)
        sys.exit(1)

    if outcome is None:
        click.echo("No pending image-move requests.")
        return
    if not outcome.success:
        click.echo(f"Porting {outcome.raw_image} failed: {outcome.error}", err=True)
        sys.exit(1)
    click.echo(f"Ported {outcome.source} -> {outcome.target}")


@cli.command()
@_config_option
@click.option("--registry", default=None, help="Target registry host (default: configured).")
@click.option("--namespace", default=None, help="Target namespace (default: configured).")
@click.argument("image")
def transform(config_path: Optional[Path], registry: Optional[str], namespace: Optional[str], image: str):
    """Shows the source and target names for IMAGE without building."""
    config = _load(config_path, {})
    generic = config.registries.generic
    try:
        source, target = ImageTransformer(config.rule_set()).transform(
            image,
            generic.registry if registry is None else registry,
            generic.namespace if namespace is None else namespace,
        )
    except PorterError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"source: {source}")
    click.echo(f"target: {target}")


@cli.command()
@click.argument("image")
def probe(image: str):
    """Lists the platforms the upstream IMAGE provides."""
    configure_logging("warning")
    try:
        with closing(connect()) as client:
            platforms, fallback = ArchitectureProber(client).probe_or_default(image)
    except PorterError as e:
        raise click.ClickException(str(e)) from e

    for platform in platforms:
        click.echo(platform)
    if fallback:
        click.echo("warning: platforms could not be detected, showing the default", err=True)


def main():
    cli()


if __name__ == "__main__":
    main()
