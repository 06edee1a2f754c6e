"""Configuration schema for image-porter using Pydantic.

Values are layered: defaults, then environment variables, then the YAML
file, then command-line flags. Every registry and hook section is optional;
a missing credential only disables the capability that needs it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as SchemaError

from .builders.credentials import RegistryCredentials
from .errors import ConfigError
from .logging_utils import mask_sensitive
from .naming import RewriteRuleSet
from .strategy import PlatformSet, parse_platforms

DEFAULT_PLATFORMS = "linux/amd64,linux/arm64"

# Evaluated in this order, first match wins.
DEFAULT_RULES: Dict[str, str] = {
    "^gcr.io": "",
    "^docker.io": "docker",
    "^k8s.gcr.io": "google-containers",
    "^registry.k8s.io": "google-containers",
    "^quay.io": "quay",
    "^ghcr.io": "ghcr",
}

ENV_VARIABLES: Dict[str, Tuple[str, ...]] = {
    "GITHUB_TOKEN": ("github", "token"),
    "GITHUB_USER": ("github", "user"),
    "GITHUB_REPO": ("github", "repo"),
    "GITHUB_RUN_ID": ("github", "run_id"),
    "PLATFORMS": ("platforms",),
    "GENERIC_REGISTRY": ("registries", "generic", "registry"),
    "GENERIC_NAMESPACE": ("registries", "generic", "namespace"),
    "GENERIC_USERNAME": ("registries", "generic", "username"),
    "GENERIC_PASSWORD": ("registries", "generic", "password"),
    "HUAWEI_SWR_ACCESS_KEY": ("registries", "huawei_swr", "access_key"),
    "HUAWEI_SWR_SECRET_KEY": ("registries", "huawei_swr", "secret_key"),
    "HUAWEI_SWR_REGION": ("registries", "huawei_swr", "region"),
    "LOG_LEVEL": ("app", "log_level"),
    "DEBUG": ("app", "debug"),
}

_TOP_LEVEL_KEYS = {"github", "registries", "rules", "app", "platforms"}


class GitHubSettings(BaseModel):
    """Where image-move tickets are read from and reported to."""

    token: str = ""
    """Token with issue read/write permission on the repository."""

    user: str = ""
    """Owner of the repository holding the tickets."""

    repo: str = ""
    """Repository holding the tickets."""

    run_id: str = ""
    """Actions run id, used to link the build log from reports."""

    label: str = "porter"
    """Only open issues carrying this label are processed."""

    api_url: str = "https://api.github.com"

    @property
    def build_log_url(self) -> str:
        return f"https://github.com/{self.user}/{self.repo}/actions/runs/{self.run_id}"


class GenericRegistrySettings(BaseModel):
    """The target registry. An empty registry means Docker Hub."""

    registry: str = ""
    namespace: str = ""
    username: str = ""
    password: str = ""


class HuaweiSWRSettings(BaseModel):
    """Credentials for the Huawei SWR visibility hook."""

    access_key: str = ""
    secret_key: str = ""
    region: str = "cn-southwest-2"


class RegistriesSettings(BaseModel):
    generic: GenericRegistrySettings = Field(default_factory=GenericRegistrySettings)
    huawei_swr: HuaweiSWRSettings = Field(default_factory=HuaweiSWRSettings)


class AppSettings(BaseModel):
    log_level: str = "info"
    debug: bool = False


class PorterConfig(BaseModel):
    """Root configuration object for an image-porter run."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    registries: RegistriesSettings = Field(default_factory=RegistriesSettings)

    rules: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_RULES))
    """Ordered map of anchored registry pattern to namespace literal."""

    platforms: str = DEFAULT_PLATFORMS
    """Platforms built when a ticket does not name any."""

    app: AppSettings = Field(default_factory=AppSettings)

    @field_validator("rules", mode="before")
    @classmethod
    def _empty_namespace(cls, value: Any) -> Any:
        # ``"^gcr.io":`` in YAML loads as None and means "no namespace".
        if isinstance(value, Mapping):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    def rule_set(self) -> RewriteRuleSet:
        return RewriteRuleSet.from_mapping(self.rules)

    def credentials(self) -> RegistryCredentials:
        generic = self.registries.generic
        return RegistryCredentials(
            registry=generic.registry,
            username=generic.username,
            password=generic.password,
        )

    def default_platforms(self) -> PlatformSet:
        return parse_platforms(self.platforms)

    def secrets(self) -> Tuple[str, ...]:
        return tuple(
            s
            for s in (
                self.github.token,
                self.registries.generic.password,
                self.registries.huawei_swr.access_key,
                self.registries.huawei_swr.secret_key,
            )
            if s
        )

    def validate_for_run(self) -> None:
        """Checks what the ticket-processing command cannot run without."""
        missing = [
            name
            for name, value in (
                ("github.token", self.github.token),
                ("github.user", self.github.user),
                ("github.repo", self.github.repo),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"missing required settings: {', '.join(missing)}")

    def safe_dump(self) -> Dict[str, Any]:
        """The configuration with every secret masked, for logging."""
        data = self.model_dump()
        if self.github.token:
            data["github"]["token"] = mask_sensitive(self.github.token)
        generic = data["registries"]["generic"]
        if generic["password"]:
            generic["password"] = mask_sensitive(generic["password"])
        swr = data["registries"]["huawei_swr"]
        for key in ("access_key", "secret_key"):
            if swr[key]:
                swr[key] = mask_sensitive(swr[key])
        return data


def _set_path(data: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    for key in path[:-1]:
        data = data.setdefault(key, {})
    data[path[-1]] = value


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key != "rules" and isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for variable, path in ENV_VARIABLES.items():
        value = environ.get(variable)
        if value:
            _set_path(data, path, value)
    return data


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Loads a YAML config file.

    A file whose top level is only ``pattern: namespace`` pairs is read as
    the rule table.
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing YAML config {path}", cause=e) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    if data and not (set(data) & _TOP_LEVEL_KEYS):
        if all(v is None or isinstance(v, str) for v in data.values()):
            return {"rules": data}
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PorterConfig:
    """Builds the effective configuration (flags > file > env > defaults)."""
    data = env_overrides(os.environ if environ is None else environ)
    if path:
        data = _deep_merge(data, read_config_file(path))
    if overrides:
        data = _deep_merge(data, overrides)

    try:
        config = PorterConfig.model_validate(data)
    except SchemaError as e:
        raise ConfigError("invalid configuration", cause=e) from e

    config.rule_set()
    if not config.default_platforms():
        raise ConfigError("at least one default platform must be configured")
    return config
