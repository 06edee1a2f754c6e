"""Target registry credentials shared by both build paths."""

from __future__ import annotations

from dataclasses import dataclass, field

DOCKER_HUB_SERVER = "https://index.docker.io/v1/"


@dataclass(frozen=True)
class RegistryCredentials:
    registry: str = ""
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    @property
    def server_address(self) -> str:
        return self.registry or DOCKER_HUB_SERVER

    @property
    def display_name(self) -> str:
        return self.registry or "Docker Hub"

    def auth_config(self) -> dict:
        """Auth payload accepted by the Docker Engine API."""
        return {
            "username": self.username,
            "password": self.password,
            "serveraddress": self.server_address,
        }
