"""GitHub issues as the image-move ticket queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import httpx

from .errors import ExternalServiceError
from .naming import sanitize
from .strategy import PlatformSet, parse_platforms

logger = logging.getLogger(__name__)

TITLE_PREFIX = "[PORTER]"
PLATFORM_SEPARATOR = "|"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class Ticket:
    id: int
    title: str
    requester: str = ""


def parse_ticket_title(title: str) -> Tuple[str, PlatformSet]:
    """Split ``[PORTER] image[:tag][|platform,platform]`` into its parts."""
    cleaned = title.replace(TITLE_PREFIX, "", 1).strip()
    image, _, platforms = cleaned.partition(PLATFORM_SEPARATOR)
    return sanitize(image), parse_platforms(sanitize(platforms))


class GitHubIssueQueue:
    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        label: str = "porter",
        api_url: str = "https://api.github.com",
        client: Optional[httpx.Client] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.label = label
        self.client = client or httpx.Client(base_url=api_url, timeout=DEFAULT_TIMEOUT)
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
        }

    @property
    def issues_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}/issues"

    def _request(self, method: str, path: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, path, headers=self.headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"failed to {action}",
                cause=e,
                context={"status_code": e.response.status_code, "path": path},
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"failed to {action}", cause=e, context={"path": path}) from e
        return response

    def fetch_one_open_request(self) -> Optional[Ticket]:
        params = {
            "state": "open",
            "labels": self.label,
            "sort": "created",
            "direction": "desc",
            "page": 1,
            "per_page": 1,
        }
        issues = self._request("GET", self.issues_path, "list open issues", params=params).json()
        logger.info("Found %d pending issue(s)", len(issues))
        if not issues:
            return None

        issue = issues[0]
        user = issue.get("user") or {}
        return Ticket(id=issue["number"], title=issue.get("title") or "", requester=user.get("login", ""))

    def post_comment(self, ticket_id: int, text: str) -> None:
        logger.debug("Commenting on issue #%d", ticket_id)
        self._request(
            "POST",
            f"{self.issues_path}/{ticket_id}/comments",
            f"comment on issue #{ticket_id}",
            json={"body": text},
        )

    def add_labels(self, ticket_id: int, labels: List[str]) -> None:
        logger.debug("Labelling issue #%d with %s", ticket_id, labels)
        self._request(
            "POST",
            f"{self.issues_path}/{ticket_id}/labels",
            f"label issue #{ticket_id}",
            json={"labels": labels},
        )

    def close(self, ticket_id: int) -> None:
        self._request(
            "PATCH",
            f"{self.issues_path}/{ticket_id}",
            f"close issue #{ticket_id}",
            json={"state": "closed"},
        )
        logger.info("Closed issue #%d", ticket_id)
