"""Async GitHub REST client for the notification endpoints."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import GitHubConfig
from .models import Comment, IssueDetail, Notification, PullRequestDetail
from .request_cache import RequestCache

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub call fails or returns a payload we cannot use."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def parse_subject_url(url: Optional[str]) -> Tuple[str, str, int]:
    """
    Extract owner, repo and number from a subject API URL.

    Example: https://api.github.com/repos/acme/hub/issues/123 -> ("acme", "hub", 123)

    Raises:
        ValueError: If the URL is missing or not shaped like a repo item URL.
    """
    if not url:
        raise ValueError("No subject URL")
    parts = url.rstrip("/").split("/")
    if len(parts) < 8:
        raise ValueError(f"Invalid subject URL format: {url}")
    owner = parts[-4]
    repo = parts[-3]
    number = int(parts[-1])
    return owner, repo, number


class GitHubClient:
    """
    Thin wrapper over ``httpx.AsyncClient``.

    GET requests go through the injected RequestCache; only successful
    responses are cached.
    """

    def __init__(
        self,
        config: GitHubConfig,
        cache: Optional[RequestCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else RequestCache()
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": config.user_agent,
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise GitHubAPIError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None, use_cache: bool = True) -> Any:
        key = str(self._client.build_request("GET", path, params=params).url)
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached

        response = await self._request("GET", path, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"GET {path} returned invalid JSON: {e}") from e

        if use_cache:
            self.cache.set(key, data)
        return data

    async def validate_token(self) -> None:
        """
        Make the smallest possible authenticated call.

        Raises:
            GitHubAPIError: If the token is rejected or GitHub is unreachable.
        """
        await self._get_json("/notifications", params={"all": "true", "per_page": 1}, use_cache=False)
        logger.info("GitHub token validated")

    async def fetch_notifications(self, page: int = 1, per_page: int = 50) -> List[Notification]:
        """
        Fetch one page of the authenticated user's notifications.

        Args:
            page: 1-based page number.
            per_page: Page size (GitHub allows up to 100).

        Returns:
            Notifications on that page; empty when past the last page.
        """
        data = await self._get_json(
            "/notifications",
            params={"all": "true", "page": page, "per_page": per_page},
        )
        if not isinstance(data, list):
            raise GitHubAPIError(f"Expected a list of notifications, got {type(data).__name__}")
        try:
            return [Notification.from_api(item) for item in data]
        except (TypeError, ValueError) as e:
            raise GitHubAPIError(f"Malformed notification payload: {e}") from e

    async def mark_thread_as_done(self, thread_id: str) -> None:
        """Mark a notification thread as done on GitHub."""
        await self._request("DELETE", f"/notifications/threads/{thread_id}")

    async def get_issue(self, owner: str, repo: str, number: int) -> IssueDetail:
        data = await self._get_json(f"/repos/{owner}/{repo}/issues/{number}")
        try:
            return IssueDetail.from_api(data)
        except (TypeError, ValueError) as e:
            raise GitHubAPIError(f"Malformed issue payload: {e}") from e

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequestDetail:
        data = await self._get_json(f"/repos/{owner}/{repo}/pulls/{number}")
        try:
            return PullRequestDetail.from_api(data)
        except (TypeError, ValueError) as e:
            raise GitHubAPIError(f"Malformed pull request payload: {e}") from e

    async def get_comments(self, owner: str, repo: str, number: int) -> List[Comment]:
        # PR conversation comments live under the issues endpoint too
        data = await self._get_json(f"/repos/{owner}/{repo}/issues/{number}/comments")
        if not isinstance(data, list):
            raise GitHubAPIError(f"Expected a list of comments, got {type(data).__name__}")
        try:
            return [Comment.from_api(item) for item in data]
        except (TypeError, ValueError) as e:
            raise GitHubAPIError(f"Malformed comment payload: {e}") from e

    async def aclose(self) -> None:
        """Close the HTTP connection pool and flush the request cache."""
        try:
            await self._client.aclose()
        finally:
            await self.cache.aclose()
