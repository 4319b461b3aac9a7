import re
from typing import Any, Dict, List, Optional

import httpx
import pytest

from github_inbox_agent.config import GitHubConfig
from github_inbox_agent.github_client import GitHubClient
from github_inbox_agent.models import Notification
from github_inbox_agent.request_cache import RequestCache
from github_inbox_agent.store import NotificationStore

API_URL = "https://api.github.test"

_REPO_ITEM = re.compile(r"^/repos/([^/]+)/([^/]+)/(issues|pulls)/(\d+)(/comments)?$")


def api_item(
    notif_id: str,
    updated_at: str,
    subject_type: str = "Issue",
    unread: bool = True,
    number: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """A notifications API item shaped like GitHub's."""
    kind = "pulls" if subject_type == "PullRequest" else "issues"
    subject_url = f"{API_URL}/repos/octo/hub/{kind}/{number}" if number is not None else None
    item = {
        "id": notif_id,
        "reason": "assign",
        "repository": {
            "full_name": "octo/hub",
            "name": "hub",
            "owner": {"login": "octo", "id": 1},
            "private": False,
        },
        "subject": {
            "title": f"Item {notif_id}",
            "type": subject_type,
            "url": subject_url,
            "latest_comment_url": None,
        },
        "updated_at": updated_at,
        "unread": unread,
        "url": f"{API_URL}/notifications/threads/{notif_id}",
    }
    item.update(extra)
    return item


def day(n: int) -> str:
    return f"2026-01-{n:02d}T00:00:00Z"


def notification(notif_id: str, updated_at: str, subject_type: str = "Issue", **overrides: Any) -> Notification:
    result = Notification.from_api(api_item(notif_id, updated_at, subject_type))
    for name, value in overrides.items():
        setattr(result, name, value)
    return result


class FakeGitHub:
    """In-memory stand-in for the GitHub endpoints the client calls."""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None):
        self.items = list(items or [])
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self.fail_done = False
        self.fail_details = False
        self.done_threads: List[str] = []
        self.issues: Dict[int, Dict[str, Any]] = {}
        self.pulls: Dict[int, Dict[str, Any]] = {}
        self.comments: Dict[int, List[Dict[str, Any]]] = {}

    def notification_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/notifications"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "failure"})

        path = request.url.path
        if path == "/notifications" and request.method == "GET":
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("per_page", "50"))
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.items[start:start + per_page])

        if path.startswith("/notifications/threads/") and request.method == "DELETE":
            if self.fail_done:
                return httpx.Response(500, json={"message": "failure"})
            self.done_threads.append(path.rsplit("/", 1)[1])
            return httpx.Response(204)

        match = _REPO_ITEM.match(path)
        if match and not self.fail_details:
            kind, number, comments = match.group(3), int(match.group(4)), match.group(5)
            if comments:
                return httpx.Response(200, json=self.comments.get(number, []))
            source = self.pulls if kind == "pulls" else self.issues
            if number in source:
                return httpx.Response(200, json=source[number])

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "GITHUB_TOKEN",
        "GITHUB_API_URL",
        "DATA_DIR",
        "MAX_ACTIVE",
        "INCLUDE_TYPES",
        "PAGE_SIZE",
        "SYNC_PAGE_SIZE",
        "CACHE_TTL_SECONDS",
        "CACHE_PERSIST",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def make_store(tmp_path, fake_github):
    """Build a store backed by the fake API; the request cache never hits by default."""

    def _make(
        max_active: int = 3,
        include_types: Optional[List[str]] = None,
        cache: Optional[RequestCache] = None,
        page_size: int = 50,
    ) -> NotificationStore:
        client = GitHubClient(
            GitHubConfig(token="test-token", api_url=API_URL),
            cache=cache if cache is not None else RequestCache(ttl_seconds=0),
            transport=httpx.MockTransport(fake_github.handler),
        )
        return NotificationStore(
            client,
            str(tmp_path / "github-notifications.json"),
            max_active=max_active,
            include_types=include_types,
            page_size=page_size,
            sync_page_size=page_size,
        )

    return _make
