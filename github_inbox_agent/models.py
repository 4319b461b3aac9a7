"""Data models for GitHub notifications."""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


ISSUE = "Issue"
PULL_REQUEST = "PullRequest"


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp(value: str) -> datetime:
    """
    Parse a GitHub ISO-8601 timestamp into an aware UTC datetime.

    Unparseable values sort as the oldest possible time.
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(payload: Dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(payload, dict):
        raise ValueError(f"{context}: expected an object, got {type(payload).__name__}")
    if key not in payload or payload[key] is None:
        raise ValueError(f"{context}: missing required field '{key}'")
    return payload[key]


def _optional_object(payload: Dict[str, Any], key: str, context: str) -> Dict[str, Any]:
    """Return a nested object, {} when absent; anything else is malformed."""
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{context}: field '{key}' should be an object, got {type(value).__name__}")
    return value


@dataclass
class Owner:
    login: str


@dataclass
class Repository:
    full_name: str
    name: str
    owner: Owner

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Repository":
        owner = _require(data, "owner", "repository")
        return cls(
            full_name=_require(data, "full_name", "repository"),
            name=_require(data, "name", "repository"),
            owner=Owner(login=_require(owner, "login", "repository.owner")),
        )


@dataclass
class Subject:
    title: str
    type: str                                 # "Issue", "PullRequest", ...
    url: Optional[str] = None                 # API URL of the issue/PR
    latest_comment_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        return cls(
            title=_require(data, "title", "subject"),
            type=_require(data, "type", "subject"),
            url=data.get("url"),
            latest_comment_url=data.get("latest_comment_url"),
        )


@dataclass
class CustomState:
    """User overrides for one notification; None means "not overridden"."""
    is_read: Optional[bool] = None
    is_done: Optional[bool] = None
    priority: Optional[int] = None
    last_viewed_at: Optional[int] = None  # epoch ms

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomState":
        return cls(
            is_read=data.get("is_read"),
            is_done=data.get("is_done"),
            priority=data.get("priority"),
            last_viewed_at=data.get("last_viewed_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


OVERRIDE_FIELDS = ("is_read", "is_done", "priority", "last_viewed_at")


@dataclass
class Notification:
    """A GitHub notification thread plus local user overrides."""
    id: str
    reason: str
    repository: Repository
    subject: Subject
    updated_at: str     # ISO8601 UTC, assigned by GitHub
    unread: bool
    url: str = ""       # thread API URL

    # Local overrides
    is_read: Optional[bool] = None
    is_done: Optional[bool] = None
    priority: Optional[int] = None
    last_viewed_at: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Notification":
        """
        Map a notifications API item into a Notification.

        Only the consumed fields are kept; anything else GitHub sends is dropped.

        Raises:
            ValueError: If a required field is missing.
        """
        return cls(
            id=str(_require(data, "id", "notification")),
            reason=data.get("reason") or "",
            repository=Repository.from_dict(_require(data, "repository", "notification")),
            subject=Subject.from_dict(_require(data, "subject", "notification")),
            updated_at=_require(data, "updated_at", "notification"),
            unread=bool(data.get("unread", False)),
            url=data.get("url") or "",
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        """Load a notification from the persisted snapshot (overrides included)."""
        notification = cls.from_api(data)
        for name in OVERRIDE_FIELDS:
            setattr(notification, name, data.get(name))
        return notification

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Overrides that were never set are left out of the snapshot
        for name in OVERRIDE_FIELDS:
            if data[name] is None:
                del data[name]
        return data

    def custom_state(self) -> CustomState:
        return CustomState(
            is_read=self.is_read,
            is_done=self.is_done,
            priority=self.priority,
            last_viewed_at=self.last_viewed_at,
        )

    def apply_overrides(self, state: CustomState) -> None:
        """Copy every override that is set on ``state`` onto this notification."""
        for name in OVERRIDE_FIELDS:
            value = getattr(state, name)
            if value is not None:
                setattr(self, name, value)

    @property
    def done(self) -> bool:
        return self.is_done is True

    @property
    def sort_key(self):
        """Newest-first ordering key: updated_at, then id as tie-break."""
        return (parse_timestamp(self.updated_at), self.id)


@dataclass
class CommentUser:
    login: str
    avatar_url: str = ""


@dataclass
class Comment:
    id: int
    user: CommentUser
    body: str
    created_at: str
    updated_at: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Comment":
        user = _require(data, "user", "comment")
        return cls(
            id=int(_require(data, "id", "comment")),
            user=CommentUser(
                login=_require(user, "login", "comment.user"),
                avatar_url=user.get("avatar_url") or "",
            ),
            body=data.get("body") or "",
            created_at=_require(data, "created_at", "comment"),
            updated_at=data.get("updated_at") or data["created_at"],
        )


@dataclass
class IssueDetail:
    """Issue body and metadata shown next to a notification."""
    number: int
    title: str
    state: str
    body: str = ""
    html_url: str = ""
    author: str = ""
    kind: str = field(default=ISSUE, init=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "IssueDetail":
        return cls(
            number=int(_require(data, "number", "issue")),
            title=_require(data, "title", "issue"),
            state=_require(data, "state", "issue"),
            body=data.get("body") or "",
            html_url=data.get("html_url") or "",
            author=_optional_object(data, "user", "issue").get("login") or "",
        )


@dataclass
class PullRequestDetail:
    """Pull request body and metadata shown next to a notification."""
    number: int
    title: str
    state: str
    body: str = ""
    html_url: str = ""
    author: str = ""
    merged: bool = False
    draft: bool = False
    head_ref: str = ""
    base_ref: str = ""
    kind: str = field(default=PULL_REQUEST, init=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PullRequestDetail":
        return cls(
            number=int(_require(data, "number", "pull request")),
            title=_require(data, "title", "pull request"),
            state=_require(data, "state", "pull request"),
            body=data.get("body") or "",
            html_url=data.get("html_url") or "",
            author=_optional_object(data, "user", "pull request").get("login") or "",
            merged=bool(data.get("merged", False)),
            draft=bool(data.get("draft", False)),
            head_ref=_optional_object(data, "head", "pull request").get("ref") or "",
            base_ref=_optional_object(data, "base", "pull request").get("ref") or "",
        )


SubjectDetail = Union[IssueDetail, PullRequestDetail]


@dataclass
class NotificationDetails:
    notification: Notification
    detail: Optional[SubjectDetail] = None
    comments: Optional[List[Comment]] = None


@dataclass
class NotificationStats:
    total: int
    unread: int        # unread on GitHub
    app_unread: int    # working-set members not read locally
    done: int
    in_progress: int   # working-set size
    last_sync: int     # epoch ms, 0 if never synced
    is_online: bool
