"""Canonical notification set: remote merge, user overrides and inbox upkeep."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .config import AppConfig
from .github_client import GitHubAPIError, GitHubClient, parse_subject_url
from .models import (
    ISSUE,
    OVERRIDE_FIELDS,
    PULL_REQUEST,
    CustomState,
    Notification,
    NotificationDetails,
    NotificationStats,
    now_ms,
)
from .request_cache import RequestCache
from .storage import StorageData, delete_storage_data, load_storage_data, save_storage_data
from .working_set import WorkingSetManager, sort_newest_first

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    Owns every known notification and the overrides the user applied to them.

    ``sync()`` and ``fetch_all()`` are single-flight: a call made while the same
    operation is running shares that run's result, and the two operations never
    interleave their merges.
    """

    def __init__(
        self,
        client: GitHubClient,
        storage_path: str,
        max_active: int = 10,
        include_types: Optional[Sequence[str]] = None,
        page_size: int = 50,
        sync_page_size: int = 50,
    ):
        self.client = client
        self.storage_path = storage_path
        self.page_size = page_size
        self.sync_page_size = sync_page_size
        self.is_online = True
        self.configured_max_active = max_active

        data = load_storage_data(storage_path)
        self._notifications: List[Notification] = data.notifications
        self._custom_states: Dict[str, CustomState] = data.custom_states
        self.last_sync = data.last_sync

        # The limit only ever grows, so a previously expanded inbox wins
        self.working_set = WorkingSetManager(
            max(max_active, data.max_active),
            include_types=include_types,
            active_ids=data.active_batch_ids,
        )
        self.working_set.recompute(self._notifications)

        self._lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "NotificationStore":
        """Build the cache, client and store described by ``config``."""
        cache = RequestCache(
            ttl_seconds=config.cache.ttl_seconds,
            path=config.cache_path if config.cache.persist else None,
            flush_delay_seconds=config.cache.flush_delay_seconds,
        )
        cache.load()
        client = GitHubClient(config.github, cache=cache, transport=transport)
        return cls(
            client,
            config.storage_path,
            max_active=config.inbox.max_active,
            include_types=config.inbox.include_types,
            page_size=config.inbox.page_size,
            sync_page_size=config.inbox.sync_page_size,
        )

    # Properties

    @property
    def max_active(self) -> int:
        return self.working_set.max_active

    @property
    def active_ids(self) -> List[str]:
        return list(self.working_set.active_ids)

    @property
    def custom_states(self) -> Dict[str, CustomState]:
        return dict(self._custom_states)

    # Remote sync

    async def fetch_all(self) -> List[Notification]:
        """
        Page through the whole notification feed and merge it.

        Returns:
            The working set, newest first.

        Raises:
            GitHubAPIError: If any page fails; the store is marked offline.
        """
        return await self._single_flight("fetch_all", self._fetch_all)

    async def sync(self) -> List[Notification]:
        """
        Refresh from the first (most recent) page only.

        Returns:
            The working set, newest first.

        Raises:
            GitHubAPIError: If the request fails; the store is marked offline.
        """
        return await self._single_flight("sync", self._sync)

    async def _single_flight(
        self, name: str, operation: Callable[[], Awaitable[List[Notification]]]
    ) -> List[Notification]:
        future = self._inflight.get(name)
        if future is None:
            future = asyncio.ensure_future(self._run_exclusive(operation))
            self._inflight[name] = future

            def _forget(done: asyncio.Future) -> None:
                if self._inflight.get(name) is done:
                    del self._inflight[name]
                if not done.cancelled():
                    # Mark the exception retrieved even if every caller gave up
                    done.exception()

            future.add_done_callback(_forget)
        else:
            logger.debug(f"{name} already in flight; waiting for it")
        # A caller giving up must not cancel the run other callers share
        return await asyncio.shield(future)

    async def _run_exclusive(self, operation: Callable[[], Awaitable[List[Notification]]]) -> List[Notification]:
        async with self._lock:
            return await operation()

    async def _fetch_all(self) -> List[Notification]:
        fetched: List[Notification] = []
        page = 1
        try:
            while True:
                batch = await self.client.fetch_notifications(page=page, per_page=self.page_size)
                if not batch:
                    break
                fetched.extend(batch)
                page += 1
        except GitHubAPIError as e:
            self.is_online = False
            logger.error(f"Fetching notifications failed on page {page}: {e}")
            raise

        logger.info(f"Fetched {len(fetched)} notifications across {page - 1} page(s)")
        self._apply_fetched(fetched)
        return self.in_progress()

    async def _sync(self) -> List[Notification]:
        try:
            fetched = await self.client.fetch_notifications(page=1, per_page=self.sync_page_size)
        except GitHubAPIError as e:
            self.is_online = False
            logger.error(f"Sync failed: {e}")
            raise

        logger.info(f"Synced {len(fetched)} notifications")
        self._apply_fetched(fetched)
        return self.in_progress()

    def _apply_fetched(self, fetched: List[Notification]) -> None:
        self.merge(fetched)
        self.is_online = True
        self.last_sync = now_ms()
        self.working_set.recompute(self._notifications)
        self._persist()

    def merge(self, fetched: List[Notification]) -> None:
        """
        Merge freshly fetched notifications into the canonical set.

        For every override field the custom state wins, then the value the
        existing record already had, then whatever was fetched. Notifications
        missing from ``fetched`` are kept.
        """
        existing = {n.id: n for n in self._notifications}
        for notification in fetched:
            previous = existing.get(notification.id)
            state = self._custom_states.get(notification.id)
            for name in OVERRIDE_FIELDS:
                value = getattr(state, name) if state is not None else None
                if value is None and previous is not None:
                    value = getattr(previous, name)
                if value is not None:
                    setattr(notification, name, value)
            existing[notification.id] = notification
        self._notifications = list(existing.values())

    async def validate_token(self) -> None:
        """
        Confirm the token works with a minimal call.

        Raises:
            GitHubAPIError: If GitHub rejects the token or cannot be reached.
        """
        try:
            await self.client.validate_token()
        except GitHubAPIError:
            self.is_online = False
            raise
        self.is_online = True

    # Views

    def in_progress(self) -> List[Notification]:
        return self.working_set.members(self._notifications)

    async def get_in_progress(self) -> List[Notification]:
        """The working set, newest first; loads the feed first if nothing is known yet."""
        await self._ensure_loaded()
        return self.in_progress()

    async def get_all(self) -> List[Notification]:
        """Every known notification, newest first."""
        await self._ensure_loaded()
        return sort_newest_first(self._notifications)

    def get_done(self) -> List[Notification]:
        return sort_newest_first(n for n in self._notifications if n.done)

    async def _ensure_loaded(self) -> None:
        if self._notifications:
            return
        try:
            await self.fetch_all()
        except GitHubAPIError as e:
            logger.warning(f"Could not load notifications, using last known state: {e}")

    def get(self, notification_id: str) -> Optional[Notification]:
        for notification in self._notifications:
            if notification.id == notification_id:
                return notification
        return None

    async def get_notification_details(self, notification_id: str) -> Optional[NotificationDetails]:
        """
        Return the notification with its issue/PR detail and comments.

        Remote failures only drop the extra detail; this never raises.
        Returns None for an unknown id.
        """
        notification = self.get(notification_id)
        if notification is None:
            return None

        details = NotificationDetails(notification=notification)
        subject_type = notification.subject.type
        if subject_type not in (ISSUE, PULL_REQUEST):
            return details

        try:
            owner, repo, number = parse_subject_url(notification.subject.url)
        except ValueError as e:
            logger.debug(f"No detail for notification {notification_id}: {e}")
            return details

        try:
            if subject_type == ISSUE:
                details.detail = await self.client.get_issue(owner, repo, number)
            else:
                details.detail = await self.client.get_pull_request(owner, repo, number)
        except GitHubAPIError as e:
            logger.warning(f"Could not fetch {subject_type} {owner}/{repo}#{number}: {e}")

        try:
            details.comments = await self.client.get_comments(owner, repo, number)
        except GitHubAPIError as e:
            logger.warning(f"Could not fetch comments for {owner}/{repo}#{number}: {e}")

        return details

    def get_stats(self) -> NotificationStats:
        in_progress = self.in_progress()
        return NotificationStats(
            total=len(self._notifications),
            unread=sum(1 for n in self._notifications if n.unread),
            app_unread=sum(1 for n in in_progress if n.is_read is not True),
            done=sum(1 for n in self._notifications if n.done),
            in_progress=len(self.working_set.active_ids),
            last_sync=self.last_sync,
            is_online=self.is_online,
        )

    # User actions

    async def mark_as_read(self, notification_id: str) -> None:
        notification = self.get(notification_id)
        if notification is None:
            logger.debug(f"mark_as_read: unknown notification {notification_id}")
            return
        notification.is_read = True
        notification.last_viewed_at = now_ms()
        self._remember(notification)
        self._persist()

    async def mark_as_unread(self, notification_id: str) -> None:
        notification = self.get(notification_id)
        if notification is None:
            logger.debug(f"mark_as_unread: unknown notification {notification_id}")
            return
        notification.is_read = False
        self._remember(notification)
        self._persist()

    async def set_priority(self, notification_id: str, priority: int) -> None:
        notification = self.get(notification_id)
        if notification is None:
            logger.debug(f"set_priority: unknown notification {notification_id}")
            return
        notification.priority = int(priority)
        self._remember(notification)
        self._persist()

    async def mark_as_done(self, notification_id: str) -> None:
        """
        Mark done locally, refill the inbox, then tell GitHub.

        The local change stands even if the GitHub call fails.
        """
        notification = self.get(notification_id)
        if notification is None:
            logger.debug(f"mark_as_done: unknown notification {notification_id}")
            return
        notification.is_done = True
        notification.is_read = True
        self._remember(notification)
        self.working_set.recompute(self._notifications)
        self._persist()

        try:
            await self.client.mark_thread_as_done(notification_id)
        except GitHubAPIError as e:
            logger.warning(f"Could not mark thread {notification_id} done on GitHub: {e}")

    async def expand_inbox_limit(self, extra: int) -> List[Notification]:
        """Raise the inbox limit by ``extra`` and refill it."""
        self.working_set.expand(extra, self._notifications)
        self._persist()
        return self.in_progress()

    async def reset_storage(self) -> None:
        """Forget everything: in-memory state, the snapshot file and the request cache."""
        self._notifications = []
        self._custom_states = {}
        self.last_sync = 0
        self.is_online = True
        self.working_set.reset(self.configured_max_active)
        delete_storage_data(self.storage_path)
        self.client.cache.clear()
        logger.info("Notification storage reset")

    def _remember(self, notification: Notification) -> None:
        self._custom_states[notification.id] = notification.custom_state()

    def snapshot(self) -> StorageData:
        return StorageData(
            notifications=list(self._notifications),
            last_sync=self.last_sync,
            active_batch_ids=list(self.working_set.active_ids),
            custom_states=dict(self._custom_states),
            max_active=self.working_set.max_active,
        )

    def _persist(self) -> None:
        save_storage_data(self.storage_path, self.snapshot())

    # Lifecycle

    async def aclose(self) -> None:
        """Flush the request cache and close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "NotificationStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
