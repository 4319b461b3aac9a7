"""Bounded, refillable working set ("inbox") derived from the canonical set."""

import logging
from typing import Iterable, List, Optional, Sequence

from .models import Notification

logger = logging.getLogger(__name__)


def sort_newest_first(notifications: Iterable[Notification]) -> List[Notification]:
    """Sort by updated_at descending; equal timestamps fall back to id descending."""
    return sorted(notifications, key=lambda n: n.sort_key, reverse=True)


class WorkingSetManager:
    """
    Keeps at most ``max_active`` non-done notification ids.

    Items already in the working set stay there as long as they are eligible;
    freed slots are refilled with the newest eligible items outside it.
    """

    def __init__(
        self,
        max_active: int,
        include_types: Optional[Sequence[str]] = None,
        active_ids: Optional[Sequence[str]] = None,
    ):
        if max_active < 1:
            raise ValueError(f"max_active must be at least 1, got {max_active}")
        self.max_active = max_active
        self.include_types = list(include_types or [])
        self.active_ids: List[str] = list(active_ids or [])

    def is_eligible(self, notification: Notification) -> bool:
        if notification.done:
            return False
        if self.include_types and notification.subject.type not in self.include_types:
            return False
        return True

    def recompute(self, notifications: Iterable[Notification]) -> List[str]:
        """
        Rebuild the working set from the canonical notifications.

        Returns:
            The new ordered list of active ids.
        """
        available = sort_newest_first(n for n in notifications if self.is_eligible(n))

        current = set(self.active_ids)
        already_active = [n.id for n in available if n.id in current]
        rest = [n.id for n in available if n.id not in current]

        new_ids = already_active[: self.max_active]
        for notif_id in rest:
            if len(new_ids) >= self.max_active:
                break
            new_ids.append(notif_id)

        if new_ids != self.active_ids:
            logger.debug(f"Working set changed: {self.active_ids} -> {new_ids}")
        self.active_ids = new_ids
        return new_ids

    def expand(self, extra: int, notifications: Iterable[Notification]) -> List[str]:
        """Grow ``max_active`` by ``extra`` and refill."""
        if extra < 0:
            raise ValueError(f"Inbox limit can only grow, got extra={extra}")
        self.max_active += extra
        logger.info(f"Inbox limit expanded to {self.max_active}")
        return self.recompute(notifications)

    def members(self, notifications: Iterable[Notification]) -> List[Notification]:
        """The working-set notifications, newest first."""
        active = set(self.active_ids)
        return sort_newest_first(n for n in notifications if n.id in active)

    def reset(self, max_active: Optional[int] = None) -> None:
        """Empty the working set, optionally going back to a given limit."""
        self.active_ids = []
        if max_active is not None:
            self.max_active = max_active
