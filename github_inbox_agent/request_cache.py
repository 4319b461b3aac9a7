"""TTL-bounded cache for GitHub GET responses, with debounced JSON persistence."""

import asyncio
import json
import logging
import os
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_FLUSH_DELAY_SECONDS = 1.0


class RequestCache:
    """
    Key/value cache where every entry expires ``ttl_seconds`` after it was set.

    When ``path`` is given, the whole map is written to that file as
    ``{key: {"data": ..., "expiry": epoch_ms}}``. Writes are debounced: any
    number of ``set`` calls inside ``flush_delay_seconds`` produce one write.
    Use ``async with`` (or await ``aclose()``) so a pending write is never lost.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        path: Optional[str] = None,
        flush_delay_seconds: float = DEFAULT_FLUSH_DELAY_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.path = path
        self.flush_delay_seconds = flush_delay_seconds
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self.write_count = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @property
    def flush_pending(self) -> bool:
        return self._flush_handle is not None

    def load(self) -> None:
        """
        Load entries from the backing file, dropping any that already expired.

        A missing or unreadable file leaves the cache empty.
        """
        self._entries = {}
        if not self.path or not os.path.exists(self.path):
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
        except (OSError, ValueError) as e:
            logger.error(f"Could not load request cache from {self.path}: {e}")
            return

        now = self._now_ms()
        dropped = 0
        for key, entry in raw.items():
            if (
                not isinstance(entry, dict)
                or "data" not in entry
                or not isinstance(entry.get("expiry"), (int, float))
                or isinstance(entry["expiry"], bool)
            ):
                dropped += 1
                continue
            if entry["expiry"] <= now:
                dropped += 1
                continue
            self._entries[key] = {"data": entry["data"], "expiry": entry["expiry"]}

        logger.debug(f"Loaded {len(self._entries)} cached responses ({dropped} expired or invalid)")

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._now_ms() >= entry["expiry"]:
            # Lazy eviction
            del self._entries[key]
            return None
        return entry["data"]

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` until now + ttl and schedule a flush."""
        expiry = self._now_ms() + int(self.ttl_seconds * 1000)
        self._entries[key] = {"data": value, "expiry": expiry}
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if not self.path or self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to debounce on; write straight away
            self.flush()
            return
        self._flush_handle = loop.call_later(self.flush_delay_seconds, self._on_flush_timer)

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        self.flush()

    def flush(self) -> None:
        """Write the whole cache map to disk now, cancelling any pending flush."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if not self.path:
            return

        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._entries, f)
            os.replace(tmp_path, self.path)
            self.write_count += 1
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Could not write request cache to {self.path}: {e}")

    def clear(self) -> None:
        """Empty the cache and remove its backing file."""
        self._entries = {}
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if self.path and os.path.exists(self.path):
            try:
                os.remove(self.path)
            except OSError as e:
                logger.error(f"Could not remove request cache file {self.path}: {e}")

    async def aclose(self) -> None:
        """Drain a pending debounced flush."""
        if self._flush_handle is not None:
            self.flush()

    async def __aenter__(self) -> "RequestCache":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
