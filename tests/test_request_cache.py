import asyncio
import json
import logging

import pytest

from github_inbox_agent.request_cache import RequestCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_value_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = RequestCache(ttl_seconds=10, clock=clock)
    cache.set("k", {"a": 1})

    clock.now = 1009.5
    assert cache.get("k") == {"a": 1}

    clock.now = 1010.0
    assert cache.get("k") is None
    # Expired entries are evicted on read
    assert len(cache) == 0


def test_missing_key_is_absent() -> None:
    cache = RequestCache()
    assert cache.get("nope") is None
    assert "nope" not in cache


def test_set_without_event_loop_writes_immediately(tmp_path) -> None:
    path = tmp_path / "cache.json"
    cache = RequestCache(path=str(path))
    cache.set("k", [1, 2])

    assert path.exists()
    assert cache.write_count == 1
    assert not cache.flush_pending


def test_sets_within_window_produce_one_write(tmp_path) -> None:
    path = tmp_path / "cache.json"

    async def scenario() -> RequestCache:
        cache = RequestCache(path=str(path), flush_delay_seconds=0.05)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.flush_pending
        assert not path.exists()
        await asyncio.sleep(0.2)
        return cache

    cache = asyncio.run(scenario())

    assert cache.write_count == 1
    assert not cache.flush_pending
    stored = json.loads(path.read_text())
    assert sorted(stored) == ["a", "b", "c"]
    assert stored["b"]["data"] == 2
    assert "expiry" in stored["b"]


def test_pending_flush_is_drained_on_exit(tmp_path) -> None:
    path = tmp_path / "cache.json"

    async def scenario() -> RequestCache:
        async with RequestCache(path=str(path), flush_delay_seconds=60) as cache:
            cache.set("k", "v")
            assert cache.flush_pending
        return cache

    cache = asyncio.run(scenario())

    assert not cache.flush_pending
    assert cache.write_count == 1
    assert json.loads(path.read_text())["k"]["data"] == "v"


def test_load_drops_expired_and_invalid_entries(tmp_path) -> None:
    path = tmp_path / "cache.json"
    clock = FakeClock(now=100.0)
    path.write_text(json.dumps({
        "old": {"data": "stale", "expiry": 50_000},
        "new": {"data": "fresh", "expiry": 200_000},
        "junk": "not an entry",
        "bad": {"data": 1, "expiry": "soon"},
        "flag": {"data": 2, "expiry": True},
    }))

    cache = RequestCache(path=str(path), clock=clock)
    cache.load()

    assert len(cache) == 1
    assert cache.get("new") == "fresh"
    assert cache.get("old") is None


def test_corrupt_file_starts_empty(tmp_path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "cache.json"
    path.write_text("{not json")

    cache = RequestCache(path=str(path))
    with caplog.at_level(logging.ERROR):
        cache.load()

    assert len(cache) == 0
    assert "Could not load request cache" in caplog.text


def test_persisted_cache_survives_reload(tmp_path) -> None:
    path = tmp_path / "cache.json"
    first = RequestCache(path=str(path))
    first.set("k", {"x": [1, 2]})

    second = RequestCache(path=str(path))
    second.load()
    assert second.get("k") == {"x": [1, 2]}


def test_clear_removes_backing_file(tmp_path) -> None:
    path = tmp_path / "cache.json"
    cache = RequestCache(path=str(path))
    cache.set("k", 1)
    assert path.exists()

    cache.clear()

    assert len(cache) == 0
    assert not path.exists()
    # Clearing again with no file is fine
    cache.clear()
