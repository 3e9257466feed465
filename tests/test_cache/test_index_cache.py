"""Tests for tack.cache.index_cache.IndexCache."""

from __future__ import annotations

import pytest

from tack.cache import IndexCache

URL = "https://example.com/index.json"


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock()


@pytest.fixture()
def cache(tmp_path, clock):
    c = IndexCache(tmp_path, max_age=60, clock=clock)
    yield c
    c.close()


class TestFreshness:
    def test_empty_cache(self, cache: IndexCache) -> None:
        assert cache.get_fresh(URL) is None
        assert cache.get_stale(URL) is None

    def test_fresh_within_max_age(self, cache: IndexCache, clock: _Clock) -> None:
        cache.set(URL, {"plugins": []})
        clock.now += 59
        assert cache.get_fresh(URL) == {"plugins": []}

    def test_stale_after_max_age(self, cache: IndexCache, clock: _Clock) -> None:
        cache.set(URL, {"plugins": []})
        clock.now += 61
        assert cache.get_fresh(URL) is None
        assert cache.get_stale(URL) == {"plugins": []}

    def test_urls_are_independent(self, cache: IndexCache) -> None:
        cache.set(URL, {"registry": "a"})
        assert cache.get_fresh(URL + "?v=2") is None


class TestLifecycle:
    def test_persists_across_instances(self, tmp_path, clock: _Clock) -> None:
        first = IndexCache(tmp_path, clock=clock)
        first.set(URL, {"registry": "r"})
        first.close()

        second = IndexCache(tmp_path, clock=clock)
        try:
            assert second.get_fresh(URL) == {"registry": "r"}
        finally:
            second.close()

    def test_clear(self, cache: IndexCache) -> None:
        cache.set(URL, {"registry": "r"})
        cache.clear()
        assert cache.get_stale(URL) is None
