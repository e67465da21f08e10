"""Tests for the in-process TTL cache."""

import pytest

from coachmem.utils.ttl_cache import MISS, TTLCache, cache_key


class TestGetSet:

    def test_unknown_key_is_miss(self, cache):
        assert cache.get('nope') is MISS

    def test_read_before_ttl_hits(self, cache, clock):
        cache.set('k', 'v', ttl=10)
        clock.advance(9.999)
        assert cache.get('k') == 'v'

    def test_read_at_exact_ttl_is_miss(self, cache, clock):
        cache.set('k', 'v', ttl=10)
        clock.advance(10)
        assert cache.get('k') is MISS

    def test_expired_entry_is_removed(self, cache, clock):
        cache.set('k', 'v', ttl=1)
        clock.advance(2)
        cache.get('k')
        assert len(cache) == 0

    def test_falsy_values_are_cached(self, cache):
        cache.set('empty', [], ttl=10)
        assert cache.get('empty') == []

    def test_non_positive_ttl_deletes(self, cache):
        cache.set('k', 'v', ttl=10)
        cache.set('k', 'v2', ttl=0)
        assert cache.get('k') is MISS

    def test_lru_eviction_when_full(self, clock):
        cache = TTLCache(max_entries=2, clock=clock)
        cache.set('a', 1, ttl=60)
        cache.set('b', 2, ttl=60)
        cache.get('a')
        cache.set('c', 3, ttl=60)
        assert cache.get('b') is MISS
        assert cache.get('a') == 1
        assert cache.get('c') == 3


class TestGetOrCompute:

    @pytest.mark.asyncio
    async def test_computes_once_within_ttl(self, cache):
        calls = []

        async def compute():
            calls.append(1)
            return 'value'

        assert await cache.get_or_compute('k', 30, compute) == 'value'
        assert await cache.get_or_compute('k', 30, compute) == 'value'
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_recomputes_after_expiry(self, cache, clock):
        values = iter(['first', 'second'])

        async def compute():
            return next(values)

        await cache.get_or_compute('k', 30, compute)
        clock.advance(30)
        assert await cache.get_or_compute('k', 30, compute) == 'second'

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, cache):

        async def boom():
            raise RuntimeError('down')

        async def ok():
            return 'recovered'

        with pytest.raises(RuntimeError):
            await cache.get_or_compute('k', 30, boom)
        assert cache.get('k') is MISS
        assert await cache.get_or_compute('k', 30, ok) == 'recovered'


class TestMaintenance:

    def test_invalidate_by_prefix(self, cache):
        cache.set(cache_key('u1', 'semantic', 'all', 'q'), 1, ttl=60)
        cache.set(cache_key('u1', 'people'), 2, ttl=60)
        cache.set(cache_key('u2', 'semantic', 'all', 'q'), 3, ttl=60)

        assert cache.invalidate(cache_key('u1', 'semantic')) == 1
        assert cache.get('u1:people') == 2
        assert cache.get('u2:semantic:all:q') == 3

    def test_invalidate_counts_only_live_entries(self, cache, clock):
        cache.set('u1:semantic:a', 1, ttl=1)
        cache.set('u1:semantic:b', 2, ttl=60)
        clock.advance(2)
        assert cache.invalidate('u1:semantic') == 1
        assert len(cache) == 0

    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set('short', 1, ttl=5)
        cache.set('long', 2, ttl=50)
        clock.advance(10)
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_stats_count_hits_and_misses(self, cache):
        cache.set('k', 'v', ttl=10)
        cache.get('k')
        cache.get('missing')
        assert cache.stats() == {'entries': 1, 'hits': 1, 'misses': 1}

    def test_cache_key_layout(self):
        assert cache_key('u1', 'semantic', 'p1', 'hello') == 'u1:semantic:p1:hello'
