"""Tests for the datastore-backed rate limiter."""

import asyncio

import pytest

from storefront.errors import RateLimited
from storefront.services.rate_limit_service import RateLimiter


class TestRateLimiter:
    def test_blocks_after_limit(self, db):
        limiter = RateLimiter(db, limit=2, window_seconds=600)
        asyncio.run(limiter.hit("ip:1"))
        asyncio.run(limiter.hit("ip:1"))
        with pytest.raises(RateLimited) as exc_info:
            asyncio.run(limiter.hit("ip:1"))
        assert 0 < exc_info.value.retry_after <= 600

    def test_keys_are_independent(self, db):
        limiter = RateLimiter(db, limit=1, window_seconds=60)
        asyncio.run(limiter.hit("ip:1"))
        asyncio.run(limiter.hit("ip:2"))

    def test_shared_between_instances(self, db):
        asyncio.run(RateLimiter(db, limit=1, window_seconds=60).hit("ip:1"))
        with pytest.raises(RateLimited):
            asyncio.run(RateLimiter(db, limit=1, window_seconds=60).hit("ip:1"))

    def test_fails_open(self, db):
        limiter = RateLimiter(db, limit=1, window_seconds=60)
        asyncio.run(limiter.hit("ip:1"))
        db.fail_next("hit_counter", "rate_limits")
        asyncio.run(limiter.hit("ip:1"))

    def test_defaults_from_config(self, db):
        limiter = RateLimiter(db)
        assert limiter.limit == 20
        assert limiter.window.total_seconds() == 600
