import pytest

from chatguard.store.ratelimit import (
    FixedWindowLimiter,
    SlidingWindowLimiter,
    format_time_remaining,
    parse_duration,
)


class TestParseDuration:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1 h", 3600),
            ("24h", 86400),
            ("30 m", 1800),
            ("10s", 10),
            ("1 d", 86400),
            ("500 ms", 0.5),
            ("1.5 H", 5400),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "1 hour", "h", "-1 h", "0 s", "ten minutes"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestFormatTimeRemaining:

    @pytest.mark.parametrize(
        "ms,expected",
        [
            (0, "0 seconds"),
            (1500, "2 seconds"),
            (59_000, "59 seconds"),
            (60_000, "1 minutes"),
            (61_000, "2 minutes"),
            (3_600_000, "1 hours"),
            (5_400_000, "2 hours"),
            (90_000_000, "2 days"),
        ],
    )
    def test_units(self, ms, expected):
        assert format_time_remaining(ms) == expected


class TestFixedWindowLimiter:

    async def test_allows_up_to_limit(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=3, window_seconds=60, prefix="t", clock=clock)

        results = [await limiter.limit("id") for _ in range(4)]

        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].count == 4

    async def test_identifiers_are_independent(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=1, window_seconds=60, prefix="t", clock=clock)

        assert (await limiter.limit("a")).success
        assert (await limiter.limit("b")).success
        assert not (await limiter.limit("a")).success

    async def test_new_window_resets_count(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=1, window_seconds=60, prefix="t", clock=clock)

        await limiter.limit("id")
        assert not (await limiter.limit("id")).success

        clock.advance(60)
        assert (await limiter.limit("id")).success

    async def test_reset_time_is_window_end(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=1, window_seconds=60, prefix="t", clock=clock)

        result = await limiter.limit("id")

        assert result.reset % 60 == 0
        assert 0 < result.reset - clock() <= 60
        assert result.ms_until_reset(clock()) == pytest.approx((result.reset - clock()) * 1000)

    async def test_peek_does_not_consume(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=5, window_seconds=60, prefix="t", clock=clock)

        assert await limiter.peek("id") == 0
        await limiter.limit("id")
        await limiter.limit("id")

        assert await limiter.peek("id") == 2
        assert await limiter.peek("id") == 2

    async def test_reset_clears_current_window(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=1, window_seconds=60, prefix="t", clock=clock)

        await limiter.limit("id")
        await limiter.reset("id")

        assert (await limiter.limit("id")).success

    def test_rejects_zero_limit(self, store):
        with pytest.raises(ValueError):
            FixedWindowLimiter(store, limit=0, window_seconds=60, prefix="t")


class TestSlidingWindowLimiter:

    async def test_previous_window_weighs_in(self, store, clock):
        # Align to the start of a window
        clock.now = (clock.now // 100) * 100
        limiter = SlidingWindowLimiter(store, limit=10, window_seconds=100, prefix="s", clock=clock)

        for _ in range(10):
            assert (await limiter.limit("ip")).success

        # Halfway into the next window: 10 * 0.5 + 1 = 6
        clock.advance(150)
        result = await limiter.limit("ip")
        assert result.success
        assert result.count == 6

    async def test_blocks_when_weighted_count_exceeds(self, store, clock):
        clock.now = (clock.now // 100) * 100
        limiter = SlidingWindowLimiter(store, limit=10, window_seconds=100, prefix="s", clock=clock)

        for _ in range(10):
            await limiter.limit("ip")

        # A quarter into the next window the previous bucket still counts 75%
        clock.advance(125)
        results = [await limiter.limit("ip") for _ in range(3)]
        assert results[0].success  # 7.5 + 1
        assert results[1].success  # 7.5 + 2
        assert not results[2].success  # 7.5 + 3

    async def test_old_buckets_stop_counting(self, store, clock):
        clock.now = (clock.now // 100) * 100
        limiter = SlidingWindowLimiter(store, limit=2, window_seconds=100, prefix="s", clock=clock)

        await limiter.limit("ip")
        await limiter.limit("ip")
        assert not (await limiter.limit("ip")).success

        clock.advance(200)
        result = await limiter.limit("ip")
        assert result.success
        assert result.count == 1

    async def test_reset_clears_both_buckets(self, store, clock):
        clock.now = (clock.now // 100) * 100
        limiter = SlidingWindowLimiter(store, limit=1, window_seconds=100, prefix="s", clock=clock)

        await limiter.limit("ip")
        clock.advance(100)
        await limiter.reset("ip")

        assert (await limiter.limit("ip")).success


class TestExpiredBucketsAreSwept:

    async def test_fixed_window_keeps_one_bucket(self, store, clock):
        limiter = FixedWindowLimiter(store, limit=5, window_seconds=3600, prefix="ratelimit:user", clock=clock)

        for _ in range(1000):
            await limiter.limit("alice")
            clock.advance(3600)

        assert len(store) <= 2

    async def test_sliding_window_keeps_two_buckets(self, store, clock):
        limiter = SlidingWindowLimiter(store, limit=5, window_seconds=60, prefix="ratelimit:ip", clock=clock)

        for _ in range(500):
            await limiter.limit("203.0.113.7")
            clock.advance(60)

        assert len(store) <= 3
