from hllvip.ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_limits_per_user_within_window():
    clock = FakeClock()
    limiter = RateLimiter(limit=10, window_seconds=60, clock=clock)

    results = [limiter.check(1) for _ in range(11)]

    assert results == [True] * 10 + [False]
    assert limiter.check(2) is True
    assert 0 < limiter.retry_after(1) <= 60


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.check(1)
    clock.now += 30
    limiter.check(1)

    assert limiter.check(1) is False
    clock.now += 31
    assert limiter.check(1) is True


def test_cleanup_drops_idle_users():
    clock = FakeClock()
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.check(1)
    clock.now += 61

    limiter.cleanup()

    assert limiter._hits == {}
