import pytest

from tgmr.ratelimit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _use(limiter: RateLimiter, identity: int, times: int) -> None:
    for _ in range(times):
        assert limiter.can_make_request(identity)
        limiter.record_request(identity)


def test_allows_up_to_limit_then_refuses() -> None:
    clock = FakeClock()
    limiter = RateLimiter(3, 60, clock=clock)

    _use(limiter, 1, 3)

    assert limiter.can_make_request(1) is False


def test_refusal_arms_cooldown_that_outlives_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 120, clock=clock)
    _use(limiter, 1, 2)

    assert limiter.can_make_request(1) is False
    assert limiter.cooldown_remaining(1) == pytest.approx(120)

    clock.advance(61)
    # the window rotated but the cooldown still blocks
    assert limiter.can_make_request(1) is False

    clock.advance(60)
    assert limiter.can_make_request(1) is True


def test_window_rotates_after_exactly_sixty_seconds() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 0, clock=clock)
    _use(limiter, 1, 1)

    clock.advance(59)
    assert limiter.can_make_request(1) is False

    clock.advance(1)
    assert limiter.can_make_request(1) is True


def test_identities_are_independent() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 60, clock=clock)
    _use(limiter, 1, 1)

    assert limiter.can_make_request(1) is False
    assert limiter.can_make_request(2) is True


def test_check_does_not_count() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 60, clock=clock)

    for _ in range(5):
        assert limiter.can_make_request(7) is True


def test_checking_during_exhausted_window_rearms_cooldown() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 10, clock=clock)
    _use(limiter, 1, 1)
    assert limiter.can_make_request(1) is False

    clock.advance(11)
    # cooldown expired but the window is still exhausted, so it re-arms
    assert limiter.can_make_request(1) is False
    assert limiter.cooldown_remaining(1) == pytest.approx(10)


def test_idle_entries_are_evicted_after_a_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(5, 30, clock=clock)
    _use(limiter, 1, 1)
    _use(limiter, 2, 1)
    assert len(limiter) == 2

    clock.advance(61)
    limiter.can_make_request(3)

    assert len(limiter) == 1


def test_cooling_entries_survive_eviction() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 300, clock=clock)
    _use(limiter, 1, 1)
    assert limiter.can_make_request(1) is False

    clock.advance(61)
    limiter.can_make_request(2)

    assert limiter.cooldown_remaining(1) > 0
    assert limiter.can_make_request(1) is False


@pytest.mark.parametrize(
    ("limit", "cooldown", "window"),
    [(0, 60, 60), (1, -1, 60), (1, 60, 0)],
)
def test_rejects_invalid_arguments(limit: int, cooldown: float, window: float) -> None:
    with pytest.raises(ValueError):
        RateLimiter(limit, cooldown, window_s=window)
