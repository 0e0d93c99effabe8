"""Tests for the retry/backoff policy."""

import asyncio
import random

import pytest

from listing_collector.scrapers.base import FetchFailed, RateLimited
from listing_collector.scrapers.retry import RetryPolicy, RetrySettings, apply_jitter

URL = "https://www.avito.ru/birobidzhan/kvartiry"


class FakeIdentities:
    def __init__(self):
        self.rotations = 0

    def rotate(self):
        self.rotations += 1


class FakeSession:
    def __init__(self):
        self.resets = 0

    async def reset_context(self) -> None:
        self.resets += 1


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def scripted_fetch(outcomes: list):
    """Fetch that raises or returns the scripted outcomes in order."""
    calls = []

    async def fetch() -> str:
        outcome = outcomes[len(calls)]
        calls.append(outcome)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fetch.calls = calls
    return fetch


def make_policy(max_attempts: int = 4, jitter_ratio: float = 0.0):
    identities, session, sleep = FakeIdentities(), FakeSession(), RecordingSleep()
    policy = RetryPolicy(
        identities,
        session,
        RetrySettings(max_attempts=max_attempts, base_delay_ms=1500, captcha_multiplier=2.0, jitter_ratio=jitter_ratio),
        sleep=sleep,
        rng=random.Random(0),
    )
    return policy, identities, session, sleep


class TestApplyJitter:
    """Tests for apply_jitter."""

    def test_within_bounds(self):
        """Test jittered values stay within [v(1-r), v(1+r)]."""
        rng = random.Random(42)
        for _ in range(200):
            value = apply_jitter(1000, 0.35, rng)
            assert 650 <= value <= 1350

    def test_zero_ratio_and_value(self):
        assert apply_jitter(1000, 0) == 1000
        assert apply_jitter(0, 0.35) == 0

    def test_ratio_clamped(self):
        """Test ratios above 1 never produce negative delays."""
        rng = random.Random(3)
        assert all(apply_jitter(100, 5.0, rng) >= 0 for _ in range(50))


class TestComputeDelay:
    """Tests for backoff computation."""

    def test_linear_growth(self):
        """Test delays grow with the attempt number."""
        policy, *_ = make_policy()
        error = RateLimited(URL, status=429)
        delays = [policy.compute_delay(n, error) for n in (1, 2, 3)]
        assert delays == [1500, 3000, 4500]

    def test_captcha_multiplier(self):
        """Test captcha signals wait longer than plain status blocks."""
        policy, *_ = make_policy()
        captcha = RateLimited(URL, is_captcha=True)
        assert policy.compute_delay(2, captcha) == 6000
        assert policy.compute_delay(2, captcha) > policy.compute_delay(2, RateLimited(URL, status=429))

    def test_retry_after_replaces_linear_term(self):
        policy, *_ = make_policy()
        assert policy.compute_delay(3, RateLimited(URL, status=429, retry_after_ms=10_000)) == 10_000


class TestRetryPolicy:
    """Tests for RetryPolicy.run."""

    def test_success_first_try(self):
        """Test a clean fetch is returned without rotation."""
        policy, identities, session, sleep = make_policy()
        fetch = scripted_fetch(["<html>ok</html>"])

        assert asyncio.run(policy.run(fetch)) == "<html>ok</html>"
        assert identities.rotations == 0
        assert session.resets == 0
        assert sleep.calls == []

    def test_recovers_after_blocks(self):
        """Test identity rotation and context reset happen between attempts."""
        policy, identities, session, sleep = make_policy()
        fetch = scripted_fetch([RateLimited(URL, status=429), RateLimited(URL, is_captcha=True), "<html>ok</html>"])

        assert asyncio.run(policy.run(fetch)) == "<html>ok</html>"
        assert len(fetch.calls) == 3
        assert identities.rotations == 2
        assert session.resets == 2
        # 1500 * 1, then 1500 * 2 * captcha multiplier
        assert sleep.calls == [1.5, 6.0]

    def test_gives_up_with_attempt_count(self):
        """Test the final error carries how many attempts were made."""
        policy, identities, session, sleep = make_policy(max_attempts=3)
        fetch = scripted_fetch([RateLimited(URL, status=403)] * 3)

        with pytest.raises(RateLimited) as exc_info:
            asyncio.run(policy.run(fetch))

        assert exc_info.value.attempts == 3
        assert "after 3 attempt(s)" in str(exc_info.value)
        assert len(fetch.calls) == 3
        assert identities.rotations == 2
        assert len(sleep.calls) == 2

    def test_backoff_monotonic(self):
        """Test successive waits never shrink without jitter."""
        policy, _, _, sleep = make_policy(max_attempts=4)
        fetch = scripted_fetch([RateLimited(URL, status=429)] * 4)

        with pytest.raises(RateLimited):
            asyncio.run(policy.run(fetch))

        assert sleep.calls == sorted(sleep.calls)
        assert sleep.calls == [1.5, 3.0, 4.5]

    def test_other_errors_not_retried(self):
        """Test non-rate-limit errors propagate on the first attempt."""
        policy, identities, session, sleep = make_policy()
        fetch = scripted_fetch([FetchFailed(URL, status=500), "<html>never</html>"])

        with pytest.raises(FetchFailed):
            asyncio.run(policy.run(fetch))

        assert len(fetch.calls) == 1
        assert identities.rotations == 0
        assert sleep.calls == []

    def test_single_attempt(self):
        """Test max_attempts=1 means no retry at all."""
        policy, identities, _, sleep = make_policy(max_attempts=1)
        fetch = scripted_fetch([RateLimited(URL, status=429)])

        with pytest.raises(RateLimited) as exc_info:
            asyncio.run(policy.run(fetch))

        assert exc_info.value.attempts == 1
        assert identities.rotations == 0
        assert sleep.calls == []

    def test_wrap(self):
        policy, *_ = make_policy()
        wrapped = policy.wrap(scripted_fetch([RateLimited(URL, status=429), "done"]))
        assert asyncio.run(wrapped()) == "done"
