"""Retry with backoff and identity rotation for blocked fetches."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from ..config import ScrapingDefaults, config
from .base import RateLimited

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[str]]
Sleep = Callable[[float], Awaitable[None]]


class Rotatable(Protocol):
    def rotate(self): ...


class Resettable(Protocol):
    async def reset_context(self) -> None: ...


def apply_jitter(value_ms: float, ratio: float, rng: random.Random | None = None) -> float:
    """Spread a delay uniformly over [value*(1-ratio), value*(1+ratio)]."""
    if value_ms <= 0:
        return 0.0
    ratio = max(0.0, min(ratio, 1.0))
    if ratio == 0:
        return float(value_ms)
    rng = rng or random
    spread = value_ms * ratio
    return rng.uniform(value_ms - spread, value_ms + spread)


@dataclass
class RetrySettings:
    max_attempts: int = 4
    base_delay_ms: int = 1500
    captcha_multiplier: float = 2.0
    jitter_ratio: float = 0.35

    @classmethod
    def from_config(cls, scraping: ScrapingDefaults | None = None) -> "RetrySettings":
        scraping = scraping or config.scraping
        return cls(
            max_attempts=scraping.max_attempts,
            base_delay_ms=scraping.base_delay_ms,
            captcha_multiplier=scraping.captcha_multiplier,
            jitter_ratio=scraping.jitter_ratio,
        )


class RetryPolicy:
    """Retries fetches that were blocked, each time as a new identity.

    Only ``RateLimited`` is retried. Anything else means the request is
    broken rather than blocked and propagates on the first attempt.

    Between attempts the identity is rotated and the browser context reset,
    so no cookies or fingerprint carry over from the blocked identity.
    """

    def __init__(
        self,
        identities: Rotatable,
        session: Resettable,
        settings: RetrySettings | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.identities = identities
        self.session = session
        self.settings = settings or RetrySettings.from_config()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int, error: RateLimited) -> float:
        """Backoff before the next attempt, in ms, without jitter.

        Linear in the attempt number; a Retry-After hint from the server
        replaces the linear term. Captcha signals are multiplied on top.
        """
        if error.retry_after_ms is not None:
            delay = float(error.retry_after_ms)
        else:
            delay = float(self.settings.base_delay_ms * max(attempt, 1))
        if error.is_captcha:
            delay *= self.settings.captcha_multiplier
        return delay

    async def run(self, fetch: Fetch) -> str:
        attempts = max(self.settings.max_attempts, 1)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fetch()
            except RateLimited as e:
                if attempt >= attempts:
                    e.attempts = attempt
                    logger.error(f"Giving up: {e}")
                    raise

                delay = apply_jitter(self.compute_delay(attempt, e), self.settings.jitter_ratio, self._rng)
                logger.warning(
                    f"Attempt {attempt}/{attempts} blocked by {e.host} ({e.signal}), "
                    f"retrying in {delay / 1000:.1f}s with a new identity"
                )
                self.identities.rotate()
                await self.session.reset_context()
                await self._sleep(delay / 1000)

    def wrap(self, fetch: Fetch) -> Fetch:
        """Return ``fetch`` wrapped in this policy."""

        async def wrapped() -> str:
            return await self.run(fetch)

        return wrapped
