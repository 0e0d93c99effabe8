"""Browsing identities: user agent, matching client hints and seed cookies.

A profile is always swapped as a whole. Mixing a Chrome user agent with
Firefox headers (or keeping old cookies under a new user agent) is exactly
the kind of inconsistency anti-bot checks look for.
"""

import hashlib
import logging
import random
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityProfile:
    """One coherent request fingerprint."""

    name: str
    user_agent: str
    sec_ch_ua: str = ""  # empty for browsers that don't send client hints
    sec_ch_ua_platform: str = ""
    sec_ch_ua_mobile: str = "?0"
    accept_language: str = "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7"
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"

    def headers(self) -> dict[str, str]:
        """Extra HTTP headers to send with every request of this identity."""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
            "Upgrade-Insecure-Requests": "1",
        }
        if self.sec_ch_ua:
            headers["sec-ch-ua"] = self.sec_ch_ua
            headers["sec-ch-ua-mobile"] = self.sec_ch_ua_mobile
            headers["sec-ch-ua-platform"] = self.sec_ch_ua_platform
        return headers


# Chromium-based only: the browser is Chromium and sends its own client
# hints, which a non-Chromium user agent would contradict.
DEFAULT_PROFILES: tuple[IdentityProfile, ...] = (
    IdentityProfile(
        name="chrome-windows",
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36",
        sec_ch_ua='"Not)A;Brand";v="8", "Chromium";v="138", "Google Chrome";v="138"',
        sec_ch_ua_platform='"Windows"',
    ),
    IdentityProfile(
        name="chrome-linux",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36",
        sec_ch_ua='"Not)A;Brand";v="8", "Chromium";v="138", "Google Chrome";v="138"',
        sec_ch_ua_platform='"Linux"',
    ),
    IdentityProfile(
        name="chrome-macos",
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
        sec_ch_ua='"Google Chrome";v="137", "Chromium";v="137", "Not/A)Brand";v="24"',
        sec_ch_ua_platform='"macOS"',
    ),
    IdentityProfile(
        name="edge-windows",
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36 Edg/138.0.0.0",
        sec_ch_ua='"Not)A;Brand";v="8", "Chromium";v="138", "Microsoft Edge";v="138"',
        sec_ch_ua_platform='"Windows"',
    ),
    IdentityProfile(
        name="yandex-windows",
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 YaBrowser/25.6.0.0 Safari/537.36",
        sec_ch_ua='"Chromium";v="136", "YaBrowser";v="25.6", "Not.A/Brand";v="99", "Yowser";v="2.5"',
        sec_ch_ua_platform='"Windows"',
    ),
)


def cookie_domain(host: str) -> str:
    """Domain attribute covering the host and its subdomains."""
    host = host.lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    return f".{host}"


class IdentityProvider:
    """Picks identity profiles and builds per-host seed cookies.

    Args:
        profiles: Pool to pick from. Must not be empty.
        host_cookies: Extra cookies keyed by host suffix (e.g. location
            cookies for "avito.ru"), added to every identity's seed set.
        rng: Random source, injectable for tests.
    """

    def __init__(
        self,
        profiles: tuple[IdentityProfile, ...] | list[IdentityProfile] = DEFAULT_PROFILES,
        host_cookies: dict[str, dict[str, str]] | None = None,
        rng: random.Random | None = None,
    ):
        if not profiles:
            raise ValueError("IdentityProvider needs at least one profile")
        self.profiles = tuple(profiles)
        self.host_cookies = host_cookies or {}
        self._rng = rng or random.Random()
        self._active: IdentityProfile | None = None

    @property
    def active(self) -> IdentityProfile:
        """The identity currently in use, picked lazily."""
        if self._active is None:
            self._active = self.pick()
        return self._active

    def pick(self, excluding: IdentityProfile | None = None) -> IdentityProfile:
        """Pick a profile uniformly at random, avoiding ``excluding`` when possible."""
        candidates = [p for p in self.profiles if p != excluding] or list(self.profiles)
        return self._rng.choice(candidates)

    def rotate(self) -> IdentityProfile:
        """Replace the active identity with a different one."""
        previous = self._active
        self._active = self.pick(excluding=previous)
        logger.info(
            f"Rotated identity: {previous.name if previous else '-'} -> {self._active.name}"
        )
        return self._active

    def seed_cookies(self, host: str, profile: IdentityProfile | None = None) -> list[dict[str, Any]]:
        """Build plausible session/analytics cookies for a host.

        Values are derived from a hash of (profile, host), so one identity
        always presents the same cookies to the same site while different
        identities never share them.
        """
        profile = profile or self.active
        domain = cookie_domain(host)
        digest = hashlib.sha256(f"{profile.name}|{domain}".encode()).hexdigest()

        client_id = int(digest[:8], 16)
        first_visit = 1_700_000_000 + int(digest[8:14], 16) % 50_000_000
        values = {
            "_ga": f"GA1.1.{client_id}.{first_visit}",
            "_ym_uid": f"{first_visit}{int(digest[14:22], 16) % 10**9:09d}",
            "_ym_d": str(first_visit),
            "_ym_isad": "2",
            "u": digest[22:46],
        }

        bare_host = domain.lstrip(".")
        for suffix, extra in self.host_cookies.items():
            if bare_host == suffix or bare_host.endswith(f".{suffix}"):
                values.update(extra)

        return [
            {"name": name, "value": value, "domain": domain, "path": "/"}
            for name, value in values.items()
        ]
