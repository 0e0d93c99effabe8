"""Configuration management."""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from .models.listing import ListingSource


class ScrapingDefaults(BaseModel):
    """Pacing, retry and block-detection settings shared by all sources."""

    max_pages: int = Field(default=5, ge=1, description="Pages crawled per base URL")
    request_delay_ms: int = Field(default=1200, ge=0, description="Pause between pages (jittered)")

    # Retry / backoff
    max_attempts: int = Field(default=4, ge=1, description="Fetch attempts per page, first one included")
    base_delay_ms: int = Field(default=1500, ge=0, description="Backoff unit, multiplied by attempt number")
    captcha_multiplier: float = Field(default=2.0, ge=1.0, description="Extra backoff factor for captcha pages")
    jitter_ratio: float = Field(default=0.35, ge=0.0, le=1.0, description="Symmetric jitter for all delays")

    # Navigation
    navigation_timeout_ms: int = 45_000
    wait_until: str = "domcontentloaded"
    wait_after_load_ms: int = 800

    # Manual intervention
    manual_wait_after_ms: int = Field(default=5000, ge=0)

    # Block detection
    rate_limit_status_codes: list[int] = Field(default=[403, 429])
    captcha_markers: list[str] = Field(
        default=["доступ ограничен", "h-captcha", "captcha"],
        description="Case-insensitive substrings that mark a challenge page",
    )

    # Naive and relative dates on the supported sites are Moscow time
    site_utc_offset_hours: int = 3


class SelectorConfig(BaseModel):
    """Ordered CSS selector candidates per card field. First match wins."""

    card: list[str]
    title: list[str]
    price: list[str] = Field(default_factory=list)
    address: list[str] = Field(default_factory=list)
    description: list[str] = Field(default_factory=list)
    date: list[str] = Field(default_factory=list)
    image: list[str] = Field(default_factory=list)
    next_page: str = ""


class SourceConfig(BaseModel):
    """Where and how to crawl one source."""

    urls: list[str] = Field(..., min_length=1)
    page_param: str
    selectors: SelectorConfig
    cookies: dict[str, str] = Field(default_factory=dict, description="Location cookies sent with every identity")


class BrowserConfig(BaseModel):
    """Chromium launch settings."""

    headless: bool = True
    slow_mo: int = 0  # milliseconds between actions
    launch_args: list[str] = Field(
        default=[
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--no-zygote",
            "--disable-gpu",
            "--disable-extensions",
            "--disable-background-networking",
            "--disable-default-apps",
            "--disable-sync",
            "--metrics-recording-only",
            "--mute-audio",
            "--disable-software-rasterizer",
            "--no-first-run",
            "--disable-blink-features=AutomationControlled",
        ]
    )
    viewport_width: int = 1280
    viewport_height: int = 720


AVITO = SourceConfig(
    urls=["https://www.avito.ru/birobidzhan/kvartiry/sdam-ASgBAgICAUSSA8gQ"],
    page_param="p",
    selectors=SelectorConfig(
        card=[
            'div[data-marker="item"]',
            'div[data-marker="item-root"]',
            "div.iva-item-root-G3n7v",
        ],
        title=[
            'a[data-marker="item-title"]',
            'a[itemprop="url"]',
            'a[class*="title-root"]',
            'a[class*="link-link"]',
        ],
        price=[
            '[data-marker="item-price"]',
            '[class*="price-text"]',
            '[itemprop="price"]',
        ],
        address=[
            '[data-marker="item-address"]',
            '[class*="geo-root"]',
            '[class*="geo-address"]',
        ],
        description=[
            '[data-marker="item-description"]',
            '[class*="snippet-text"]',
            '[class*="description"]',
            '[data-marker="item-properties"]',
        ],
        date=[
            '[data-marker="item-date"] time',
            '[data-marker="item-date"]',
            "time[datetime]",
            "time",
            '[class*="date"]',
        ],
        image=[
            'img[data-marker="image-content"]',
            'img[data-marker="image"]',
            'img[data-marker="item-image"]',
            'img[class*="photo-slider-image"]',
            "img",
        ],
        next_page='a[data-marker="pagination-button/next"]',
    ),
    cookies={"buyer_location_id": "626740"},
)

YOULA = SourceConfig(
    urls=[
        "https://youla.ru/birobidzhan/nedvijimost/arenda-kvartiri",
        "https://youla.ru/birobidzhan/nedvijimost/arenda-komnati",
        "https://youla.ru/birobidzhan/nedvijimost/arenda-doma",
        "https://youla.ru/birobidzhan/nedvijimost/arenda-kvartiri-posutochno",
        "https://youla.ru/birobidzhan/nedvijimost/arenda-komnati-posutochno",
        "https://youla.ru/birobidzhan/nedvijimost/arenda-doma-posutochno",
    ],
    page_param="page",
    selectors=SelectorConfig(
        card=[
            "article[data-id]",
            'div[data-test="product-card"]',
            'li[data-test="product-item"]',
        ],
        title=[
            '[data-test="product-title"]',
            'a[data-test="product-card-link"]',
            'a[class*="ProductCardTitle"]',
        ],
        price=[
            '[data-test="product-price"]',
            '[class*="ProductCard_price"]',
            '[itemprop="price"]',
        ],
        address=[
            '[data-test="product-address"]',
            '[class*="ProductCard_address"]',
        ],
        date=[
            '[data-test="product-date"] time',
            '[data-test="product-date"]',
            "time[datetime]",
            "time",
        ],
        image=[
            'img[data-test="product-image"]',
            'img[class*="ProductCardPhoto__image"]',
            "img[data-src]",
            "img",
        ],
        next_page='a[data-test-pagination-link="next"]',
    ),
    cookies={
        "location": (
            "%7B%22isConfirmed%22%3Atrue%2C%22city%22%3A%7B%22coords%22%3A%7B"
            "%22latitude%22%3A48.788167%2C%22longitude%22%3A132.928807%7D%7D%7D"
        ),
    },
)


def _split_env(value: str, sep: str = ",") -> list[str]:
    return [part.strip() for part in value.split(sep) if part.strip()]


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off"}


class Config(BaseModel):
    """Application configuration."""

    # Project paths - config.py is at src/listing_collector/config.py, so 3 parents up
    project_root: Path = Path(__file__).parent.parent.parent
    data_dir: Path = project_root / "data"
    db_path: Path = data_dir / "listings.db"

    scraping: ScrapingDefaults = Field(default_factory=ScrapingDefaults)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    sources: dict[ListingSource, SourceConfig] = Field(
        default_factory=lambda: {
            ListingSource.AVITO: AVITO.model_copy(deep=True),
            ListingSource.YOULA: YOULA.model_copy(deep=True),
        }
    )

    def ensure_dirs(self) -> None:
        """Ensure required directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def source(self, source: ListingSource) -> SourceConfig:
        """Get the crawl settings for a source."""
        try:
            return self.sources[source]
        except KeyError:
            raise ValueError(f"No configuration for source '{source.value}'") from None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Config":
        """Build a config with COLLECTOR_* environment overrides applied.

        Values are validated by the models, so a malformed variable fails
        here rather than mid-crawl.
        """
        env = os.environ if environ is None else environ
        base = cls()

        scraping = base.scraping.model_dump()
        int_fields = {
            "COLLECTOR_MAX_PAGES": "max_pages",
            "COLLECTOR_REQUEST_DELAY_MS": "request_delay_ms",
            "COLLECTOR_MAX_ATTEMPTS": "max_attempts",
            "COLLECTOR_BASE_DELAY_MS": "base_delay_ms",
            "COLLECTOR_MANUAL_WAIT_AFTER_MS": "manual_wait_after_ms",
            "COLLECTOR_NAVIGATION_TIMEOUT_MS": "navigation_timeout_ms",
        }
        for var, name in int_fields.items():
            if env.get(var):
                scraping[name] = int(env[var])
        if env.get("COLLECTOR_CAPTCHA_MULTIPLIER"):
            scraping["captcha_multiplier"] = float(env["COLLECTOR_CAPTCHA_MULTIPLIER"])
        if env.get("COLLECTOR_JITTER_RATIO"):
            scraping["jitter_ratio"] = float(env["COLLECTOR_JITTER_RATIO"])
        if env.get("COLLECTOR_RATE_LIMIT_CODES"):
            scraping["rate_limit_status_codes"] = [int(code) for code in _split_env(env["COLLECTOR_RATE_LIMIT_CODES"])]
        if env.get("COLLECTOR_CAPTCHA_MARKERS"):
            # "|" separated, markers may contain commas
            scraping["captcha_markers"] = _split_env(env["COLLECTOR_CAPTCHA_MARKERS"], "|")

        browser = base.browser.model_dump()
        if env.get("COLLECTOR_HEADLESS"):
            browser["headless"] = _env_flag(env["COLLECTOR_HEADLESS"])

        sources = {key: value.model_copy(deep=True) for key, value in base.sources.items()}
        for source in ListingSource:
            var = f"COLLECTOR_{source.name}_URLS"
            if env.get(var):
                sources[source] = sources[source].model_copy(update={"urls": _split_env(env[var])})

        overrides: dict = {
            "scraping": ScrapingDefaults(**scraping),
            "browser": BrowserConfig(**browser),
            "sources": sources,
        }
        if env.get("COLLECTOR_DB_PATH"):
            overrides["db_path"] = Path(env["COLLECTOR_DB_PATH"])
        return cls(**overrides)


# Global config instance
config = Config.from_env()
