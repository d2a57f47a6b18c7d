from typing import Annotated
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from app.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

DEFAULT_SNIPPETS_TO_EXCLUDE = ["PL", "FI"]

DEFAULT_GROUPS_TO_EXCLUDE = [
    "For Adults",
    "Afganistan",
    "Pakistan",
    "Turkey",
    "India",
    "Romania",
    "Colombia",
    "Finland",
    "Bulgarien",
    "Iceland",
    "Arabic",
    "Albania",
    "Peru",
    "Chile",
    "Česká republika",
    "Ecuador",
    "France",
    "Latino",
    "Africa",
    "Germany",
    "Russia",
    "Spain",
    "Portugal",
    "Netherlands",
    "Belgium",
    "Thailand",
    "Slovenia",
    "Israel",
    "Iran",
    "Brazil",
    "Argentina",
    "Philippines",
    "Makedonien",
    "EX-Yu",
    "Poland",
    "Austria",
    "Paraguay",
    "Hungary",
    "Slovakien",
    "Mexico",
    "Dominican Republic",
    "Germany PPV Channels",
    "Greece",
    "Kurdistan",
    "Premiership Rugby UK",
    "Switzerland",
    "Venenzuela",
    "Uraguay",
    "Discovery+ Sport FI",
    "Italy",
    "Venezuela",
    "Music Collection",
    "SIMINN PPV (iceland)",
]


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    m3u_path: str | None = None
    epg_path: str | None = None
    password: str | None = None

    cache_ttl_sec: int = 6 * 60 * 60
    stale_poll_interval_sec: int = 5

    http_timeout_sec: float = 120.0
    http_max_retries: int = 3
    http_backoff_factor: float = 2.0
    parse_timeout_sec: int = 600  # Parsing timeout, 0 disables timeout
    user_agent: str = DEFAULT_USER_AGENT

    groups_to_exclude: Annotated[list[str], NoDecode] = DEFAULT_GROUPS_TO_EXCLUDE
    snippets_to_exclude: Annotated[list[str], NoDecode] = DEFAULT_SNIPPETS_TO_EXCLUDE
    exclude_file_extensions: bool = True

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("groups_to_exclude", "snippets_to_exclude", mode="before")
    @classmethod
    def parse_comma_list(cls, value):
        """Parse comma-separated values or list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return list(value)
        return []

    @field_validator("m3u_path", "epg_path")
    @classmethod
    def validate_source_url(cls, value: str | None) -> str | None:
        """Validate source URLs are HTTP/HTTPS."""
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Source URL must be HTTP/HTTPS: {sanitize_url_for_logging(value)}")
        return value

    @field_validator("cache_ttl_sec", "stale_poll_interval_sec", "http_max_retries")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("http_timeout_sec")
    @classmethod
    def validate_http_timeout(cls, value: float) -> float:
        """Validate HTTP client timeout (seconds)."""
        if value <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        return value

    @field_validator("http_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, value: float) -> float:
        """Ensure the backoff multiplier is at least 1."""
        if value < 1:
            raise ValueError("http_backoff_factor must be >= 1")
        return value

    @field_validator("parse_timeout_sec")
    @classmethod
    def validate_parse_timeout(cls, value: int) -> int:
        """Validate parsing timeout (seconds)."""
        if value < 0:
            raise ValueError("parse_timeout_sec must be >= 0")
        return value

    @field_validator("port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("port must be between 1 and 65535")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_source_configuration(self):
        """Validate cross-field configuration."""
        if not self.m3u_path or not self.epg_path:
            logger.warning(
                "M3U_PATH and/or EPG_PATH not configured - the service will not start without both"
            )

        if self.stale_poll_interval_sec > self.cache_ttl_sec:
            raise ValueError("stale_poll_interval_sec must not exceed cache_ttl_sec")

        if not self.password:
            logger.warning("PASSWORD not configured - playlist and guide downloads are unprotected")

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Playlist source: %s", sanitize_url_for_logging(self.m3u_path or "not set"))
        logger.info("  Guide source: %s", sanitize_url_for_logging(self.epg_path or "not set"))
        logger.info("  Cache TTL: %ss", self.cache_ttl_sec)
        logger.info("  Stale poll interval: %ss", self.stale_poll_interval_sec)
        logger.info(
            "  HTTP: timeout=%.1fs retries=%s backoff=%.1f",
            self.http_timeout_sec,
            self.http_max_retries,
            self.http_backoff_factor,
        )
        logger.info(
            "  Parse Timeout: %s seconds",
            self.parse_timeout_sec or "disabled",
        )
        logger.info("  Excluded groups: %s", len(self.groups_to_exclude))
        logger.info("  Excluded group snippets: %s", ", ".join(self.snippets_to_exclude) or "none")
        logger.info("  Exclude file links: %s", self.exclude_file_extensions)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
