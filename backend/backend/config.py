"""
Process configuration for the subscription API.

Everything is read from the environment exactly once (see get_config) and kept
in frozen dataclasses; request handlers only ever read it.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, Mapping, Optional, Tuple

from backend.billing_plans import PlanCatalog

logger = logging.getLogger(__name__)

DEFAULT_CORS_METHODS = ("GET", "OPTIONS", "PATCH", "DELETE", "POST", "PUT")
DEFAULT_CORS_HEADERS = (
    "X-CSRF-Token",
    "X-Requested-With",
    "Accept",
    "Accept-Version",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "X-Api-Version",
    "Authorization",
)
DEFAULT_REDIRECT_BASE = "/thank-you.html"
DEFAULT_CUSTOMER_NAME = "名無し"
REDIRECT_STYLES = ("query", "path")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised at startup when an environment value can't be parsed"""
    pass


@dataclass(frozen=True)
class CorsConfig:
    origin: str = "*"
    methods: Tuple[str, ...] = DEFAULT_CORS_METHODS
    headers: Tuple[str, ...] = DEFAULT_CORS_HEADERS
    allow_credentials: bool = False
    max_age: Optional[int] = None

    def __post_init__(self):
        # Browsers refuse credentials together with a wildcard origin
        if self.origin == "*" and self.allow_credentials:
            object.__setattr__(self, "allow_credentials", False)

    def as_headers(self) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Origin": self.origin,
            "Access-Control-Allow-Methods": ",".join(self.methods),
            "Access-Control-Allow-Headers": ", ".join(self.headers),
        }
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        if self.max_age is not None:
            headers["Access-Control-Max-Age"] = str(self.max_age)
        return headers


@dataclass(frozen=True)
class RedirectConfig:
    """Where the browser goes after a successful signup"""
    base: str = DEFAULT_REDIRECT_BASE
    style: str = "query"  # "query" -> base?plan=<key> | "path" -> base/<key>

    def url_for(self, plan: str) -> str:
        if self.style == "path":
            return f"{self.base.rstrip('/')}/{plan}"
        separator = "&" if "?" in self.base else "?"
        return f"{self.base}{separator}plan={plan}"


@dataclass(frozen=True)
class AppConfig:
    stripe_secret_key: Optional[str]
    plan_catalog: PlanCatalog
    sale_start: Optional[datetime] = None
    cors: CorsConfig = CorsConfig()
    redirect: RedirectConfig = RedirectConfig()
    default_customer_name: str = DEFAULT_CUSTOMER_NAME

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Build the configuration from environment variables.

        Variables:
            STRIPE_SECRET_KEY: Stripe secret key (absence is reported per request as 500)
            PRICE_ID_INITIATE / PRICE_ID_WARRIOR / PRICE_ID_GUARDIAN: plan price ids
            SALE_START_TIME: ISO-8601 instant, requests before it get 403 (optional)
            CORS_ALLOWED_ORIGIN: fixed origin, wildcard when unset
            CORS_ALLOW_CREDENTIALS: "true" to send Access-Control-Allow-Credentials
            CORS_MAX_AGE: preflight cache seconds (optional)
            REDIRECT_BASE_URL / REDIRECT_STYLE: success redirect target
            DEFAULT_CUSTOMER_NAME: placeholder name for anonymous signups

        Raises:
            ConfigurationError: for malformed values
        """
        env = os.environ if environ is None else environ

        origin = env.get("CORS_ALLOWED_ORIGIN") or "*"
        allow_credentials = env.get("CORS_ALLOW_CREDENTIALS", "").strip().lower() in _TRUE_VALUES
        if allow_credentials and origin == "*":
            logger.warning(
                "[CONFIG] CORS_ALLOW_CREDENTIALS ignored: requires CORS_ALLOWED_ORIGIN (wildcard origin in use)"
            )
        cors = CorsConfig(
            origin=origin,
            allow_credentials=allow_credentials,
            max_age=_parse_max_age(env.get("CORS_MAX_AGE")),
        )

        style = (env.get("REDIRECT_STYLE") or "query").strip().lower()
        if style not in REDIRECT_STYLES:
            raise ConfigurationError(f"REDIRECT_STYLE must be one of {REDIRECT_STYLES}, got {style!r}")
        redirect = RedirectConfig(
            base=env.get("REDIRECT_BASE_URL") or DEFAULT_REDIRECT_BASE,
            style=style,
        )

        config = cls(
            stripe_secret_key=env.get("STRIPE_SECRET_KEY") or None,
            plan_catalog=PlanCatalog.from_env(env),
            sale_start=parse_utc_instant(env.get("SALE_START_TIME")),
            cors=cors,
            redirect=redirect,
            default_customer_name=env.get("DEFAULT_CUSTOMER_NAME") or DEFAULT_CUSTOMER_NAME,
        )

        if not config.stripe_secret_key:
            logger.warning("[CONFIG] STRIPE_SECRET_KEY not set, signups will fail with 500")
        missing = [plan for plan, ok in config.plan_catalog.configured_plans().items() if not ok]
        if missing:
            logger.warning(f"[CONFIG] No price id configured for plans: {', '.join(missing)}")
        if config.sale_start:
            logger.info(f"[CONFIG] Sale window opens at {config.sale_start.isoformat()}")
        return config


def parse_utc_instant(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    A trailing "Z" is accepted; naive values are taken as UTC.
    Empty/None -> None (gate disabled).
    """
    if not value or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as e:
        raise ConfigurationError(f"SALE_START_TIME is not an ISO-8601 timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_max_age(value: Optional[str]) -> Optional[int]:
    if not value or not value.strip():
        return None
    try:
        max_age = int(value)
    except ValueError as e:
        raise ConfigurationError(f"CORS_MAX_AGE must be an integer, got {value!r}") from e
    if max_age < 0:
        raise ConfigurationError(f"CORS_MAX_AGE must be >= 0, got {max_age}")
    return max_age


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Process-wide configuration, built on first use"""
    return AppConfig.from_env()
