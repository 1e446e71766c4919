"""Configuration and logging setup for storefront."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Centralized storage constants
# Can be overridden via STOREFRONT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATABASE_FILE = "storefront.json"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.environ.get(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the environment."""

    data_dir: Path
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    admin_email: str = "admin@example.com"
    admin_password: str = ""
    admin_name: str = "Store Admin"
    shipping_fee: float = 2500.0
    free_shipping_threshold: float = 50000.0
    tax_rate: float = 0.0
    claim_ttl_seconds: float = 300.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=list)

    @property
    def database_path(self) -> Path:
        return self.data_dir / DATABASE_FILE

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.environ.get("STOREFRONT_DATA_DIR", _default_data_dir)),
            paystack_secret_key=os.environ.get("PAYSTACK_SECRET_KEY", ""),
            paystack_base_url=os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            admin_email=os.environ.get("ADMIN_EMAIL", "admin@example.com").strip().lower(),
            admin_password=os.environ.get("ADMIN_PASSWORD", ""),
            admin_name=os.environ.get("ADMIN_NAME", "Store Admin"),
            shipping_fee=_env_float("SHIPPING_FEE", 2500.0),
            free_shipping_threshold=_env_float("FREE_SHIPPING_THRESHOLD", 50000.0),
            tax_rate=_env_float("TAX_RATE", 0.0),
            claim_ttl_seconds=_env_float("CLAIM_TTL_SECONDS", 300.0),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            cors_origins=_env_list(
                "CORS_ORIGINS",
                ["http://localhost:5173", "http://localhost:3000"],
            ),
        )


def get_settings() -> Settings:
    """Load settings, reading a .env file first if present.

    Read on every call so tests can change the environment between requests.
    """
    load_dotenv()
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    if not any(getattr(h, "_storefront", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)
