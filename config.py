"""
Application configuration.
Reads from .env file and provides sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Settings:
    """Centralized application settings."""

    # ── Paths ──
    BASE_DIR = Path(__file__).parent
    DATA_DIR = BASE_DIR / "data"

    # ── Store ──
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL", f"sqlite:///{DATA_DIR / 'product_qa.db'}"
    )
    DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"

    # ── Logging ──
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ── QA workflow ──
    # Seller tiers whose products skip digital/physical review.
    QA_BYPASS_TIERS: tuple[str, ...] = _split_csv(
        os.getenv("QA_BYPASS_TIERS", "premium_outlet,trusted_brand")
    )

    def __init__(self) -> None:
        """Ensure the local data directory exists for the default SQLite file."""
        if self.DATABASE_URL.startswith("sqlite:///"):
            self.DATA_DIR.mkdir(parents=True, exist_ok=True)


# Values only; engines and sessions are built on demand by storage.database.
settings = Settings()
