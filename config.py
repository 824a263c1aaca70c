import logging
import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        base_currency: str,
        duplicate_lookback_days: int,
        category_match_threshold: float,
        streak_bonus_per_day: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.base_currency = base_currency
        self.duplicate_lookback_days = duplicate_lookback_days
        self.category_match_threshold = category_match_threshold
        self.streak_bonus_per_day = streak_bonus_per_day
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'ledger.db'}"
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    base_currency = os.getenv("LEDGER_BASE_CURRENCY", "USD").upper()
    duplicate_lookback_days = int(os.getenv("LEDGER_DUPLICATE_LOOKBACK_DAYS", "30"))
    category_match_threshold = float(
        os.getenv("LEDGER_CATEGORY_MATCH_THRESHOLD", "0.4")
    )
    streak_bonus_per_day = int(os.getenv("LEDGER_STREAK_BONUS_PER_DAY", "5"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        base_currency=base_currency,
        duplicate_lookback_days=duplicate_lookback_days,
        category_match_threshold=category_match_threshold,
        streak_bonus_per_day=streak_bonus_per_day,
        log_level=log_level,
    )


_LOGGING_CONFIGURED = False


def configure_logging(level: str | int | None = None) -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    resolved = level if level is not None else get_settings().log_level
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    logging.basicConfig(
        level=resolved, format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )
    _LOGGING_CONFIGURED = True
