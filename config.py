import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        paycheck_dates: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.paycheck_dates = paycheck_dates


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("ENVELOPE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "envelopes.db"
    database_url = os.getenv("ENVELOPE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("ENVELOPE_TIMEZONE", "Europe/Berlin")
    paycheck_dates = int(os.getenv("ENVELOPE_PAYCHECK_DATES", "12"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        paycheck_dates=paycheck_dates,
    )
