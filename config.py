import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        currency_symbol: str,
        log_level: str,
        app_name: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.currency_symbol = currency_symbol
        self.log_level = log_level
        self.app_name = app_name


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("EXPENSES_TIMEZONE", "UTC")
    secret_key = os.getenv(
        "EXPENSES_SECRET_KEY",
        "5b0c2f0e8f3a4e6fa1d2c9b7e4f80d3a6c1e9b2f7a4d8c0e3b6f1a9d2c7e4b80",
    )
    token_max_age_hours = int(os.getenv("EXPENSES_TOKEN_MAX_AGE_HOURS", "12"))
    currency_symbol = os.getenv("EXPENSES_CURRENCY_SYMBOL", "$")
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    app_name = os.getenv("EXPENSES_APP_NAME", "ExpenseManager")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        currency_symbol=currency_symbol,
        log_level=log_level,
        app_name=app_name,
    )
