import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        jwt_secret: str,
        jwt_algorithm: str,
        access_token_hours: int,
        refresh_token_hours: int,
        default_currency: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.access_token_hours = access_token_hours
        self.refresh_token_hours = refresh_token_hours
        self.default_currency = default_currency
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    # empty means "system local time"
    timezone = os.getenv("FINANCE_TIMEZONE", "")
    jwt_secret = os.getenv(
        "FINANCE_JWT_SECRET",
        "3f0d5c1e8a9b47e2b6c4d1a0f9e8d7c6b5a4f3e2d1c0b9a8f7e6d5c4b3a2f1e0",
    )
    jwt_algorithm = os.getenv("FINANCE_JWT_ALGORITHM", "HS256")
    access_token_hours = int(os.getenv("FINANCE_ACCESS_TOKEN_HOURS", "24"))
    refresh_token_hours = int(os.getenv("FINANCE_REFRESH_TOKEN_HOURS", "168"))
    default_currency = os.getenv("FINANCE_DEFAULT_CURRENCY", "XAF").upper()
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        jwt_secret=jwt_secret,
        jwt_algorithm=jwt_algorithm,
        access_token_hours=access_token_hours,
        refresh_token_hours=refresh_token_hours,
        default_currency=default_currency,
        log_level=log_level,
    )
