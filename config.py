import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        token_max_age_secs: int,
        csrf_max_age_hours: int,
        session_cookie: str,
        log_level: str,
        create_schema: bool,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.token_max_age_secs = token_max_age_secs
        self.csrf_max_age_hours = csrf_max_age_hours
        self.session_cookie = session_cookie
        self.log_level = log_level
        self.create_schema = create_schema


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSE_TRACKER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSE_TRACKER_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'expenses.db'}"
    secret_key = os.getenv(
        "EXPENSE_TRACKER_SECRET_KEY",
        "5c1d0f6a27e94b0fa8a3c64b9e2d71f03be8c2d4a9f6e1b7c0d35a82f4e69b1c",
    )
    token_max_age_secs = int(os.getenv("EXPENSE_TRACKER_TOKEN_MAX_AGE_SECS", "86400"))
    csrf_max_age_hours = int(os.getenv("EXPENSE_TRACKER_CSRF_MAX_AGE_HOURS", "2"))
    session_cookie = os.getenv(
        "EXPENSE_TRACKER_SESSION_COOKIE", "expense_tracker_session"
    )
    log_level = os.getenv("EXPENSE_TRACKER_LOG_LEVEL", "INFO").upper()
    create_schema = _env_flag("EXPENSE_TRACKER_CREATE_SCHEMA", "1")
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        token_max_age_secs=token_max_age_secs,
        csrf_max_age_hours=csrf_max_age_hours,
        session_cookie=session_cookie,
        log_level=log_level,
        create_schema=create_schema,
    )
