import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        import_session_ttl_minutes: int,
        max_upload_bytes: int,
        max_files_per_upload: int,
        parse_workers: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.import_session_ttl_minutes = import_session_ttl_minutes
        self.max_upload_bytes = max_upload_bytes
        self.max_files_per_upload = max_files_per_upload
        self.parse_workers = parse_workers
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "America/New_York")
    session_secret = os.getenv(
        "BUDGET_SESSION_SECRET",
        "3f9c2b71d0e84a6f9d5e1c7a2b8f4e60c1d3a5b7e9f0a2c4d6e8f1a3b5c7d9e0",
    )
    ttl_minutes = int(os.getenv("BUDGET_IMPORT_SESSION_TTL_MINUTES", "120"))
    max_upload_bytes = int(os.getenv("BUDGET_MAX_UPLOAD_BYTES", str(15 * 1024 * 1024)))
    max_files = int(os.getenv("BUDGET_MAX_FILES_PER_UPLOAD", "10"))
    parse_workers = int(os.getenv("BUDGET_PARSE_WORKERS", "4"))
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        import_session_ttl_minutes=ttl_minutes,
        max_upload_bytes=max_upload_bytes,
        max_files_per_upload=max_files,
        parse_workers=parse_workers,
        log_level=log_level,
    )
