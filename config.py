import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        log_level: str = "INFO",
        csv_max_bytes: int = 2 * 1024 * 1024,
    ) -> None:
        self.database_url = database_url
        self.log_level = log_level
        self.csv_max_bytes = csv_max_bytes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("RENOVATION_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("RENOVATION_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "renovation.db"
        database_url = f"sqlite:///{default_db}"
    log_level = os.getenv("RENOVATION_LOG_LEVEL", "INFO").upper()
    csv_max_bytes = int(os.getenv("RENOVATION_CSV_MAX_BYTES", str(2 * 1024 * 1024)))
    return Settings(
        database_url=database_url,
        log_level=log_level,
        csv_max_bytes=csv_max_bytes,
    )
