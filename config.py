import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        log_level: str,
        import_chunk_size: int,
        max_backup_bytes: int,
    ) -> None:
        self.database_url = database_url
        self.log_level = log_level
        self.import_chunk_size = import_chunk_size
        self.max_backup_bytes = max_backup_bytes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    import_chunk_size = int(os.getenv("BUDGET_IMPORT_CHUNK_SIZE", "500"))
    if import_chunk_size < 1:
        raise ValueError("BUDGET_IMPORT_CHUNK_SIZE must be at least 1")
    max_backup_bytes = int(os.getenv("BUDGET_MAX_BACKUP_BYTES", str(25 * 1024 * 1024)))
    return Settings(
        database_url=database_url,
        log_level=log_level,
        import_chunk_size=import_chunk_size,
        max_backup_bytes=max_backup_bytes,
    )
