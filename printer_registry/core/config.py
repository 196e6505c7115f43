from pathlib import Path

from pydantic_settings import BaseSettings

APP_VERSION = "0.1.0"

# Base directory for path calculations
_base_dir = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Printer Registry"
    debug: bool = False  # Default to production mode

    # Paths
    base_dir: Path = _base_dir
    log_dir: Path = base_dir / "logs"
    database_url: str = f"sqlite+aiosqlite:///{_base_dir / 'printers.db'}"

    # Logging
    log_level: str = "INFO"  # Override with LOG_LEVEL env var or DEBUG=true
    log_to_file: bool = True  # Set to false to disable file logging

    # Storage
    commit_timeout_seconds: float = 5.0  # Upper bound for a single commit
    sqlite_busy_timeout: float = 5.0  # Seconds SQLite waits on a locked database

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
