"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DB_PATH_ENV = "POCKETLEDGER_DB_PATH"

DEFAULT_USER = "local"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_ORACLE_TIMEOUT = 30.0
DEFAULT_ORACLE_RETRIES = 1


def default_database_path() -> str:
    """Return ~/.pocketledger/pocketledger.db, creating the directory."""
    db_dir = Path.home() / ".pocketledger"
    db_dir.mkdir(exist_ok=True)
    return str(db_dir / "pocketledger.db")


@dataclass(frozen=True)
class Settings:
    """Settings for the database, the acting user and the oracle."""

    database_path: Optional[str] = None
    user_id: str = DEFAULT_USER
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    oracle_timeout: float = DEFAULT_ORACLE_TIMEOUT
    oracle_retries: int = DEFAULT_ORACLE_RETRIES

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from POCKETLEDGER_* and GEMINI_API_KEY variables."""
        return cls(
            database_path=os.getenv(DB_PATH_ENV) or None,
            user_id=os.getenv("POCKETLEDGER_USER", DEFAULT_USER),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("POCKETLEDGER_GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            oracle_timeout=float(
                os.getenv("POCKETLEDGER_ORACLE_TIMEOUT", DEFAULT_ORACLE_TIMEOUT)
            ),
            oracle_retries=int(os.getenv("POCKETLEDGER_ORACLE_RETRIES", DEFAULT_ORACLE_RETRIES)),
        )
