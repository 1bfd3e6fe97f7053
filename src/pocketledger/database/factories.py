"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from pocketledger.config import DB_PATH_ENV, default_database_path
from pocketledger.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks POCKETLEDGER_DB_PATH
            environment variable, then defaults to ~/.pocketledger/pocketledger.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        database_path = os.environ.get(DB_PATH_ENV)

    if database_path is None:
        database_path = default_database_path()

    Path(database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    database_url = f"sqlite:///{Path(database_path).expanduser()}"
    return SQLAlchemyDatabase(database_url)
