"""Database layer for pocketledger application."""

from pocketledger.database.base import BalanceTarget, Database
from pocketledger.database.factories import create_sqlite_database

__all__ = ["BalanceTarget", "Database", "create_sqlite_database"]
