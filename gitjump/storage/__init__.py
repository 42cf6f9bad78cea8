"""Local persistence backends."""

from .base import LocalStore
from .sqlite import SQLiteStorage

__all__ = ["LocalStore", "SQLiteStorage"]
