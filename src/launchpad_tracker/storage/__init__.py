"""Storage layer - database models, repositories and the persistence adapter."""

from launchpad_tracker.storage.database import DatabaseManager
from launchpad_tracker.storage.persistence import PersistenceError, TokenPersistence

__all__ = ["DatabaseManager", "PersistenceError", "TokenPersistence"]
