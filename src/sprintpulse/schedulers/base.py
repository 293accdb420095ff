"""
Base Scheduler class for Sprint Health schedulers.

Provides common functionality for database access, logging, and error handling.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, Optional

from sqlalchemy.orm import Session

from sprintpulse.storage.base import StorageAdapter


logger = logging.getLogger(__name__)


class SchedulerBase(ABC):
    """
    Base class for sprint health schedulers.

    Provides:
    - Database access through a storage adapter
    - A single clock for the scheduler run
    - Logging
    """

    def __init__(self, db_adapter: Optional[StorageAdapter] = None):
        """
        Initialize the scheduler.

        Args:
            db_adapter: Storage adapter for persisted rows (optional)
        """
        self.db = db_adapter
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def has_database(self) -> bool:
        return self.db is not None

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context."""
        if self.db is None:
            raise RuntimeError("Database adapter not configured")
        with self.db.get_session() as session:
            yield session

    def now(self) -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """
        Main entry point for the scheduler.

        Must be implemented by subclasses.
        """
        pass
