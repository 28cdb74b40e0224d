"""
Database sessions for CLI commands and the pipeline entry points.
"""

from contextlib import contextmanager
from typing import Generator
from sqlalchemy.orm import Session

from .database import DatabaseManager, get_db_manager


class CLISessionManager:
    """
    Hands out short-lived sessions.

    Ingestion opens one session per account through this manager, so a
    failing account rolls back only its own work.
    """

    def __init__(self, database_url: str = None, db_manager: DatabaseManager = None):
        self.db_manager = db_manager or get_db_manager(database_url)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Yield a session; roll back if the block raises, close it either way."""
        session = self.db_manager.get_session()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


_cli_session_manager = None


def get_cli_session_manager(database_url: str = None) -> CLISessionManager:
    global _cli_session_manager
    if _cli_session_manager is None:
        _cli_session_manager = CLISessionManager(database_url)
    return _cli_session_manager
