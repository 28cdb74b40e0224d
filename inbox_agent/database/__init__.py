"""
Database initialization and the process-wide engine/session factory.
"""

from sqlalchemy.orm import Session

from .models import create_database_engine, create_tables, get_session_maker


class DatabaseManager:
    """Owns one engine and its sessionmaker; URL defaults to Config.get_database_path()."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            from ..config import Config
            database_url = Config.get_database_path()

        self.database_url = database_url
        self.engine = create_database_engine(database_url)
        self.SessionMaker = get_session_maker(self.engine)

    def initialize_database(self):
        """Create missing tables; existing tables and rows are left alone."""
        create_tables(self.engine)

    def get_session(self) -> Session:
        return self.SessionMaker()


_db_manager = None


def get_db_manager(database_url: str = None) -> DatabaseManager:
    """Return the shared DatabaseManager, creating it on first use."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)
    return _db_manager


def init_database(database_url: str = None) -> str:
    """Create the schema and return the database URL it lives at."""
    db_manager = get_db_manager(database_url)
    db_manager.initialize_database()
    return db_manager.database_url
