"""
Database connection and session management.
"""

import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool

from booksync.db.models import Base


def get_database_url() -> str:
    """Get database URL from environment or use default."""
    return os.getenv("DATABASE_URL", "sqlite:///data/booksync.db")


def ensure_data_directory(db_url: str):
    """Ensure the data directory exists for SQLite database."""
    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        db_path = db_url.replace("sqlite:///", "")
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)


class Database:
    """
    Owns the engine and session factory for one local database.

    Constructed once at startup and handed to whatever needs it.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or get_database_url()
        self.engine = None
        self.SessionLocal = None

    def init(self):
        """Create the engine and all tables."""
        ensure_data_directory(self.url)

        kwargs = {}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url == "sqlite://":
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool

        self.engine = create_engine(self.url, echo=False, **kwargs)
        self.SessionLocal = scoped_session(
            sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
        )

        Base.metadata.create_all(bind=self.engine)
        return self.engine

    def get_session(self):
        """Get a database session."""
        if self.SessionLocal is None:
            self.init()
        return self.SessionLocal()

    @contextmanager
    def session(self):
        """Context manager for database sessions."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close the database connection."""
        if self.SessionLocal:
            self.SessionLocal.remove()
        if self.engine:
            self.engine.dispose()
        self.SessionLocal = None
        self.engine = None
