"""
SQLAlchemy database models for the book sync service.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookRow(Base):
    """A book in the local collection."""
    __tablename__ = 'books'

    id = Column(String(64), primary_key=True)
    isbn = Column(String(20), nullable=True)
    title = Column(String(500), nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    publisher = Column(String(500), nullable=True)
    published_date = Column(String(40), nullable=True)
    description = Column(Text, nullable=True)
    page_count = Column(Integer, nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    categories = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default='unread', index=True)
    priority = Column(String(20), nullable=False, default='medium', index=True)
    condition = Column(String(20), nullable=False, default='new')
    purchase_date = Column(String(40), nullable=True)
    purchase_place = Column(String(500), nullable=True)
    purchase_price = Column(Float, nullable=True)
    purchase_reason = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    start_date = Column(String(40), nullable=True)
    completed_date = Column(String(40), nullable=True)
    current_page = Column(Integer, nullable=True)
    created_at = Column(String(40), nullable=False, index=True)  # ISO-8601
    updated_at = Column(String(40), nullable=False)  # ISO-8601
    sync_status = Column(String(20), nullable=True, index=True)  # synced, pending, error, local_only, pending_delete
    owner_user_id = Column(String(100), nullable=True)


class SyncRun(Base):
    """A completed sync pass."""
    __tablename__ = 'sync_run'

    id = Column(Integer, primary_key=True)
    run_id = Column(String(50), index=True, nullable=True)
    mode = Column(String(20), nullable=True)  # full, incremental, initial
    user_id = Column(String(100), nullable=True)
    started_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default='completed')  # completed, failed
    uploaded = Column(Integer, default=0)
    downloaded = Column(Integer, default=0)
    deleted = Column(Integer, default=0)
    conflicts = Column(Integer, default=0)
    errors = Column(JSON, nullable=True)
