"""
Database schema and connection management.

Uses SQLite with SQLAlchemy as the shared key/value persistence medium.
Every process that opens the same file is a separate app instance.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Entry(Base):
    """One namespaced key holding a JSON-serialized storage envelope."""

    __tablename__ = "entries"

    key = Column(String, primary_key=True)  # <prefix>:v<version>:<logicalKey>
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class SyncState(Base):
    """Single-row change counter read by other instances to detect writes."""

    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True)
    revision = Column(Integer, nullable=False, default=0)
    writer = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def get_engine(db_path: Path):
    """
    Create an engine for the SQLite file.

    Args:
        db_path: Path to SQLite database file
    """
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path):
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine bound to the file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    return engine


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    Session = sessionmaker(bind=get_engine(db_path))
    return Session()
