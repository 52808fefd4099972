from typing import Optional
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from parking_engine.config import settings

def build_engine(url: str):
    """Create an engine for the given URL (SQLite connections may cross threads)"""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)

engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """FastAPI dependency yielding one session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None):
    """Create all tables that do not exist yet"""
    # Models must be imported so they register on Base.metadata
    from parking_engine import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)

def naive_local(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive local time; convert offset-aware input"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
