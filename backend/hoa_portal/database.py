from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings

Base = declarative_base()


def build_engine(database_url: str):
    """Create an engine; SQLite connections are shared with the worker thread"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, connect_args=connect_args, future=True)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(bind=None):
    # Importing the models registers their tables on Base.metadata
    from .models import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
