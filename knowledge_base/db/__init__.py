"""
Database engine and session factory.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..config import DATABASE_URL


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        # Ingestion runs on worker threads
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def init_db(bind=None):
    """Create the schema: SQL migrations on Postgres, metadata.create_all elsewhere."""
    from .migrations import run_sql_migrations
    from ..models import Base

    bind = bind or engine
    if bind.dialect.name == "postgresql":
        run_sql_migrations(bind)
    else:
        Base.metadata.create_all(bind)
