from typing import Optional

from sqlmodel import SQLModel, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import settings
from .infrastructure.persistence.sqlalchemy import tables  # noqa: F401  registers table metadata


def build_engine(db_url: Optional[str] = None) -> Engine:
    # Choose engine options based on database scheme
    db_url = db_url or settings.DATABASE_URL
    engine_kwargs = {}

    if db_url.startswith("sqlite"):
        # SQLite specific connect args
        engine_kwargs.update({
            "connect_args": {"check_same_thread": False}
        })
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so worker threads see the same in-memory database
            engine_kwargs["poolclass"] = StaticPool
    else:
        # Better resiliency for managed Postgres
        engine_kwargs.update({
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_size": 5,
            "max_overflow": 10,
        })

    return create_engine(db_url, echo=settings.DEBUG, **engine_kwargs)

def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
