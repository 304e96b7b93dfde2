from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from institute.db.models import Base


def create_storage_engine(database_url: str) -> Engine:
    """Create an engine for a key/value store and make sure its table exists."""
    url = make_url(database_url)
    connect_args = {}
    engine_kwargs = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        else:
            # in-memory databases live on a single shared connection
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        connect_args=connect_args,
        echo=False,
        **engine_kwargs,
    )
    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)
