import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from payrun.config.settings import DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


def _create_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        db_path = database_url.replace("sqlite:///", "", 1)
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


engine = _create_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def configure_engine(database_url: str) -> Engine:
    """Rebind the module-level engine and session factory to another database"""
    global engine
    engine.dispose()
    engine = _create_engine(database_url)
    SessionLocal.configure(bind=engine)
    logger.info("Database engine bound to %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db(bind: Optional[Engine] = None):
    """Create all tables"""
    from . import models  # noqa: F401
    from .immutability import register_immutability_listeners

    register_immutability_listeners()
    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(session_factory: sessionmaker = None) -> Iterator[Session]:
    """Session that commits on success and rolls back on error"""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def repository_scope(session_factory: sessionmaker = None):
    """Yield a PayrollRepository bound to its own session"""
    from .repository import PayrollRepository

    with session_scope(session_factory) as db:
        yield PayrollRepository(db)
