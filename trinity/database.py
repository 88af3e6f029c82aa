"""Engine and session helpers."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from trinity.models import Base


def create_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    In-memory SQLite databases share one connection so that every session
    sees the same data.
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_all(engine: Engine) -> None:
    Base.metadata.create_all(engine)


@contextmanager
def transaction(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Open a session whose writes commit together or not at all.

    Commits when the block exits normally and rolls back on any exception,
    which is re-raised.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
