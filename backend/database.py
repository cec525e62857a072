"""Database configuration and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def create_session_factory(url: str = DATABASE_URL) -> sessionmaker:
    """Build an engine for ``url`` and return a session factory bound to it."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args, echo=False)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


SessionLocal = create_session_factory()


def init_db(session_factory: sessionmaker = SessionLocal):
    Base.metadata.create_all(bind=session_factory.kw["bind"])
