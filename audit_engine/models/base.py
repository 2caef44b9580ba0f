"""
Database Base Configuration

Provides SQLAlchemy setup, connection management, and base model class.
Supports both PostgreSQL (production) and SQLite (development/testing).
"""

import uuid
from datetime import datetime, date
from typing import Optional, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, Column, DateTime, String
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool


engine = None
IS_SQLITE = False

# Session factory, bound by configure_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def configure_engine(database_url: str, echo: bool = False):
    """
    Create the engine for ``database_url`` and bind the session factory to it.

    In-memory SQLite uses a single shared connection so every session sees
    the same database.
    """
    global engine, IS_SQLITE

    IS_SQLITE = database_url.startswith('sqlite')

    if IS_SQLITE:
        kwargs = {'connect_args': {'check_same_thread': False}, 'echo': echo}
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
            echo=echo
        )

    SessionLocal.configure(bind=engine)
    return engine


def new_id() -> str:
    return str(uuid.uuid4())


class BaseModel:
    """
    Base model class with common fields and methods.

    Provides:
    - UUID primary key stored as a 36 character string
    - Created/updated timestamps
    - Common query methods
    """

    id = Column(String(36), primary_key=True, default=new_id)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_by_id(cls, session: Session, id: str) -> Optional['BaseModel']:
        """Get record by ID."""
        return session.query(cls).filter(cls.id == id).first()

    @classmethod
    def get_for_company(cls, session: Session, id: str, company_id: str) -> Optional['BaseModel']:
        """Get a tenant-scoped record by ID."""
        return session.query(cls).filter(
            cls.id == id,
            cls.company_id == company_id
        ).first()

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.name] = value
        return result

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id})>"


# Create declarative base with our base model
Base = declarative_base(cls=BaseModel)


def init_db():
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


def drop_db():
    """Drop all database tables. USE WITH CAUTION."""
    Base.metadata.drop_all(bind=engine)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            service = AuditLifecycleService(session)
            service.start_audit(actor, audit_id)
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
