# Database setup with SQLAlchemy async engine and session factory.
# Uses declarative_base for ORM models and get_session as a FastAPI dependency.
# transaction() wraps one unit of work: commit on success, rollback on any error.
# dialect_insert() picks the INSERT construct that supports ON CONFLICT DO NOTHING.

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from campus_connect.config import settings

Base = declarative_base()

engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session

@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise

def dialect_insert(session: AsyncSession, table):
    """Dialect-specific insert() so callers can use on_conflict_do_nothing()."""
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)
