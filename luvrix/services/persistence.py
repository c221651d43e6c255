from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from luvrix.errors import PersistenceError, PersistenceTimeoutError

log = structlog.get_logger()


@asynccontextmanager
async def unit_of_work(session: AsyncSession, *, timeout: float | None = None) -> AsyncIterator[AsyncSession]:
    """
    All-or-nothing block: commit when the body finishes, roll back on any exception.
    The timeout bounds the whole block; expiry surfaces as PersistenceTimeoutError.
    Nothing is retried here.
    """
    try:
        async with asyncio.timeout(timeout):
            yield session
            await session.commit()
    except TimeoutError as exc:
        await session.rollback()
        log.warning("persistence_timeout", timeout=timeout)
        raise PersistenceTimeoutError(f"Persistence did not answer within {timeout}s") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        log.error("persistence_error", error=str(exc.__class__.__name__))
        raise PersistenceError("Persistence failure; no changes were applied") from exc
    except BaseException:
        await session.rollback()
        raise


async def insert_ignore(session: AsyncSession, model: type, values: dict[str, Any], conflict_on: list[str]) -> Any | None:
    """
    INSERT ... ON CONFLICT (conflict_on) DO NOTHING RETURNING id.
    Returns the new row id, or None when a row with the same key already exists.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise PersistenceError(f"Conditional insert not supported on {dialect}")
    stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=conflict_on).returning(model.id)
    return (await session.execute(stmt)).scalar_one_or_none()
