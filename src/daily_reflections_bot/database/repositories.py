"""
Database repository layer for the Daily Reflections Bot.

This module provides the reflection cache: create/read/update/delete
keyed by the display date string. Create is an insert that silently
does nothing when the key already exists (first write wins); update
always overwrites.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from daily_reflections_bot.config import DatabaseConfig
from daily_reflections_bot.database.models import Base, DailyReflection
from daily_reflections_bot.reflections.models import StoredReflection
from daily_reflections_bot.utils.exceptions import DatabaseError, NotFoundError, ValidationError
from daily_reflections_bot.utils.logging import get_logger, log_database_operation, log_function_call

UPDATABLE_COLUMNS = frozenset(
    {"month_day", "title", "reflection", "quote_text", "page_number", "book_name"}
)


def async_database_url(url: str) -> str:
    """Switch plain SQLite/PostgreSQL URLs to their async drivers."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class ReflectionRepository:
    """
    Persistent reflection cache.

    This class manages the database connection and provides the CRUD
    operations the resolver and the bulk import need. Every method
    returns detached StoredReflection snapshots.

    Attributes:
        config: Database configuration
        engine: SQLAlchemy async engine
        session_factory: Async session factory
    """

    table = DailyReflection.__tablename__

    def __init__(self, config: DatabaseConfig) -> None:
        """
        Initialize the repository.

        Args:
            config: Database configuration
        """
        self.config = config
        self.logger = get_logger(__name__)
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._closed = False

    async def initialize(self) -> None:
        """
        Initialize the database connection and create tables.

        Raises:
            DatabaseError: If database initialization fails
        """
        if self._closed:
            raise DatabaseError("Reflection repository has been closed")

        try:
            self.logger.info("Initializing database connection")

            self.engine = create_async_engine(
                async_database_url(self.config.url),
                echo=self.config.echo,
                pool_pre_ping=True,
            )
            self.session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self.logger.info("Database initialization completed")

        except Exception as e:
            self.logger.error("Failed to initialize database", error=str(e))
            raise DatabaseError(
                "Failed to initialize database",
                context={"database_url": self.config.url},
                original_error=e,
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Get a database session with automatic cleanup.

        SQLAlchemy errors raised inside the block are rolled back and
        re-raised as DatabaseError.

        Yields:
            AsyncSession: Database session
        """
        if not self.session_factory:
            raise DatabaseError("Database not initialized")

        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            self.logger.error("Database session error", error=str(e))
            raise DatabaseError("Database operation failed", original_error=e)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if the database is healthy, False otherwise
        """
        try:
            async with self.get_session() as session:
                await session.execute(select(1))
            return True
        except Exception as e:
            self.logger.warning("Database health check failed", error=str(e))
            return False

    def _insert_ignoring_duplicates(self, values: Dict[str, Any]):
        dialect = self.engine.dialect.name if self.engine else "sqlite"
        if dialect == "postgresql":
            statement = postgresql_insert(DailyReflection.__table__)
        elif dialect == "sqlite":
            statement = sqlite_insert(DailyReflection.__table__)
        else:
            raise DatabaseError(
                "Unsupported database dialect for upsert",
                context={"dialect": dialect},
            )
        return statement.values(**values).on_conflict_do_nothing(index_elements=["date_string"])

    async def create(self, reflection: StoredReflection) -> Optional[StoredReflection]:
        """
        Insert a reflection unless one already exists for its date.

        Args:
            reflection: Row to insert; ``created_at`` is set by the database

        Returns:
            The stored row, or None if the date was already cached

        Raises:
            DatabaseError: If the insert fails
        """
        log_function_call("ReflectionRepository.create", date_string=reflection.date_string)
        values = reflection.model_dump(exclude={"created_at"})
        start_time = time.time()

        async with self.get_session() as session:
            result = await session.execute(self._insert_ignoring_duplicates(values))
            await session.commit()
            inserted = result.rowcount == 1

            log_database_operation(
                "INSERT",
                self.table,
                duration_ms=(time.time() - start_time) * 1000,
                rows_affected=result.rowcount,
                date_string=reflection.date_string,
            )

            if not inserted:
                self.logger.debug("Reflection already cached", date_string=reflection.date_string)
                return None

            row = await self._get_row(session, reflection.date_string)
            return StoredReflection.model_validate(row) if row else None

    async def read(self, date_string: str) -> Optional[StoredReflection]:
        """
        Read a cached reflection.

        Args:
            date_string: Display date key, e.g. "14 OCTOBER"

        Returns:
            The cached row, or None on a cache miss
        """
        start_time = time.time()
        async with self.get_session() as session:
            row = await self._get_row(session, date_string)

        log_database_operation(
            "SELECT",
            self.table,
            duration_ms=(time.time() - start_time) * 1000,
            rows_affected=1 if row else 0,
            date_string=date_string,
        )
        return StoredReflection.model_validate(row) if row else None

    async def update(self, date_string: str, /, **changes: Any) -> StoredReflection:
        """
        Overwrite fields of a cached reflection.

        Args:
            date_string: Display date key
            **changes: Column values to set

        Returns:
            The updated row

        Raises:
            ValidationError: If a change names an unknown or key column
            NotFoundError: If no reflection exists for the date
        """
        log_function_call("ReflectionRepository.update", date_string=date_string, columns=sorted(changes))
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValidationError(
                "Cannot update these reflection columns",
                context={"columns": sorted(unknown)},
            )

        async with self.get_session() as session:
            if changes:
                result = await session.execute(
                    update(DailyReflection)
                    .where(DailyReflection.date_string == date_string)
                    .values(**changes)
                )
                await session.commit()
                log_database_operation("UPDATE", self.table, rows_affected=result.rowcount, date_string=date_string)

            row = await self._get_row(session, date_string)
            if row is None:
                raise NotFoundError(
                    "Reflection not found",
                    context={"date_string": date_string},
                )
            await session.refresh(row)
            return StoredReflection.model_validate(row)

    async def delete(self, date_string: str) -> bool:
        """
        Delete a cached reflection.

        Returns:
            True if a row was deleted
        """
        log_function_call("ReflectionRepository.delete", date_string=date_string)
        async with self.get_session() as session:
            result = await session.execute(
                delete(DailyReflection).where(DailyReflection.date_string == date_string)
            )
            await session.commit()
            log_database_operation("DELETE", self.table, rows_affected=result.rowcount, date_string=date_string)
            return result.rowcount > 0

    async def count(self) -> int:
        """Number of cached reflections."""
        async with self.get_session() as session:
            result = await session.execute(select(func.count(DailyReflection.id)))
            return result.scalar() or 0

    @staticmethod
    async def _get_row(session: AsyncSession, date_string: str) -> Optional[DailyReflection]:
        result = await session.execute(
            select(DailyReflection).where(DailyReflection.date_string == date_string)
        )
        return result.scalar_one_or_none()

    async def close(self) -> None:
        """Close the database connection and clean up resources."""
        if not self._closed:
            self.logger.debug("Closing reflection repository")

            if self.engine:
                await self.engine.dispose()

            self._closed = True
            self.logger.debug("Reflection repository closed")
