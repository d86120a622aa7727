import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings
from .errors import StoreError
from .models import Base

logger = logging.getLogger(__name__)


class DatabaseSessionManager:
    """Owns the async engine and hands out one session per request"""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        **engine_options,
    ):
        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=3600,
                connect_args={"server_settings": {"application_name": "taskboard"}},
            )
        engine_kwargs.update(engine_options)
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that rolls back whatever is pending if the caller raises"""
        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self, retries: int = 3, retry_delay: float = 5.0) -> None:
        for attempt in range(retries):
            try:
                logger.info(f"Database connection attempt {attempt + 1}/{retries}")
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                logger.info("Database tables created successfully")
                return
            except (SQLAlchemyError, OSError) as e:
                logger.warning(f"Database connection attempt {attempt + 1} failed: {e}")
                if attempt < retries - 1:
                    logger.info(f"Retrying in {retry_delay} seconds...")
                    await asyncio.sleep(retry_delay)
                else:
                    logger.error("All database connection attempts failed")
                    raise

    async def health_check(self) -> bool:
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


# Set up by the app lifespan
db_manager: Optional[DatabaseSessionManager] = None


async def init_db(settings: Settings) -> DatabaseSessionManager:
    """Create the engine and make sure all tables exist"""
    global db_manager
    db_manager = DatabaseSessionManager(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    await db_manager.create_tables(
        retries=settings.database_init_retries,
        retry_delay=settings.database_retry_delay,
    )
    return db_manager


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Session from the app-wide manager; StoreError when there is none"""
    if not db_manager:
        raise StoreError("session", "Database not available")
    async with db_manager.session() as session:
        yield session


async def close_db() -> None:
    """Close database connections"""
    global db_manager
    if db_manager:
        await db_manager.dispose()
        db_manager = None
        logger.info("Database connections closed")
