import contextlib
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from prospector.main.exceptions import NotReadyException
from prospector.main.logging import get_logger

logger = get_logger(__name__)


class DatabaseSessionManager:
    """Owns the engine of one process. Repositories open a transaction per call."""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    def init(self, url: str, pool_size: int = 20, max_overflow: int = 10) -> None:
        if self._engine is not None:
            return

        self._engine = create_async_engine(
            url, pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True
        )
        self._sessionmaker = async_sessionmaker(
            bind=self._engine, autobegin=False, expire_on_commit=False
        )
        logger.info(
            "Database engine created",
            extra={"pool_size": pool_size, "max_overflow": max_overflow},
        )

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def close(self) -> None:
        if self._engine is None:
            return

        engine, self._engine, self._sessionmaker = self._engine, None, None
        await engine.dispose()
        logger.info("Database engine disposed")

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise NotReadyException("Database is not initialized")

        async with self._sessionmaker() as session:
            yield session

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Commit on exit, roll back if the block raises."""
        async with self.session() as session, session.begin():
            yield session
