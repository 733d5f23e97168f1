import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from quizcraft.core.config import settings
from quizcraft.core.errors import PersistenceError

logger = logging.getLogger(__name__)

engine = create_async_engine(settings.ASYNC_DATABASE_URL, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def get_db():
    """Yield a database session for one request."""
    async with AsyncSessionLocal() as session:
        yield session

async def commit(db: AsyncSession, message: str) -> None:
    """Commit, or roll back and raise PersistenceError with ``message``."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"{message}: {str(e)}")
        raise PersistenceError(message) from e
