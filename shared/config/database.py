from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from shared.config import settings
from shared.errors import StorageError

engine = create_async_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def commit_or_raise(db, **context):
    """Commit the unit of work, surfacing driver failures as StorageError."""
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError("Could not save changes. Please try again.", **context) from exc


async def execute_or_raise(db, statement, **context):
    """Run a write statement, surfacing driver failures (lock timeouts included) as StorageError."""
    try:
        return await db.execute(statement)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError("Could not save changes. Please try again.", **context) from exc
