from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from optimeal.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    # Асинхронный движок
    return create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Фабрика сессий
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
