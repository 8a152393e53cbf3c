from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import AppConfig, Settings, get_config, get_settings
from app.core.database import AsyncSessionLocal, get_db
from app.jobs.utils import build_queue
from app.services.queue import SqlMessageQueue
from app.services.user_store import UserStore

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Config = Annotated[AppConfig, Depends(get_config)]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services that open their own sessions."""
    return AsyncSessionLocal


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_user_store(session_factory: SessionFactory) -> UserStore:
    return UserStore(session_factory)


def get_queue(session_factory: SessionFactory, config: Config) -> SqlMessageQueue:
    return build_queue(session_factory, config)


# Type aliases for service dependencies
Store = Annotated[UserStore, Depends(get_user_store)]
Queue = Annotated[SqlMessageQueue, Depends(get_queue)]
