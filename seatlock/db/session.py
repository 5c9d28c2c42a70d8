from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from seatlock.config import settings


def make_engine(url: str = None, *, per_run: bool = False, **kwargs) -> AsyncEngine:
    """Async engine for ``url`` (defaults to the configured database).

    ``per_run`` engines hold no pooled connections, for callers that open a
    fresh event loop per job (celery tasks, scripts).
    """
    url = str(url or settings.DATABASE_URL)
    if url.startswith("sqlite"):
        # concurrent writers wait for the file lock instead of failing at once
        kwargs.setdefault("connect_args", {"timeout": 30})
    if per_run:
        kwargs["poolclass"] = NullPool
    return create_async_engine(url, echo=settings.DEBUG, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session = make_session_factory(engine)
