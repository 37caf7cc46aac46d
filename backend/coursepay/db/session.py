"""Async engine and session factories for the settlement store.

Engines are cached per database URL so tests can point the app at a
temporary SQLite file and dispose it between runs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from coursepay.core.config import get_settings

_factories: dict[str, tuple[AsyncEngine, async_sessionmaker[AsyncSession]]] = {}


def _url_or_default(database_url: str | None) -> str:
    return database_url or get_settings().database_url


def _create_engine(url: str) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(url)
    return create_async_engine(url, pool_pre_ping=True)


def get_sessionmaker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to ``database_url`` (or the configured one)."""
    url = _url_or_default(database_url)
    if url not in _factories:
        engine = _create_engine(url)
        # objects stay readable after commit; callers re-read with populate_existing
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _factories[url] = (engine, factory)
    return _factories[url][1]


async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker()() as session:
        yield session


@asynccontextmanager
async def session_scope(database_url: str | None = None) -> AsyncIterator[AsyncSession]:
    """Session context for scripts running outside a request."""
    async with get_sessionmaker(database_url)() as session:
        yield session


async def dispose_engine(database_url: str | None = None) -> None:
    """Close the pooled connections for ``database_url`` and forget its factory."""
    cached = _factories.pop(_url_or_default(database_url), None)
    if cached is not None:
        engine, _ = cached
        await engine.dispose()
