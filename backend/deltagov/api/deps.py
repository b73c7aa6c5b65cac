"""
FastAPI dependency providers.

Services are built per request from the request's DB session and the
process-wide objects stored on ``app.state`` by ``create_app``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltagov.config.settings import Settings
from deltagov.services.bills.service import BillService
from deltagov.services.diff.cache import DeltaCache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


async def get_db(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session bound to the app's session factory.

    Commits on success, rolls back on exception.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_delta_cache(request: Request) -> DeltaCache:
    return request.app.state.delta_cache


def get_bill_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[DeltaCache, Depends(get_delta_cache)],
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> BillService:
    return BillService(
        db,
        cache=cache,
        session_factory=factory,
        version_labels=settings.version_code_labels,
    )


DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Bills = Annotated[BillService, Depends(get_bill_service)]
