"""FastAPI dependencies shared by the routers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from runebox.db.store import LocalStore
from runebox.services.startup import Services


def get_services(request: Request) -> Services:
    """The Services bundle the lifespan handler stored on app.state."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are still starting",
        )
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


def get_store(services: ServicesDep) -> LocalStore:
    """The local store, or 503 if it never opened."""
    if not services.store.initialized:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Local card store is not available",
        )
    return services.store


StoreDep = Annotated[LocalStore, Depends(get_store)]


async def get_session(store: StoreDep) -> AsyncGenerator[AsyncSession, None]:
    """A store session committed after the request, rolled back on database errors."""
    async with store.session() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_install_id(services: ServicesDep) -> str:
    """The install id that owns new collections and decks."""
    return await services.identity.get_install_id()


InstallIdDep = Annotated[str, Depends(get_install_id)]
