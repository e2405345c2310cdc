from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from runebox.api import (
    cards_router,
    collections_router,
    decks_router,
    health_router,
    sync_router,
)
from runebox.config import settings
from runebox.services.startup import start_services, stop_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    services = await start_services(settings)
    app.state.services = services
    try:
        yield
    finally:
        await stop_services(services)


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("runebox"),
    lifespan=lifespan,
)

app.include_router(cards_router)
app.include_router(collections_router)
app.include_router(decks_router)
app.include_router(health_router)
app.include_router(sync_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
