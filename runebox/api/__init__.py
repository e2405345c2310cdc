from runebox.api.cards import router as cards_router
from runebox.api.health import router as health_router
from runebox.api.library import collections_router, decks_router
from runebox.api.sync import router as sync_router

__all__ = [
    "cards_router",
    "collections_router",
    "decks_router",
    "health_router",
    "sync_router",
]
