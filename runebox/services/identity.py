"""
Per-install identity.

A durable identifier created on first access and kept in the local store's
meta table. Format: <millisecond timestamp>-<random base36>, e.g.
1702876543210-a3f9d2e1b8c4. Uniqueness is best-effort; it is not a secret.
"""

import logging
import random
import string
import time

from sqlalchemy.exc import SQLAlchemyError

from runebox.db.store import LocalStore
from runebox.models.failure import CatalogSyncError

logger = logging.getLogger(__name__)

INSTALL_ID_KEY = "@runebox_user_id"

_BASE36 = string.digits + string.ascii_lowercase


def generate_install_id(now_ms: int | None = None, random_length: int = 22) -> str:
    """Build a new '<ms>-<random>' identifier."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=random_length))
    return f"{now_ms}-{suffix}"


class IdentityProvider:
    """Reads, creates and resets the install id."""

    def __init__(self, store: LocalStore, key: str = INSTALL_ID_KEY):
        self.store = store
        self.key = key

    async def get_install_id(self) -> str:
        """
        Return the persisted install id, creating it on first access.

        If the store cannot be read or written, a fresh unpersisted id is
        returned so callers can still tag their work.
        """
        try:
            existing = await self.store.get_meta(self.key)
            if existing:
                return existing

            install_id = generate_install_id()
            await self.store.set_meta(self.key, install_id)
            logger.info("Created install id %s", install_id)
            return install_id
        except (CatalogSyncError, SQLAlchemyError) as e:
            logger.error("Could not load install id, using a temporary one: %s", e)
            return generate_install_id()

    async def reset_install_id(self) -> str:
        """Replace the install id with a new one."""
        install_id = generate_install_id()
        await self.store.set_meta(self.key, install_id)
        return install_id

    async def clear_install_id(self) -> None:
        """Forget the install id; the next access creates a new one."""
        await self.store.delete_meta(self.key)
