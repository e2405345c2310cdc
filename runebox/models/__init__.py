from runebox.models.card import Card, CardSet
from runebox.models.failure import (
    CatalogSyncError,
    FailureDetail,
    FailureKind,
    MigrationError,
    RemoteFetchError,
    StorageInitError,
    UpsertError,
    describe_failure,
)
from runebox.models.library import (
    CardCollection,
    CollectionColor,
    CollectionIcon,
    Deck,
    LibraryEntry,
)
from runebox.models.sync import SyncMode, SyncResult, SyncStatus

__all__ = [
    "Card",
    "CardCollection",
    "CardSet",
    "CatalogSyncError",
    "CollectionColor",
    "CollectionIcon",
    "Deck",
    "FailureDetail",
    "FailureKind",
    "LibraryEntry",
    "MigrationError",
    "RemoteFetchError",
    "StorageInitError",
    "SyncMode",
    "SyncResult",
    "SyncStatus",
    "UpsertError",
    "describe_failure",
]
