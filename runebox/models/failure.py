"""
Failure classification for the catalog sync subsystem.

Every error the sync path can produce is one of four known kinds:

- StorageInitError: the local engine cannot be opened (fatal to data features,
  never to the process)
- MigrationError: a schema transform failed (blocks sync, old schema preserved)
- RemoteFetchError: the hosted catalog could not be read (retried next tick)
- UpsertError: a local write transaction failed (batch rolled back)

Component code raises these; the sync engine and scheduler convert them into
failed results carrying a FailureDetail. They never reach UI callers raw.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of sync failure types."""

    STORAGE_INIT = "storage_init"
    MIGRATION = "migration"
    REMOTE_FETCH = "remote_fetch"
    UPSERT = "upsert"

    # Anything the sync boundary did not anticipate
    UNKNOWN = "unknown"


class FailureDetail(BaseModel):
    """Serializable description of a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="What went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Underlying cause (optional)",
    )


class CatalogSyncError(Exception):
    """
    Base class for known sync failures.

    Subclasses fix the kind; the message describes the failed operation and
    the detail carries the underlying cause when there is one.
    """

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(kind=self.kind, message=self.message, detail=self.detail)


class StorageInitError(CatalogSyncError):
    """The local storage engine could not be opened or initialized."""

    kind = FailureKind.STORAGE_INIT


class MigrationError(CatalogSyncError):
    """A schema migration failed and was rolled back."""

    kind = FailureKind.MIGRATION

    def __init__(
        self,
        version: int,
        name: str,
        detail: str | None = None,
        message: str | None = None,
    ):
        self.version = version
        self.name = name
        super().__init__(message or f"Migration {version} ({name}) failed", detail)


class RemoteFetchError(CatalogSyncError):
    """The remote catalog could not be read."""

    kind = FailureKind.REMOTE_FETCH


class UpsertError(CatalogSyncError):
    """A batch upsert failed and was rolled back."""

    kind = FailureKind.UPSERT


def describe_failure(error: BaseException) -> FailureDetail:
    """Classify any exception caught at a sync boundary."""
    if isinstance(error, CatalogSyncError):
        return error.to_detail()
    return FailureDetail(
        kind=FailureKind.UNKNOWN,
        message=f"Unexpected {type(error).__name__}",
        detail=str(error),
    )
