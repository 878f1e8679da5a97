"""Exception types raised across the ingestion pipeline and the notification configurator."""

from __future__ import annotations

from typing import Optional


class BucketIngestError(Exception):
    """Base exception for this package.

    Attributes:
        message: Human-readable error message.
        bucket: Bucket associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class KeyDecodeError(BucketIngestError):
    """Raised when a notification's object key is not valid percent-encoding."""


class MalformedRecord(BucketIngestError):
    """A notification record is not shaped like an S3 event record."""


class StagingError(BucketIngestError):
    """Raised when a local copy of a remote object cannot be produced."""


class ObjectNotFound(StagingError):
    """The remote object does not exist (deleted, or never written)."""


class StorageBackendError(StagingError):
    """Any other error reported by the storage backend.

    Covers access denied, throttling and service faults. ``error_code`` and
    ``request_id`` are copied from the backend response when present.
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        error_code: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
        self.error_code = error_code
        self.request_id = request_id

    def __str__(self) -> str:
        text = super().__str__()
        if self.error_code:
            text += f" code={self.error_code}"
        if self.request_id:
            text += f" request_id={self.request_id}"
        return text


class LocalIOError(StagingError):
    """Writing the local copy to the staging directory failed."""


class ContentError(BucketIngestError):
    """Base class for failures raised by content handlers."""


class UnsupportedContent(ContentError):
    """The payload cannot be parsed as the type the handler expects."""


class ProcessingError(ContentError):
    """Any other content-specific processing failure."""


class PermissionGrantConflict(BucketIngestError):
    """An invoke permission with the same statement id already exists. Non-fatal."""

    def __init__(self, statement_id: str, function_arn: str) -> None:
        super().__init__(f"Permission {statement_id} already exists for {function_arn}")
        self.statement_id = statement_id
        self.function_arn = function_arn


class ConfigurationInstallError(BucketIngestError):
    """Installing the bucket notification configuration failed. Non-fatal."""
