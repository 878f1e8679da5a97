"""Domain models used throughout the ingestion pipeline and the configurator."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote_plus

from .errors import KeyDecodeError, MalformedRecord

OBJECT_CREATED_EVENTS: Tuple[str, ...] = ("s3:ObjectCreated:*",)

# A '%' that does not start a two-digit hex escape.
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def decode_object_key(raw_key: str) -> str:
    """Percent-decode an S3 event key (``+`` is a space), strictly.

    Raises:
        KeyDecodeError: on a truncated/non-hex escape or escapes that are not UTF-8.
    """
    if raw_key is None:
        raise KeyDecodeError("Object key is missing")
    match = _MALFORMED_ESCAPE.search(raw_key)
    if match:
        raise KeyDecodeError(
            f"Malformed percent-escape at position {match.start()}", key=raw_key
        )
    try:
        return unquote_plus(raw_key, encoding="utf-8", errors="strict")
    except UnicodeDecodeError as exc:
        raise KeyDecodeError(f"Escaped bytes are not valid UTF-8: {exc.reason}", key=raw_key) from exc


@dataclass(frozen=True)
class NotificationRecord:
    """One "object created" notification as delivered by the event source."""

    raw_key: str
    bucket: str
    event_name: str = ""
    # Set when the entry could not be parsed; raw_key then names its position.
    parse_error: Optional[str] = None

    @classmethod
    def from_event_record(cls, record: Mapping[str, Any]) -> "NotificationRecord":
        """Build a record from one entry of an event's ``Records`` list.

        Raises:
            MalformedRecord: if the entry or its ``s3`` parts are not objects,
                or the object key is absent.
        """
        if not isinstance(record, Mapping):
            raise MalformedRecord(f"Record is a {type(record).__name__}, not an object")
        s3 = _section(record, "s3")
        key = _section(s3, "object").get("key")
        if key is None:
            raise MalformedRecord("Record has no object key")
        return cls(
            raw_key=str(key),
            bucket=str(_section(s3, "bucket").get("name") or ""),
            event_name=str(record.get("eventName") or ""),
        )

    @classmethod
    def malformed(cls, position: int, error: MalformedRecord) -> "NotificationRecord":
        return cls(raw_key=f"Records[{position}]", bucket="", parse_error=error.message)

    def decoded_key(self) -> str:
        return decode_object_key(self.raw_key)


def _section(parent: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = parent.get(name) or {}
    if not isinstance(value, Mapping):
        raise MalformedRecord(f"'{name}' is a {type(value).__name__}, not an object")
    return value


def records_from_event(event: Optional[Mapping[str, Any]]) -> List[NotificationRecord]:
    """Parse every entry of ``event["Records"]``.

    Entries that cannot be parsed are kept, in place, as records carrying a
    ``parse_error`` so the pipeline can fail them individually.
    """
    if not event or not isinstance(event, Mapping):
        return []
    entries = event.get("Records") or []
    if not isinstance(entries, (list, tuple)):
        entries = [entries]

    records = []
    for position, entry in enumerate(entries):
        try:
            records.append(NotificationRecord.from_event_record(entry))
        except MalformedRecord as e:
            records.append(NotificationRecord.malformed(position, e))
    return records


@dataclass
class StagedObject:
    """Local copy of a remote object. Only valid until released."""

    bucket: str
    key: str
    local_path: Path
    size_bytes: int = 0

    @property
    def filename(self) -> str:
        return self.local_path.name


@dataclass
class ProcessingReport:
    handler: str
    details: Dict[str, Any] = field(default_factory=dict)


class Classification(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RecordOutcome:
    key: str
    classification: Classification
    error_kind: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def succeeded(cls, key: str) -> "RecordOutcome":
        return cls(key=key, classification=Classification.SUCCEEDED)

    @classmethod
    def skipped(cls, key: str, reason: str) -> "RecordOutcome":
        return cls(key=key, classification=Classification.SKIPPED, detail=reason)

    @classmethod
    def failed(cls, key: Optional[str], error: BaseException) -> "RecordOutcome":
        return cls(
            key=key or "",
            classification=Classification.FAILED,
            error_kind=type(error).__name__,
            detail=str(error),
        )


NO_RECORDS_SUMMARY = "No records to process."
ALL_SUCCEEDED_SUMMARY = "All files processed successfully."


@dataclass
class BatchResult:
    """Ordered per-record outcomes of one invocation."""

    outcomes: List[RecordOutcome] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "BatchResult":
        return cls()

    def add(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)

    def _keys(self, classification: Classification) -> List[str]:
        return [o.key for o in self.outcomes if o.classification is classification]

    @property
    def failed(self) -> List[str]:
        return self._keys(Classification.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._keys(Classification.SKIPPED)

    @property
    def succeeded_count(self) -> int:
        return len(self._keys(Classification.SUCCEEDED))

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def summary(self) -> str:
        if not self.outcomes:
            return NO_RECORDS_SUMMARY

        failed, skipped = self.failed, self.skipped
        if not failed and not skipped:
            return f"Processing Summary: {ALL_SUCCEEDED_SUMMARY}"

        if failed:
            text = f"Processing Summary: Failed to process {len(failed)} file(s): {', '.join(failed)}"
        else:
            text = "Processing Summary: No files failed"
        if skipped:
            text += f". Skipped {len(skipped)} file(s): {', '.join(skipped)}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "total": self.total,
            "succeeded": self.succeeded_count,
            "failed": [
                {"key": o.key, "error": o.error_kind, "detail": o.detail}
                for o in self.outcomes
                if o.classification is Classification.FAILED
            ],
            "skipped": [
                {"key": o.key, "reason": o.detail}
                for o in self.outcomes
                if o.classification is Classification.SKIPPED
            ],
        }


@dataclass(frozen=True)
class RouteSpecification:
    """Which function receives ObjectCreated events for which key suffixes."""

    tag: str
    function_arn: str
    suffixes: Tuple[str, ...]
    events: Tuple[str, ...] = OBJECT_CREATED_EVENTS

    @property
    def is_configured(self) -> bool:
        return bool(self.function_arn and self.function_arn.strip())

    @property
    def statement_id(self) -> str:
        return f"AllowS3Invoke-{self.tag}"


@dataclass
class CustomResourceResponse:
    """Body of the CloudFormation custom resource callback."""

    status: str
    reason: str
    physical_resource_id: str
    stack_id: str = ""
    request_id: str = ""
    logical_resource_id: str = ""

    def to_payload(self) -> Dict[str, str]:
        return {
            "Status": self.status,
            "Reason": self.reason,
            "PhysicalResourceId": self.physical_resource_id,
            "StackId": self.stack_id,
            "RequestId": self.request_id,
            "LogicalResourceId": self.logical_resource_id,
        }
