"""Batch ingestion pipeline shared by every content handler."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Mapping, Optional

from .config import AppConfig
from .errors import ContentError, KeyDecodeError, MalformedRecord, StagingError
from .handlers import build_content_handler
from .interfaces import ContentHandler, ObjectSource
from .models import BatchResult, NotificationRecord, RecordOutcome, records_from_event
from .storage import ObjectStager, build_object_source

logger = logging.getLogger(__name__)


class BatchIngestionPipeline:
    """Classifies every record of a notification batch as succeeded, skipped or failed.

    Records are processed one at a time, in arrival order. A failing record
    never stops the batch, and a staged copy is always released before the
    next record starts.
    """

    def __init__(
        self,
        bucket_name: Optional[str],
        handler: ContentHandler,
        stager: ObjectStager,
    ) -> None:
        self._bucket_name = bucket_name
        self._handler = handler
        self._stager = stager
        self._suffixes = tuple(s.lower() for s in handler.suffixes)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        source: Optional[ObjectSource] = None,
    ) -> "BatchIngestionPipeline":
        source = source or build_object_source(config.staging, config.aws)
        handler = build_content_handler(config.handler)
        logger.info(
            "%s pipeline initialized. Target bucket: %s",
            handler.name,
            config.bucket_name,
        )
        return cls(config.bucket_name, handler, ObjectStager(source, config.staging))

    @property
    def handler(self) -> ContentHandler:
        return self._handler

    def handle_event(self, event: Optional[Mapping[str, Any]], request_id: Optional[str] = None) -> str:
        logger.info("Received S3 event for %s processing. Request ID: %s", self._handler.name, request_id)
        started = time.monotonic()
        records = records_from_event(event)
        if not records:
            logger.warning("No records found in the S3 event. Exiting.")
        result = self.handle_batch(records)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("%s processing completed. Total time: %d ms", self._handler.name, elapsed_ms)
        return result.summary()

    def handle_batch(self, records: Optional[Iterable[NotificationRecord]]) -> BatchResult:
        result = BatchResult()
        for record in records or ():
            result.add(self._handle_record(record))
        if result.failed:
            logger.warning("%d of %d record(s) failed", len(result.failed), result.total)
        return result

    def _handle_record(self, record: NotificationRecord) -> RecordOutcome:
        key: Optional[str] = None
        try:
            if record.parse_error is not None:
                logger.error("Cannot parse %s: %s", record.raw_key, record.parse_error)
                return RecordOutcome.failed(record.raw_key, MalformedRecord(record.parse_error))

            try:
                key = record.decoded_key()
            except KeyDecodeError as e:
                logger.error("Cannot decode key %r: %s", record.raw_key, e)
                return RecordOutcome.failed(record.raw_key, e)

            logger.info(
                "Processing record for S3 object: s3://%s/%s (decoded: %s)",
                record.bucket,
                record.raw_key,
                key,
            )

            if record.bucket != self._bucket_name:
                logger.warning(
                    "Event for bucket '%s' but expected '%s'. Skipping file: %s",
                    record.bucket,
                    self._bucket_name,
                    key,
                )
                return RecordOutcome.skipped(key, "bucket mismatch")

            if not key.lower().endswith(self._suffixes):
                logger.warning("Skipped %s: suffix not in %s", key, ", ".join(self._suffixes))
                return RecordOutcome.skipped(key, "unsupported suffix")

            return self._stage_and_process(record.bucket, key)
        except Exception as e:
            identifier = key if key is not None else record.raw_key
            logger.exception("Unhandled exception for raw key %s", record.raw_key)
            return RecordOutcome.failed(identifier, e)

    def _stage_and_process(self, bucket: str, key: str) -> RecordOutcome:
        try:
            with self._stager.staged(bucket, key) as staged:
                logger.debug("Files present in staging: %s", self._stager.list_staged())
                report = self._handler.process(staged)
        except StagingError as e:
            logger.error("Could not stage s3://%s/%s: %s", bucket, key, e)
            return RecordOutcome.failed(key, e)
        except ContentError as e:
            logger.error("%s handler failed for %s: %s", self._handler.name, key, e)
            return RecordOutcome.failed(key, e)

        logger.info("Processed %s: %s", key, report.details)
        return RecordOutcome.succeeded(key)
