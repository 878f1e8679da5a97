"""Tests for the batch ingestion pipeline."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from bucket_ingest.config import AppConfig, HandlerConfig, StagingConfig
from bucket_ingest.errors import ProcessingError, StorageBackendError
from bucket_ingest.interfaces import ContentHandler, ObjectSource
from bucket_ingest.models import (
    Classification,
    NotificationRecord,
    ProcessingReport,
    records_from_event,
)
from bucket_ingest.pipeline import BatchIngestionPipeline
from bucket_ingest.storage import LocalDirectoryObjectSource, ObjectStager

BUCKET = "uploads"


class RecordingHandler(ContentHandler):
    """Remembers which staged files it saw and whether they existed at the time."""

    name = "recording"

    def __init__(self, suffixes=(".csv",), error=None):
        self.suffixes = suffixes
        self.error = error
        self.seen = []

    def process(self, staged):
        self.seen.append((staged.key, staged.local_path, staged.local_path.exists()))
        if self.error is not None:
            raise self.error
        return ProcessingReport(handler=self.name)


def make_pipeline(tmp_path: Path, handler: ContentHandler, source: ObjectSource = None):
    source = source or LocalDirectoryObjectSource(tmp_path / "remote")
    stager = ObjectStager(source, StagingConfig(directory=str(tmp_path / "staging")))
    return BatchIngestionPipeline(BUCKET, handler, stager)


def put_remote(tmp_path: Path, key: str, content: bytes = b"a,b\n1,2\n", bucket: str = BUCKET) -> Path:
    path = tmp_path / "remote" / bucket / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def record(key, bucket=BUCKET):
    return NotificationRecord(raw_key=key, bucket=bucket, event_name="ObjectCreated:Put")


def test_empty_batch_is_a_no_op(tmp_path):
    """An empty or absent batch yields the fixed summary and no failures."""
    pipeline = make_pipeline(tmp_path, RecordingHandler())

    for batch in ([], None):
        result = pipeline.handle_batch(batch)
        assert result.total == 0
        assert result.failed == []
        assert result.summary() == "No records to process."

    assert pipeline.handle_event({"Records": []}) == "No records to process."
    assert pipeline.handle_event(None) == "No records to process."


def test_percent_encoded_key_is_decoded_staged_and_released(tmp_path):
    """'Data%20File.CSV' decodes to 'Data File.CSV' and matches '.csv' case-insensitively."""
    put_remote(tmp_path, "Data File.CSV")
    handler = RecordingHandler()
    pipeline = make_pipeline(tmp_path, handler)

    result = pipeline.handle_batch([record("Data%20File.CSV")])

    assert result.outcomes[0].classification is Classification.SUCCEEDED
    assert result.outcomes[0].key == "Data File.CSV"
    key, local_path, existed = handler.seen[0]
    assert key == "Data File.CSV"
    assert existed
    assert not local_path.exists()
    assert result.summary() == "Processing Summary: All files processed successfully."


def test_plus_in_key_decodes_to_space(tmp_path):
    put_remote(tmp_path, "reports/q1 sales.csv")
    pipeline = make_pipeline(tmp_path, RecordingHandler())

    result = pipeline.handle_batch([record("reports/q1+sales.csv")])

    assert result.outcomes[0].classification is Classification.SUCCEEDED
    assert result.outcomes[0].key == "reports/q1 sales.csv"


def test_bucket_mismatch_is_skipped_and_never_staged(tmp_path):
    source = MagicMock(spec=ObjectSource)
    pipeline = make_pipeline(tmp_path, RecordingHandler(), source=source)

    result = pipeline.handle_batch([record("data.csv", bucket="someone-elses-bucket")])

    assert result.skipped == ["data.csv"]
    source.fetch.assert_not_called()


def test_unsupported_suffix_is_skipped(tmp_path):
    source = MagicMock(spec=ObjectSource)
    handler = RecordingHandler()
    pipeline = make_pipeline(tmp_path, handler, source=source)

    result = pipeline.handle_batch([record("photo.png"), record("notes.csv.bak")])

    assert result.skipped == ["photo.png", "notes.csv.bak"]
    assert handler.seen == []
    source.fetch.assert_not_called()


def test_decode_failure_reports_raw_key(tmp_path):
    """A malformed escape or non-UTF-8 escape fails the record under its raw key."""
    put_remote(tmp_path, "ok.csv")
    pipeline = make_pipeline(tmp_path, RecordingHandler())

    result = pipeline.handle_batch([record("bad%zzname.csv"), record("%FF.csv"), record("ok.csv")])

    assert result.failed == ["bad%zzname.csv", "%FF.csv"]
    assert result.outcomes[0].error_kind == "KeyDecodeError"
    assert result.outcomes[2].classification is Classification.SUCCEEDED


def test_missing_remote_object_fails_without_aborting_batch(tmp_path):
    put_remote(tmp_path, "second.csv")
    pipeline = make_pipeline(tmp_path, RecordingHandler())

    result = pipeline.handle_batch([record("first.csv"), record("second.csv")])

    assert result.failed == ["first.csv"]
    assert result.outcomes[0].error_kind == "ObjectNotFound"
    assert result.succeeded_count == 1


def test_backend_error_is_recorded_with_its_kind(tmp_path):
    source = MagicMock(spec=ObjectSource)
    source.fetch.side_effect = StorageBackendError("Access Denied", bucket=BUCKET, key="x.csv", error_code="AccessDenied")
    pipeline = make_pipeline(tmp_path, RecordingHandler(), source=source)

    result = pipeline.handle_batch([record("x.csv")])

    assert result.outcomes[0].classification is Classification.FAILED
    assert result.outcomes[0].error_kind == "StorageBackendError"
    assert "AccessDenied" in result.outcomes[0].detail


@pytest.mark.parametrize("error", [ProcessingError("bad rows"), RuntimeError("boom")])
def test_handler_failure_still_releases_staged_copy(tmp_path, error):
    """Both content errors and unexpected errors fail the record, and the copy is deleted."""
    put_remote(tmp_path, "a.csv")
    put_remote(tmp_path, "b.csv")
    handler = RecordingHandler(error=error)
    pipeline = make_pipeline(tmp_path, handler)

    result = pipeline.handle_batch([record("a.csv"), record("b.csv")])

    assert result.failed == ["a.csv", "b.csv"]
    assert len(handler.seen) == 2
    for _, local_path, existed in handler.seen:
        assert existed
        assert not local_path.exists()
    assert list((tmp_path / "staging").iterdir()) == []


def test_counts_always_add_up(tmp_path):
    put_remote(tmp_path, "good.csv")
    pipeline = make_pipeline(tmp_path, RecordingHandler())
    records = [
        record("good.csv"),
        record("missing.csv"),
        record("image.png"),
        record("good.csv", bucket="other"),
        record("%E0%A4%A.csv"),
    ]

    result = pipeline.handle_batch(records)

    assert len(result.failed) + len(result.skipped) + result.succeeded_count == len(records)
    assert result.summary() == (
        "Processing Summary: Failed to process 2 file(s): missing.csv, %E0%A4%A.csv"
        ". Skipped 2 file(s): image.png, good.csv"
    )


def test_same_trailing_segment_in_one_batch(tmp_path):
    """Two keys sharing a file name reuse the same local path one after the other."""
    put_remote(tmp_path, "2024/data.csv", b"x\n")
    put_remote(tmp_path, "2025/data.csv", b"y\n")
    handler = RecordingHandler()
    pipeline = make_pipeline(tmp_path, handler)

    result = pipeline.handle_batch([record("2024/data.csv"), record("2025/data.csv")])

    assert result.succeeded_count == 2
    assert handler.seen[0][1] == handler.seen[1][1]


def test_missing_target_bucket_skips_everything(tmp_path):
    stager = ObjectStager(MagicMock(spec=ObjectSource), StagingConfig(directory=str(tmp_path)))
    pipeline = BatchIngestionPipeline(None, RecordingHandler(), stager)

    result = pipeline.handle_batch([record("a.csv")])

    assert result.skipped == ["a.csv"]


def test_handle_event_parses_s3_event_and_uses_real_csv_handler(tmp_path):
    put_remote(tmp_path, "in/Report.csv", "".join(f"{i},x\n" for i in range(101)).encode())
    config = AppConfig(
        bucket_name=BUCKET,
        staging=StagingConfig(directory=str(tmp_path / "staging")),
        handler=HandlerConfig(content_type="csv"),
    )
    pipeline = BatchIngestionPipeline.from_config(config, source=LocalDirectoryObjectSource(tmp_path / "remote"))
    event = {
        "Records": [
            {
                "eventName": "ObjectCreated:Put",
                "s3": {"bucket": {"name": BUCKET}, "object": {"key": "in/Report.csv"}},
            }
        ]
    }

    assert records_from_event(event)[0].event_name == "ObjectCreated:Put"
    assert pipeline.handle_event(event, request_id="req-1") == (
        "Processing Summary: All files processed successfully."
    )
    assert not (tmp_path / "staging" / "Report.csv").exists()


def test_record_without_key_fails_by_position(tmp_path):
    pipeline = make_pipeline(tmp_path, RecordingHandler())

    summary = pipeline.handle_event({"Records": [{"eventName": "ObjectCreated:Put"}]})

    assert summary == "Processing Summary: Failed to process 1 file(s): Records[0]"


def test_null_key_fails_without_crashing_the_batch(tmp_path):
    put_remote(tmp_path, "a.csv")
    pipeline = make_pipeline(tmp_path, RecordingHandler())
    event = {
        "Records": [
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": None}}},
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": "a.csv"}}},
        ]
    }

    result = pipeline.handle_batch(records_from_event(event))

    assert result.failed == ["Records[0]"]
    assert result.outcomes[0].error_kind == "MalformedRecord"
    assert result.outcomes[1].classification is Classification.SUCCEEDED
    assert result.summary() == "Processing Summary: Failed to process 1 file(s): Records[0]"


def test_unparseable_entries_do_not_stop_later_records(tmp_path):
    put_remote(tmp_path, "a.csv")
    handler = RecordingHandler()
    pipeline = make_pipeline(tmp_path, handler)
    event = {
        "Records": [
            "garbage",
            {"s3": "x"},
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": "a.csv"}}},
        ]
    }

    result = pipeline.handle_batch(records_from_event(event))

    assert result.failed == ["Records[0]", "Records[1]"]
    assert result.succeeded_count == 1
    assert [seen[0] for seen in handler.seen] == ["a.csv"]


def test_unexpected_fetch_error_leaves_staging_empty(tmp_path):
    class CrashingSource(ObjectSource):
        def fetch(self, bucket, key, destination):
            destination.write_bytes(b"partial")
            raise RuntimeError("socket closed")

    pipeline = make_pipeline(tmp_path, RecordingHandler(), source=CrashingSource())

    result = pipeline.handle_batch([record("a.csv")])

    assert result.failed == ["a.csv"]
    assert result.outcomes[0].error_kind == "RuntimeError"
    assert list((tmp_path / "staging").iterdir()) == []
