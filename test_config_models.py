"""Tests for configuration loading, key decoding and batch summaries."""

import json
import tempfile

import pytest

from bucket_ingest.config import AppConfig, HandlerConfig
from bucket_ingest.errors import KeyDecodeError
from bucket_ingest.models import (
    BatchResult,
    NotificationRecord,
    RecordOutcome,
    decode_object_key,
    records_from_event,
)


@pytest.mark.parametrize(
    "raw, decoded",
    [
        ("Data%20File.CSV", "Data File.CSV"),
        ("reports/q1+sales.csv", "reports/q1 sales.csv"),
        ("caf%C3%A9.csv", "café.csv"),
        ("100%25.csv", "100%.csv"),
        ("plain.csv", "plain.csv"),
    ],
)
def test_decode_object_key(raw, decoded):
    assert decode_object_key(raw) == decoded


@pytest.mark.parametrize("raw", ["50%off.csv", "trailing%", "half%2", "%C3.csv", "%FF%FE.csv"])
def test_decode_object_key_rejects_bad_escapes(raw):
    with pytest.raises(KeyDecodeError) as excinfo:
        decode_object_key(raw)
    assert excinfo.value.key == raw


def test_records_from_event_handles_missing_pieces():
    assert records_from_event(None) == []
    assert records_from_event({}) == []
    assert records_from_event({"Records": None}) == []

    record = records_from_event({"Records": [{"s3": {"object": {"key": "a.csv"}}}]})[0]
    assert record == NotificationRecord(raw_key="a.csv", bucket="", event_name="")


def test_summary_all_succeeded():
    result = BatchResult([RecordOutcome.succeeded("a.csv"), RecordOutcome.succeeded("b.csv")])

    assert result.summary() == "Processing Summary: All files processed successfully."


def test_summary_failed_then_skipped():
    result = BatchResult(
        [
            RecordOutcome.failed("a.csv", RuntimeError("x")),
            RecordOutcome.skipped("b.png", "unsupported suffix"),
            RecordOutcome.failed("c.csv", RuntimeError("y")),
            RecordOutcome.succeeded("d.csv"),
        ]
    )

    assert result.summary() == (
        "Processing Summary: Failed to process 2 file(s): a.csv, c.csv. Skipped 1 file(s): b.png"
    )
    assert result.to_dict()["failed"][0] == {"key": "a.csv", "error": "RuntimeError", "detail": "x"}
    assert result.succeeded_count == 1


def test_summary_only_skipped():
    result = BatchResult([RecordOutcome.skipped("b.png", "unsupported suffix")])

    assert result.summary() == "Processing Summary: No files failed. Skipped 1 file(s): b.png"


def test_from_env_reads_settings():
    config = AppConfig.from_env(
        {
            "BUCKET_NAME": "uploads",
            "TEMP_DIR": "/var/stage",
            "CONTENT_TYPE": "pdf",
            "CSV_LINE_CAP": "none",
            "AWS_REGION": "eu-west-1",
            "S3_ENDPOINT_URL": "http://localhost:4566",
        }
    )

    assert config.bucket_name == "uploads"
    assert config.staging.directory == "/var/stage"
    assert config.handler.content_type == "pdf"
    assert config.handler.csv_line_cap is None
    assert config.aws.region == "eu-west-1"
    assert config.aws.endpoint_url == "http://localhost:4566"


def test_from_env_defaults_and_missing_bucket_warning(caplog):
    with caplog.at_level("WARNING"):
        config = AppConfig.from_env({}, content_type="image")

    assert config.bucket_name is None
    assert "BUCKET_NAME" in caplog.text
    assert config.staging.directory == tempfile.gettempdir()
    assert config.handler.content_type == "image"
    assert config.handler.csv_line_cap == 100


def test_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "bucket_name": "uploads",
                "staging": {"directory": str(tmp_path)},
                "handler": {"content_type": "csv", "suffixes": [".csv", ".txt"], "csv_line_cap": 10},
            }
        )
    )

    config = AppConfig.from_json(path)

    assert config.handler.accepted_suffixes() == (".csv", ".txt")
    assert config.staging.path == tmp_path


def test_unknown_content_type_has_no_suffixes():
    with pytest.raises(ValueError):
        HandlerConfig(content_type="video").accepted_suffixes()


def test_records_from_event_keeps_unparseable_entries_in_place():
    records = records_from_event({"Records": [7, {"s3": {"object": {"key": 5}}}, {"s3": {"object": ["k"]}}]})

    assert [r.raw_key for r in records] == ["Records[0]", "5", "Records[2]"]
    assert "int" in records[0].parse_error
    assert records[1].parse_error is None
    assert "'object'" in records[2].parse_error
