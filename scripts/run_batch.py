"""CLI entrypoint to run the batch pipeline locally on a saved S3 event."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bucket_ingest.config import AppConfig, DEFAULT_SUFFIXES
from bucket_ingest.models import records_from_event
from bucket_ingest.pipeline import BatchIngestionPipeline
from bucket_ingest.storage import ObjectStager, build_object_source


def load_env_file(env_path: str = ".env") -> int:
    """Copy ``KEY=value`` lines from an env file into ``os.environ``.

    Relative paths resolve against the repository root. Variables already set
    in the environment win. ``export`` prefixes and surrounding quotes are
    accepted so the same file can be sourced by a shell.
    """
    env_file = Path(env_path)
    if not env_file.is_absolute():
        env_file = ROOT / env_file
    if not env_file.is_file():
        logging.debug("No env file at %s", env_file)
        return 0

    loaded = 0
    for raw in env_file.read_text().splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        name, value = (part.strip() for part in line.split("=", 1))
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if name and name not in os.environ:
            os.environ[name] = value
            loaded += 1
    logging.info("Loaded %d variable(s) from %s", loaded, env_file)
    return loaded


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the ingestion pipeline on an S3 event file")
    parser.add_argument("event", type=Path, help="JSON file holding an S3 event ({\"Records\": [...]})")
    parser.add_argument(
        "--content-type",
        choices=sorted(DEFAULT_SUFFIXES),
        help="Content handler to use (default: CONTENT_TYPE or csv)",
    )
    parser.add_argument("--bucket", help="Target bucket (default: BUCKET_NAME)")
    parser.add_argument("--staging-dir", help="Staging directory (default: TEMP_DIR or system temp)")
    parser.add_argument(
        "--source-root",
        type=Path,
        help="Read objects from <source-root>/<bucket>/<key> instead of S3",
    )
    parser.add_argument("--sweep", action="store_true", help="Empty the staging directory before running")
    parser.add_argument("--json", action="store_true", help="Print the structured result instead of the summary")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Verbosity for logging output",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    return parser.parse_args(argv)


def build_pipeline(args: argparse.Namespace) -> BatchIngestionPipeline:
    config = AppConfig.from_env(content_type=args.content_type)
    if args.bucket:
        config.bucket_name = args.bucket
    if args.staging_dir:
        config.staging.directory = args.staging_dir

    source = build_object_source(config.staging, config.aws, source_root=args.source_root)

    if args.sweep:
        removed = ObjectStager(source, config.staging).sweep()
        logging.info("Removed %d stale file(s) from %s", removed, config.staging.directory)

    return BatchIngestionPipeline.from_config(config, source=source)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    load_env_file(args.env_file)

    if not args.event.exists():
        raise FileNotFoundError(f"Event file not found: {args.event}")
    event = json.loads(args.event.read_text())

    pipeline = build_pipeline(args)
    result = pipeline.handle_batch(records_from_event(event))
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.summary())
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
