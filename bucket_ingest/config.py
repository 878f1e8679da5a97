"""Configuration models and helpers for the ingestion service."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# Suffixes accepted by each content family, and the CloudFormation resource
# property that carries the ARN of the function handling it.
DEFAULT_SUFFIXES: Dict[str, Tuple[str, ...]] = {
    "csv": (".csv",),
    "pdf": (".pdf",),
    "image": (".jpg", ".jpeg", ".png"),
}

ROUTE_PROPERTY_KEYS: Dict[str, str] = {
    "csv": "CSVProcessorArn",
    "pdf": "PDFProcessorArn",
    "image": "ImageProcessorArn",
}

DEFAULT_CSV_LINE_CAP = 100
DEFAULT_PREVIEW_CHARS = 200


def default_staging_directory() -> str:
    return tempfile.gettempdir()


@dataclass
class StagingConfig:
    """Where local copies of remote objects are written."""

    directory: str = field(default_factory=default_staging_directory)
    chunk_size: int = 1024 * 1024

    @property
    def path(self) -> Path:
        return Path(self.directory)


@dataclass
class HandlerConfig:
    """Content handler selection and its tunables."""

    content_type: str = "csv"
    suffixes: Optional[Tuple[str, ...]] = None
    csv_line_cap: Optional[int] = DEFAULT_CSV_LINE_CAP
    preview_chars: int = DEFAULT_PREVIEW_CHARS

    def accepted_suffixes(self) -> Tuple[str, ...]:
        if self.suffixes:
            return tuple(s.lower() for s in self.suffixes)
        try:
            return DEFAULT_SUFFIXES[self.content_type]
        except KeyError as exc:
            raise ValueError(f"Unknown content type: {self.content_type}") from exc


@dataclass
class AwsConfig:
    region: Optional[str] = None
    endpoint_url: Optional[str] = None  # LocalStack


@dataclass
class AppConfig:
    """Top-level configuration, built once at process start."""

    bucket_name: Optional[str]
    staging: StagingConfig = field(default_factory=StagingConfig)
    handler: HandlerConfig = field(default_factory=HandlerConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        handler_data = dict(data.get("handler", {}))
        if handler_data.get("suffixes") is not None:
            handler_data["suffixes"] = tuple(handler_data["suffixes"])
        return cls(
            bucket_name=data.get("bucket_name"),
            staging=StagingConfig(**data.get("staging", {})),
            handler=HandlerConfig(**handler_data),
            aws=AwsConfig(**data.get("aws", {})),
        )

    @classmethod
    def from_json(cls, path: Path) -> "AppConfig":
        data = json.loads(path.read_text())
        return cls.from_dict(data)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> "AppConfig":
        """Read settings from the process environment.

        A missing ``BUCKET_NAME`` is only logged: every record will then be
        skipped as misrouted, which is visible in the batch summary.
        """
        env = os.environ if environ is None else environ

        bucket_name = env.get("BUCKET_NAME") or None
        if not bucket_name:
            logger.warning(
                "BUCKET_NAME environment variable is not set. This function may not operate correctly."
            )

        line_cap_raw = env.get("CSV_LINE_CAP")
        if line_cap_raw is None or line_cap_raw == "":
            line_cap: Optional[int] = DEFAULT_CSV_LINE_CAP
        elif line_cap_raw.strip().lower() in ("none", "0", "off"):
            line_cap = None
        else:
            line_cap = int(line_cap_raw)

        return cls(
            bucket_name=bucket_name,
            staging=StagingConfig(directory=env.get("TEMP_DIR") or default_staging_directory()),
            handler=HandlerConfig(
                content_type=content_type or env.get("CONTENT_TYPE", "csv"),
                csv_line_cap=line_cap,
            ),
            aws=AwsConfig(
                region=env.get("AWS_REGION"),
                endpoint_url=env.get("S3_ENDPOINT_URL") or None,
            ),
        )


def configure_logging(environ: Optional[Mapping[str, str]] = None) -> None:
    """Set the root log level from ``LOG_LEVEL``.

    The Lambda runtime installs its own root handler, so only the level is
    adjusted there; elsewhere a basic handler is added.
    """
    env = os.environ if environ is None else environ
    level = getattr(logging, env.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    root.setLevel(level)
