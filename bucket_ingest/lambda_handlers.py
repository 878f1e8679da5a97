"""AWS Lambda entrypoints.

Configuration and clients are built on the first invocation of each
container and reused afterwards.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from .config import AppConfig, configure_logging
from .notifications import NotificationRouterConfigurator
from .pipeline import BatchIngestionPipeline
from .storage import build_lambda_client, build_s3_client

logger = logging.getLogger(__name__)

configure_logging()


@lru_cache(maxsize=None)
def get_pipeline(content_type: Optional[str] = None) -> BatchIngestionPipeline:
    return BatchIngestionPipeline.from_config(AppConfig.from_env(content_type=content_type))


@lru_cache(maxsize=None)
def get_configurator() -> NotificationRouterConfigurator:
    aws = AppConfig.from_env().aws
    return NotificationRouterConfigurator(build_s3_client(aws), build_lambda_client(aws))


def _request_id(context: Any) -> Optional[str]:
    return getattr(context, "aws_request_id", None)


def handler(event: Dict[str, Any], context: Any) -> str:
    """Generic entrypoint; the content family comes from ``CONTENT_TYPE``."""
    return get_pipeline().handle_event(event, _request_id(context))


def csv_handler(event: Dict[str, Any], context: Any) -> str:
    return get_pipeline("csv").handle_event(event, _request_id(context))


def image_handler(event: Dict[str, Any], context: Any) -> str:
    return get_pipeline("image").handle_event(event, _request_id(context))


def pdf_handler(event: Dict[str, Any], context: Any) -> str:
    return get_pipeline("pdf").handle_event(event, _request_id(context))


def notification_configurator_handler(event: Dict[str, Any], context: Any) -> None:
    remaining_ms = None
    if context is not None and hasattr(context, "get_remaining_time_in_millis"):
        remaining_ms = context.get_remaining_time_in_millis()
    get_configurator().handle_request(event, remaining_ms)
