"""CloudFormation custom resource completion callback."""

from __future__ import annotations

import json
import logging
from typing import Optional

import requests

from .models import CustomResourceResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


def send_response(
    response_url: str,
    response: CustomResourceResponse,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> bool:
    """PUT the response document to the pre-signed ``response_url``.

    Delivery is attempted once. Failures are logged and reported through the
    return value only.
    """
    if not response_url:
        logger.error("Failed to send response to CloudFormation: no ResponseURL in request")
        return False

    body = json.dumps(response.to_payload())
    # The pre-signed URL is signed for an empty content type.
    headers = {"Content-Type": "", "Content-Length": str(len(body.encode("utf-8")))}
    http = session or requests
    try:
        reply = http.put(response_url, data=body.encode("utf-8"), headers=headers, timeout=timeout)
        reply.raise_for_status()
    except requests.RequestException as e:
        logger.error("Failed to send response to CloudFormation: %s", e)
        return False

    logger.info("CloudFormation response sent: %s", response.status)
    return True
