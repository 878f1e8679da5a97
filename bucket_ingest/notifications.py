"""Bucket notification routing and invoke permissions for the content handlers.

Runs as a CloudFormation custom resource. For each configured handler it
grants S3 permission to invoke the function, then installs one suffix filter
per accepted suffix on the bucket, all in a single
``put_bucket_notification_configuration`` call. The outcome is always
reported back to CloudFormation as SUCCESS; problems only change the reason.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from botocore.exceptions import BotoCoreError, ClientError

from .callback import send_response
from .config import DEFAULT_SUFFIXES, ROUTE_PROPERTY_KEYS
from .errors import ConfigurationInstallError, PermissionGrantConflict
from .models import CustomResourceResponse, RouteSpecification

logger = logging.getLogger(__name__)

S3_PRINCIPAL = "s3.amazonaws.com"
INVOKE_ACTION = "lambda:InvokeFunction"
SAFETY_MARGIN_MS = 5000
PHYSICAL_ID_PREFIX = "S3NotificationConfigurator-"
SUCCESS_REASON = "S3 bucket notifications configured successfully"


class Deadline:
    """Soft deadline measured on the monotonic clock."""

    def __init__(self, budget_seconds: float) -> None:
        self._expires_at = time.monotonic() + budget_seconds

    @classmethod
    def from_remaining_ms(cls, remaining_ms: int, margin_ms: int = SAFETY_MARGIN_MS) -> "Deadline":
        return cls((remaining_ms - margin_ms) / 1000.0)

    def remaining(self) -> float:
        return self._expires_at - time.monotonic()

    def expired(self) -> bool:
        return self.remaining() <= 0


@dataclass
class ConfigurationOutcome:
    configured: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    permission_conflicts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    filters: List[Dict[str, Any]] = field(default_factory=list)
    installed: bool = False
    install_error: Optional[ConfigurationInstallError] = None
    deadline_exceeded: bool = False


def build_route_specs(properties: Mapping[str, Any]) -> List[RouteSpecification]:
    """Map custom resource properties to route specifications (csv, pdf, image)."""
    routes = []
    for tag, property_key in ROUTE_PROPERTY_KEYS.items():
        arn = properties.get(property_key)
        routes.append(
            RouteSpecification(
                tag=tag,
                function_arn=str(arn).strip() if arn is not None else "",
                suffixes=DEFAULT_SUFFIXES[tag],
            )
        )
    return routes


def build_filter_rules(route: RouteSpecification) -> List[Dict[str, Any]]:
    return [
        {
            "LambdaFunctionArn": route.function_arn,
            "Events": list(route.events),
            "Filter": {"Key": {"FilterRules": [{"Name": "suffix", "Value": suffix}]}},
        }
        for suffix in route.suffixes
    ]


class NotificationRouterConfigurator:
    def __init__(self, s3_client, lambda_client) -> None:
        self._s3_client = s3_client
        self._lambda_client = lambda_client

    def grant_invoke_permission(self, bucket: str, route: RouteSpecification) -> None:
        """Allow the bucket to invoke the route's function.

        Raises:
            PermissionGrantConflict: the statement already exists.
        """
        try:
            self._lambda_client.add_permission(
                FunctionName=route.function_arn,
                StatementId=route.statement_id,
                Action=INVOKE_ACTION,
                Principal=S3_PRINCIPAL,
                SourceArn=f"arn:aws:s3:::{bucket}",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ResourceConflictException":
                raise PermissionGrantConflict(route.statement_id, route.function_arn) from e
            raise
        logger.info("Permission added for: %s", route.tag)

    def configure(
        self,
        bucket: str,
        routes: Sequence[RouteSpecification],
        deadline: Optional[Deadline] = None,
    ) -> ConfigurationOutcome:
        outcome = ConfigurationOutcome()

        for route in routes:
            if not route.is_configured:
                logger.warning("Skipping setup for: %s (ARN is empty)", route.tag)
                outcome.skipped.append(route.tag)
                continue

            try:
                self.grant_invoke_permission(bucket, route)
            except PermissionGrantConflict as e:
                logger.warning("Permission already exists for: %s (%s)", route.tag, e.statement_id)
                outcome.permission_conflicts.append(route.tag)
            except (ClientError, BotoCoreError) as e:
                logger.warning("Error adding permission for: %s - %s", route.tag, e)
                outcome.warnings.append(f"permission {route.tag}: {e}")

            outcome.filters.extend(build_filter_rules(route))
            outcome.configured.append(route.tag)
            self._check_deadline(deadline, outcome)

        if not outcome.filters:
            logger.info("No valid Lambda ARNs provided, skipping notification config.")
            return outcome

        try:
            self._install(bucket, outcome.filters)
            outcome.installed = True
        except ConfigurationInstallError as e:
            logger.warning("Non-blocking error during processing: %s", e)
            outcome.install_error = e
            outcome.warnings.append(str(e))

        self._check_deadline(deadline, outcome)
        return outcome

    def _install(self, bucket: str, filters: List[Dict[str, Any]]) -> None:
        try:
            self._s3_client.put_bucket_notification_configuration(
                Bucket=bucket,
                NotificationConfiguration={"LambdaFunctionConfigurations": filters},
            )
        except (ClientError, BotoCoreError) as e:
            raise ConfigurationInstallError(f"Could not install notification configuration: {e}", bucket=bucket) from e
        logger.info("Applied S3 notification configuration with %d filter(s).", len(filters))

    @staticmethod
    def _check_deadline(deadline: Optional[Deadline], outcome: ConfigurationOutcome) -> None:
        if deadline is not None and deadline.expired() and not outcome.deadline_exceeded:
            logger.warning("Soft deadline exceeded; finishing up so CloudFormation can still be notified.")
            outcome.deadline_exceeded = True

    def handle_request(
        self,
        event: Mapping[str, Any],
        remaining_ms: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> CustomResourceResponse:
        """Process one custom resource request and send exactly one callback."""
        request_type = _text(event.get("RequestType"))
        logger.info("Received CloudFormation custom resource event: %s", request_type or "<none>")
        deadline = Deadline.from_remaining_ms(remaining_ms) if remaining_ms is not None else None

        reason = SUCCESS_REASON
        if request_type == "Delete":
            reason = "Nothing to do on delete"
        else:
            try:
                properties = event.get("ResourceProperties")
                if not isinstance(properties, Mapping):
                    raise ValueError("ResourceProperties missing from request")
                bucket = _text(properties.get("BucketName"))
                logger.info("Bucket: %s", bucket)
                outcome = self.configure(bucket, build_route_specs(properties), deadline)
                if outcome.install_error is not None:
                    reason = f"Processed with warnings: {outcome.install_error}"
            except Exception as e:
                logger.warning("Non-blocking error during processing: %s", e)
                reason = f"Processed with warnings: {e}"

        response = CustomResourceResponse(
            status="SUCCESS",
            reason=reason,
            physical_resource_id=f"{PHYSICAL_ID_PREFIX}{uuid.uuid4()}",
            stack_id=_text(event.get("StackId")),
            request_id=_text(event.get("RequestId")),
            logical_resource_id=_text(event.get("LogicalResourceId")),
        )
        send_response(_text(event.get("ResponseURL")), response, session=session)
        return response


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""
