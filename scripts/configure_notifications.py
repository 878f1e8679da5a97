#!/usr/bin/env python3
"""Install bucket notification routes for the content handlers outside CloudFormation."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bucket_ingest.config import AwsConfig
from bucket_ingest.notifications import NotificationRouterConfigurator, build_route_specs
from bucket_ingest.storage import build_lambda_client, build_s3_client


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Route ObjectCreated events of a bucket to the handlers")
    parser.add_argument("bucket", help="Bucket to configure")
    parser.add_argument("--csv-arn", default="", help="ARN of the CSV handler function")
    parser.add_argument("--pdf-arn", default="", help="ARN of the PDF handler function")
    parser.add_argument("--image-arn", default="", help="ARN of the image handler function")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("--endpoint-url", help="Custom endpoint (LocalStack)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    aws = AwsConfig(region=args.region, endpoint_url=args.endpoint_url)
    configurator = NotificationRouterConfigurator(build_s3_client(aws), build_lambda_client(aws))
    routes = build_route_specs(
        {
            "CSVProcessorArn": args.csv_arn,
            "PDFProcessorArn": args.pdf_arn,
            "ImageProcessorArn": args.image_arn,
        }
    )
    outcome = configurator.configure(args.bucket, routes)

    report = {
        "configured": outcome.configured,
        "skipped": outcome.skipped,
        "permission_conflicts": outcome.permission_conflicts,
        "filters": len(outcome.filters),
        "installed": outcome.installed,
        "warnings": outcome.warnings,
    }
    print(json.dumps(report, indent=2))
    return 0 if outcome.installed or not outcome.filters else 1


if __name__ == "__main__":
    sys.exit(main())
