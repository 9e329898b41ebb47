#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "boto3",
#     "requests",
#     "python-dotenv",
#     "types-requests",
# ]
# ///
"""
Local invocation: run the update handler without API Gateway

Builds an API Gateway (REST, payload v1) proxy event and passes it to
lambda_handler, printing the response. Reads configuration and provider
credentials from the .env file in the same directory, if present.

Example:
    ./invoke_local.py --source-ip 203.0.113.5 --zone Z123 --hostname home.example.com
"""

import argparse
import json
import sys
from typing import Any

import ddns_endpoint


def build_event(source_ip: str, body: str) -> dict[str, Any]:
    """Build a minimal API Gateway proxy event."""
    return {
        "httpMethod": "POST",
        "path": "/update",
        "headers": {"Content-Type": "application/json"},
        "body": body,
        "isBase64Encoded": False,
        "requestContext": {"identity": {"sourceIp": source_ip}},
    }


def build_body(ip: str, zone: str, hostname: str) -> str:
    return json.dumps(
        {
            ddns_endpoint.IP_FIELD: ip,
            ddns_endpoint.ZONE_FIELD: zone,
            ddns_endpoint.HOSTNAME_FIELD: hostname,
        }
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Invoke the DDNS update handler locally")
    parser.add_argument("--source-ip", required=True, help="Source IP API Gateway would report")
    parser.add_argument("--ip", help="Claimed IP in the body (default: --source-ip)")
    parser.add_argument("--zone", default="", help="Hosted zone ID")
    parser.add_argument("--hostname", default="", help="Record name to update")
    parser.add_argument("--body", help="Raw request body, overrides --ip/--zone/--hostname")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Invoke the handler once; exit 0 on a 2xx response."""
    args = parse_args(argv)

    body = args.body
    if body is None:
        body = build_body(args.ip or args.source_ip, args.zone, args.hostname)

    response = ddns_endpoint.lambda_handler(build_event(args.source_ip, body), None)

    status = response["statusCode"]
    print(f"{status} {response['body']}")
    return 0 if 200 <= status < 300 else 1


if __name__ == "__main__":
    sys.exit(main())
