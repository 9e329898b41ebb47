"""
DNS record updaters.

Issues a single UPSERT of an A record against the configured DNS provider.
Each call builds its own client, makes exactly one change request and never
retries; "accepted" by the provider is the end of our responsibility.

Providers:
    route53:    AWS Route 53 via boto3 (credentials from the Lambda role)
    cloudflare: Cloudflare v4 API via requests

Environment Variables (cloudflare only, one method required):
    CLOUDFLARE_API_TOKEN: Scoped API token (recommended)
    OR
    CLOUDFLARE_EMAIL + CLOUDFLARE_API_KEY: Global API key (legacy)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# Fixed TTL for the dynamic record, in seconds
RECORD_TTL = 60
RECORD_TYPE = "A"

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"

PROVIDERS = ("route53", "cloudflare")


class ProviderError(Exception):
    """The DNS provider rejected or failed the change request."""


@dataclass(frozen=True)
class ChangeResult:
    change_id: str
    status: str


def change_comment(target_hostname: str, hosted_zone_id: str, new_ip: str) -> str:
    return f"Update to {target_hostname} in hosted zone {hosted_zone_id} called from {new_ip}"


def build_change_batch(new_ip: str, hosted_zone_id: str, target_hostname: str) -> dict[str, Any]:
    """
    Build the Route 53 change batch for a single A record upsert.

    Returns:
        Dict suitable for the ChangeBatch argument of change_resource_record_sets().
    """
    return {
        "Comment": change_comment(target_hostname, hosted_zone_id, new_ip),
        "Changes": [
            {
                "Action": "UPSERT",
                "ResourceRecordSet": {
                    "Name": target_hostname,
                    "Type": RECORD_TYPE,
                    "TTL": RECORD_TTL,
                    "ResourceRecords": [{"Value": new_ip}],
                },
            }
        ],
    }


# =============================================================================
# Route 53
# =============================================================================


def get_route53_client(timeout: int) -> Any:
    """Create a Route 53 client with bounded timeouts and no SDK retries."""
    config = Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"total_max_attempts": 1},
    )
    return boto3.client("route53", config=config)


def update_route53(new_ip: str, hosted_zone_id: str, target_hostname: str, timeout: int) -> ChangeResult:
    """
    UPSERT the A record in a Route 53 hosted zone.

    Returns:
        ChangeResult with the pending change ID (e.g. /change/C12345ABCDE).

    Raises:
        ProviderError: on any Route 53 or botocore failure.
    """
    client = get_route53_client(timeout)
    try:
        resp = client.change_resource_record_sets(
            HostedZoneId=hosted_zone_id,
            ChangeBatch=build_change_batch(new_ip, hosted_zone_id, target_hostname),
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Route 53 update of {target_hostname} failed: {e}")
        raise ProviderError(str(e)) from e

    change_info = resp.get("ChangeInfo", {})
    result = ChangeResult(change_id=change_info.get("Id", ""), status=change_info.get("Status", ""))
    logger.info(f"Route 53 accepted {target_hostname} -> {new_ip} ({result.change_id} {result.status})")
    return result


# =============================================================================
# Cloudflare
# =============================================================================


def get_auth_headers() -> dict[str, str] | None:
    """
    Build Cloudflare API authentication headers.

    Supports two methods:
    1. API Token (Bearer) - recommended
    2. Global API Key + Email - legacy

    Returns:
        Dict of headers, or None if no valid credentials found.
    """
    api_token = os.getenv("CLOUDFLARE_API_TOKEN", "").strip()
    api_email = os.getenv("CLOUDFLARE_EMAIL", "").strip()
    api_key = os.getenv("CLOUDFLARE_API_KEY", "").strip()

    if api_token:
        logger.debug("Using API token authentication")
        return {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
    elif api_email and api_key:
        logger.debug("Using Global API key authentication")
        return {
            "X-Auth-Email": api_email,
            "X-Auth-Key": api_key,
            "Content-Type": "application/json",
        }
    else:
        return None


def _cloudflare_errors(response: requests.Response) -> str:
    """Best-effort extraction of Cloudflare's error messages from a response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    errors = data.get("errors") if isinstance(data, dict) else None
    if errors:
        return "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
    return f"HTTP {response.status_code}"


def _cloudflare_result(response: requests.Response) -> dict[str, Any]:
    """Return the decoded body of a successful Cloudflare response, or raise ProviderError."""
    if not response.ok:
        raise ProviderError(_cloudflare_errors(response))
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(f"Invalid response from Cloudflare: {e}") from e
    if not isinstance(data, dict) or not data.get("success"):
        raise ProviderError(_cloudflare_errors(response))
    return data


def find_cloudflare_record_id(
    session: requests.Session, zone_id: str, record_name: str, timeout: int
) -> str | None:
    """
    Look up the ID of an existing A record.

    Returns:
        The record ID, or None if the record does not exist yet.

    Raises:
        ProviderError: if the lookup itself fails.
    """
    url = f"{CLOUDFLARE_API_BASE}/zones/{zone_id}/dns_records"
    params = {"type": RECORD_TYPE, "name": record_name}

    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise ProviderError(f"Failed to fetch DNS record {record_name}: {e}") from e

    results = _cloudflare_result(response).get("result", [])
    if not results:
        logger.debug(f"No existing A record for {record_name}, will create it")
        return None

    record_id = results[0].get("id")
    return str(record_id) if record_id else None


def update_cloudflare(new_ip: str, zone_id: str, target_hostname: str, timeout: int) -> ChangeResult:
    """
    UPSERT the A record in a Cloudflare zone.

    Cloudflare has no native upsert, so the existing record is looked up
    first and then overwritten (PUT) or created (POST). Only one write is
    ever sent.

    Raises:
        ProviderError: on missing credentials, HTTP errors or API errors.
    """
    headers = get_auth_headers()
    if not headers:
        raise ProviderError(
            "Authentication required: set CLOUDFLARE_API_TOKEN or (CLOUDFLARE_EMAIL + CLOUDFLARE_API_KEY)"
        )

    payload = {
        "type": RECORD_TYPE,
        "name": target_hostname,
        "content": new_ip,
        "ttl": RECORD_TTL,
        "proxied": False,
        "comment": change_comment(target_hostname, zone_id, new_ip),
    }

    with requests.Session() as session:
        session.headers.update(headers)
        record_id = find_cloudflare_record_id(session, zone_id, target_hostname, timeout)

        url = f"{CLOUDFLARE_API_BASE}/zones/{zone_id}/dns_records"
        try:
            if record_id:
                response = session.put(f"{url}/{record_id}", json=payload, timeout=timeout)
            else:
                response = session.post(url, json=payload, timeout=timeout)
        except requests.RequestException as e:
            logger.error(f"Failed to update DNS record {target_hostname}: {e}")
            raise ProviderError(f"Failed to update DNS record {target_hostname}: {e}") from e

    try:
        data = _cloudflare_result(response)
    except ProviderError as e:
        logger.error(f"Failed to update {target_hostname}: {e}")
        raise

    result = data.get("result") or {}
    logger.info(f"Cloudflare accepted {target_hostname} -> {new_ip}")
    return ChangeResult(change_id=str(result.get("id", record_id or "")), status="ACCEPTED")


def update_record(
    provider: str, new_ip: str, hosted_zone_id: str, target_hostname: str, timeout: int
) -> ChangeResult:
    """Dispatch a validated update to the named provider."""
    if provider == "route53":
        return update_route53(new_ip, hosted_zone_id, target_hostname, timeout)
    if provider == "cloudflare":
        return update_cloudflare(new_ip, hosted_zone_id, target_hostname, timeout)
    raise ProviderError(f"Unknown DNS provider: {provider}")
