"""
Dynamic DNS Update Endpoint

AWS Lambda handler behind API Gateway that points a DNS A record at the
caller's IP address. The caller POSTs a JSON body:

    {"ip_address": "203.0.113.5", "hosted_zone": "Z123", "target_url": "home.example.com"}

and the record is only updated when ip_address matches the source IP that
API Gateway observed for the request. That equality check is the only
authorization: anyone able to reach the endpoint can point a record in the
zone at their own address.

Environment Variables:
    DDNS_MODE: "request" (zone/hostname from the body, default)
               or "fixed" (zone/hostname from the variables below)
    DDNS_HOSTED_ZONE_ID: Zone to update in fixed mode
    DDNS_TARGET_HOSTNAME: Record name to update in fixed mode
    DDNS_PROVIDER: "route53" (default) or "cloudflare"
    DDNS_PROVIDER_TIMEOUT_SECONDS: Timeout for the provider call (default: 10)
    DDNS_LOG_LEVEL: Logging level name (default: INFO)
"""

__version__ = "1.0.0"

import base64
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv  # type: ignore[import-not-found]  # no stubs available

import dns_updaters
from dns_updaters import ProviderError

# Configure logging for CloudWatch / stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Response bodies
NOT_ENOUGH_DATA = "Not enough data to update"
UNABLE_TO_VALIDATE = "Unable to validate"
UPDATE_ACCEPTED = "Call to update accepted"
NOT_CONFIGURED = "Endpoint is not configured"

MODES = ("request", "fixed")
DEFAULT_MODE = "request"
DEFAULT_PROVIDER = "route53"
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 10

# Body keys
IP_FIELD = "ip_address"
ZONE_FIELD = "hosted_zone"
HOSTNAME_FIELD = "target_url"


# =============================================================================
# Errors
# =============================================================================


class DdnsError(Exception):
    """Base error carrying the HTTP status and body to return to the caller."""

    status_code = 500
    default_body = ""

    def __init__(self, body: str | None = None) -> None:
        self.body = body if body is not None else self.default_body
        super().__init__(self.body)

    def response(self) -> dict[str, Any]:
        return build_response(self.status_code, self.body)


class ValidationError(DdnsError):
    pass


class MissingField(ValidationError):
    """Body, source IP, or one of the body fields is missing or empty."""

    status_code = 400
    default_body = NOT_ENOUGH_DATA


class MalformedBody(ValidationError):
    """Body is not a JSON object of strings."""

    # Parse failures have always been reported as server errors; 400 would be more accurate.
    status_code = 500


class IdentityMismatch(ValidationError):
    """Claimed IP does not match the observed source IP."""

    status_code = 500
    default_body = UNABLE_TO_VALIDATE


class ConfigurationError(DdnsError):
    status_code = 500
    default_body = NOT_CONFIGURED


# =============================================================================
# Data
# =============================================================================


@dataclass(frozen=True)
class UpdateRequest:
    claimed_ip: str
    hosted_zone_id: str
    target_hostname: str


@dataclass(frozen=True)
class Settings:
    mode: str = DEFAULT_MODE
    provider: str = DEFAULT_PROVIDER
    provider_timeout: int = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    hosted_zone_id: str = ""
    target_hostname: str = ""


# =============================================================================
# Configuration
# =============================================================================


def load_env_file() -> None:
    """Load .env from the module's directory, if present."""
    env_file = Path(__file__).parent.resolve() / ".env"
    if env_file.exists():
        load_dotenv(env_file)
        logger.debug(f"Loaded environment from {env_file}")


def get_mode() -> str:
    mode = os.getenv("DDNS_MODE", DEFAULT_MODE).strip().lower() or DEFAULT_MODE
    if mode not in MODES:
        raise ConfigurationError(f"{NOT_CONFIGURED}: unknown DDNS_MODE {mode!r}")
    return mode


def get_provider() -> str:
    provider = os.getenv("DDNS_PROVIDER", DEFAULT_PROVIDER).strip().lower() or DEFAULT_PROVIDER
    if provider not in dns_updaters.PROVIDERS:
        raise ConfigurationError(f"{NOT_CONFIGURED}: unknown DDNS_PROVIDER {provider!r}")
    return provider


def get_provider_timeout_seconds() -> int:
    """
    Get the provider call timeout from environment variable.

    Returns:
        Timeout in seconds (default: 10)
    """
    default = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    try:
        timeout = int(os.getenv("DDNS_PROVIDER_TIMEOUT_SECONDS", str(default)))
        if timeout < 1:
            logger.warning(f"DDNS_PROVIDER_TIMEOUT_SECONDS must be >= 1, using default {default}")
            return default
        return timeout
    except ValueError:
        logger.warning(f"Invalid DDNS_PROVIDER_TIMEOUT_SECONDS, using default {default}")
        return default


def apply_log_level() -> None:
    level_name = os.getenv("DDNS_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        logger.warning(f"Invalid DDNS_LOG_LEVEL {level_name!r}, keeping current level")
        return
    logging.getLogger().setLevel(level)


def load_settings() -> Settings:
    """
    Read the endpoint configuration from the environment.

    Raises:
        ConfigurationError: unknown mode or provider, or fixed mode without
        both DDNS_HOSTED_ZONE_ID and DDNS_TARGET_HOSTNAME.
    """
    mode = get_mode()
    hosted_zone_id = os.getenv("DDNS_HOSTED_ZONE_ID", "").strip()
    target_hostname = os.getenv("DDNS_TARGET_HOSTNAME", "").strip()

    if mode == "fixed" and not (hosted_zone_id and target_hostname):
        logger.error("Fixed mode requires DDNS_HOSTED_ZONE_ID and DDNS_TARGET_HOSTNAME")
        raise ConfigurationError()

    return Settings(
        mode=mode,
        provider=get_provider(),
        provider_timeout=get_provider_timeout_seconds(),
        hosted_zone_id=hosted_zone_id,
        target_hostname=target_hostname,
    )


# =============================================================================
# Request handling
# =============================================================================


def build_response(status_code: int, body: str) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/html"},
        "body": body,
    }


def get_source_ip(event: dict[str, Any]) -> str:
    """
    Retrieve the caller's IP address as observed by API Gateway.

    REST APIs (payload v1) put it under requestContext.identity, HTTP APIs
    (payload v2) under requestContext.http. Returns "" when neither is set.
    """
    context = event.get("requestContext") or {}
    source_ip = (context.get("identity") or {}).get("sourceIp") or (context.get("http") or {}).get("sourceIp")
    return source_ip if isinstance(source_ip, str) else ""


def _decode_utf8(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedBody(f"Could not decode request body: {e}") from e


def get_body(event: dict[str, Any]) -> str:
    """
    Return the request body as text, decoding base64 bodies.

    Raises:
        MalformedBody: if a base64 body cannot be decoded.
    """
    body = event.get("body") or ""
    if isinstance(body, bytes):
        body = _decode_utf8(body)
    if body and event.get("isBase64Encoded"):
        try:
            body = base64.b64decode(body, validate=True).decode("utf-8")
        except ValueError as e:
            raise MalformedBody(f"Could not decode request body: {e}") from e
    return body


def _field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedBody(f"Field {key!r} must be a string, got {type(value).__name__}")
    return value


def validate_request(body: str | bytes | None, observed_source_ip: str) -> UpdateRequest:
    """
    Validate an update request body against the observed source IP.

    Args:
        body: Raw request body, expected to be a JSON object
        observed_source_ip: Caller IP reported by API Gateway

    Returns:
        UpdateRequest with all three fields populated.

    Raises:
        MissingField: empty body, empty source IP, or an empty/absent field
        MalformedBody: body is not a JSON object of strings
        IdentityMismatch: ip_address differs from the observed source IP
    """
    if isinstance(body, bytes):
        body = _decode_utf8(body)

    # Checked before parsing so an empty body is a client error, not a parse error
    if not body or not body.strip() or not observed_source_ip:
        raise MissingField()

    try:
        data = json.loads(body)
    except (ValueError, RecursionError) as e:
        raise MalformedBody(str(e) or type(e).__name__) from e

    if not isinstance(data, dict):
        raise MalformedBody("Request body must be a JSON object")

    claimed_ip = _field(data, IP_FIELD)
    hosted_zone_id = _field(data, ZONE_FIELD)
    target_hostname = _field(data, HOSTNAME_FIELD)

    if not all(v.strip() for v in (claimed_ip, hosted_zone_id, target_hostname)):
        raise MissingField()

    if claimed_ip != observed_source_ip:
        logger.warning(f"Claimed IP {claimed_ip} does not match source IP {observed_source_ip}")
        raise IdentityMismatch()

    return UpdateRequest(
        claimed_ip=claimed_ip,
        hosted_zone_id=hosted_zone_id,
        target_hostname=target_hostname,
    )


def resolve_update_request(event: dict[str, Any], settings: Settings) -> UpdateRequest:
    """Build the validated UpdateRequest for the configured mode."""
    source_ip = get_source_ip(event)

    if settings.mode == "fixed":
        if not source_ip:
            raise MissingField()
        return UpdateRequest(
            claimed_ip=source_ip,
            hosted_zone_id=settings.hosted_zone_id,
            target_hostname=settings.target_hostname,
        )

    return validate_request(get_body(event), source_ip)


def handle_request(event: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """
    Validate the event and apply the update.

    Returns:
        API Gateway proxy response dict.
    """
    source_ip = get_source_ip(event)
    logger.info(f"Update requested from {source_ip or 'unknown source'} ({settings.mode} mode)")

    try:
        update_request = resolve_update_request(event, settings)
    except ValidationError as e:
        logger.warning(f"Rejected update from {source_ip or 'unknown source'}: {e.status_code} {e.body}")
        return e.response()

    logger.info(
        f"Validated update of {update_request.target_hostname} in zone "
        f"{update_request.hosted_zone_id} to {update_request.claimed_ip}"
    )

    try:
        result = dns_updaters.update_record(
            settings.provider,
            update_request.claimed_ip,
            update_request.hosted_zone_id,
            update_request.target_hostname,
            settings.provider_timeout,
        )
    except ProviderError as e:
        return build_response(500, str(e))

    logger.info(f"Update accepted: {result.change_id} {result.status}")
    return build_response(202, UPDATE_ACCEPTED)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Entry point invoked by AWS Lambda for each API Gateway request.

    Returns:
        API Gateway proxy response dict.
    """
    load_env_file()
    apply_log_level()

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.body}")
        return e.response()

    return handle_request(event, settings)
