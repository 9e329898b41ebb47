#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "pytest",
#     "pytest-mock",
#     "requests",
#     "boto3",
#     "python-dotenv",
# ]
# ///
"""
Tests for the local invocation helper.

Run with: uv run pytest test_invoke_local.py -v
"""

import json
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

import ddns_endpoint
import invoke_local


class TestBuildEvent:
    """Tests for build_event() function."""

    def test_event_shape(self) -> None:
        event = invoke_local.build_event("203.0.113.5", "{}")

        assert ddns_endpoint.get_source_ip(event) == "203.0.113.5"
        assert ddns_endpoint.get_body(event) == "{}"


class TestMain:
    """Tests for main() function."""

    @pytest.fixture
    def handler(self, mocker: MockerFixture) -> MagicMock:
        return mocker.patch.object(
            ddns_endpoint,
            "lambda_handler",
            return_value=ddns_endpoint.build_response(202, ddns_endpoint.UPDATE_ACCEPTED),
        )

    def test_claimed_ip_defaults_to_source_ip(self, handler: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        """Test the body claims the source IP when --ip is not given."""
        result = invoke_local.main(["--source-ip", "203.0.113.5", "--zone", "Z123", "--hostname", "home.example.com"])

        assert result == 0
        event = handler.call_args.args[0]
        assert json.loads(event["body"]) == {
            "ip_address": "203.0.113.5",
            "hosted_zone": "Z123",
            "target_url": "home.example.com",
        }
        assert capsys.readouterr().out.strip() == "202 Call to update accepted"

    def test_raw_body(self, handler: MagicMock) -> None:
        invoke_local.main(["--source-ip", "203.0.113.5", "--body", ""])

        assert handler.call_args.args[0]["body"] == ""

    def test_error_exit_code(self, handler: MagicMock) -> None:
        """Test a non-2xx response exits 1."""
        handler.return_value = ddns_endpoint.build_response(500, ddns_endpoint.UNABLE_TO_VALIDATE)

        result = invoke_local.main(["--source-ip", "203.0.113.5", "--ip", "198.51.100.9"])

        assert result == 1
