from __future__ import annotations

import pytest

from peerscope.exceptions import (
    ConfigError,
    ExhaustedRetriesError,
    FileOperationError,
    NetworkError,
    PackageNotFoundError,
    ParseError,
    PeerScopeError,
    RateLimitedError,
    RegistryError,
    TransientNetworkError,
    ValidationError,
)


@pytest.mark.unit
class TestPeerScopeError:
    """Tests for the base exception."""

    def test_plain_message(self) -> None:
        error = PeerScopeError("boom")

        assert str(error) == "boom"
        assert error.message == "boom"
        assert error.details == {}

    def test_details_rendered(self) -> None:
        error = PeerScopeError("boom", {"a": 1, "b": "x"})
        assert str(error) == "boom (a=1, b=x)"

    def test_details_copied(self) -> None:
        source = {"a": 1}
        error = PeerScopeError("boom", source)
        error.details["b"] = 2

        assert source == {"a": 1}

    def test_repr(self) -> None:
        assert repr(PeerScopeError("boom", {"a": 1})) == (
            "PeerScopeError(message='boom', details={'a': 1})"
        )


@pytest.mark.unit
class TestHierarchy:
    """Every error is catchable as PeerScopeError; registry errors as NetworkError."""

    @pytest.mark.parametrize(
        "cls",
        [
            ValidationError,
            ParseError,
            ConfigError,
            FileOperationError,
            NetworkError,
            RegistryError,
            PackageNotFoundError,
            RateLimitedError,
            TransientNetworkError,
            ExhaustedRetriesError,
        ],
    )
    def test_base_class(self, cls) -> None:
        assert issubclass(cls, PeerScopeError)

    @pytest.mark.parametrize(
        "cls",
        [PackageNotFoundError, RateLimitedError, TransientNetworkError, ExhaustedRetriesError],
    )
    def test_registry_errors(self, cls) -> None:
        assert issubclass(cls, RegistryError)
        assert issubclass(cls, NetworkError)


@pytest.mark.unit
class TestStructuredDetails:
    """Tests for the per-class detail fields."""

    def test_validation_error(self) -> None:
        error = ValidationError("bad", value="../x", field="package_name")

        assert error.value == "../x"
        assert error.field == "package_name"
        assert error.details == {"value": "'../x'", "field": "package_name"}

    def test_parse_error(self) -> None:
        error = ParseError("bad json", package_name="react", source="cache.json")
        assert error.details == {"package": "react", "source": "cache.json"}

    def test_config_error(self) -> None:
        error = ConfigError("bad", config_path="peerscope.toml", option="retries")

        assert error.option == "retries"
        assert str(error) == "bad (path=peerscope.toml, option=retries)"

    def test_file_operation_error(self) -> None:
        cause = OSError("disk full")
        error = FileOperationError(
            "write failed", file_path="/tmp/x", operation="write", original_error=cause
        )

        assert error.original_error is cause
        assert error.details["original_error"] == "disk full"

    def test_network_error_truncates_body(self) -> None:
        error = NetworkError("oops", url="https://x", status_code=500, response_body="y" * 500)

        assert error.response_body == "y" * 500
        assert error.details["response"] == "y" * 200 + "..."
        assert error.details["status_code"] == 500

    def test_registry_error_package(self) -> None:
        error = PackageNotFoundError("gone", package_name="left-pad", status_code=404)

        assert error.package_name == "left-pad"
        assert error.details["package"] == "left-pad"
        assert error.status_code == 404

    def test_rate_limited(self) -> None:
        error = RateLimitedError("slow down", retry_after=5.0, status_code=429)

        assert error.retry_after == 5.0
        assert error.details["retry_after"] == 5.0

    def test_exhausted_retries(self) -> None:
        last = TransientNetworkError("503", status_code=503)
        error = ExhaustedRetriesError("failed", attempts=4, last_error=last)

        assert error.attempts == 4
        assert error.last_error is last
        assert "attempts=4" in str(error)
