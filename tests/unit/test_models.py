import pytest
from pydantic import ValidationError

from insight_hub.domain.exceptions import (
    CRMClientError,
    InsightHubError,
    TransportError,
    UpstreamError,
)
from insight_hub.domain.exceptions import ValidationError as HubValidationError
from insight_hub.domain.models import (
    ErrorEvent,
    RateLimitState,
    RequestEvent,
)


def test_request_event_is_immutable_and_normalized():
    event = RequestEvent(method=" get ", path="/a", status_code=200, duration_millis=12.6)

    assert event.method == "GET"
    assert event.duration_millis == 13
    assert event.endpoint_key == "GET /a"
    assert event.timestamp.tzinfo is not None
    with pytest.raises((TypeError, ValidationError)):
        event.path = "/b"  # type: ignore[misc]


def test_request_event_rejects_negative_duration():
    with pytest.raises(ValidationError):
        RequestEvent(method="GET", path="/a", status_code=200, duration_millis=-1)


def test_error_event_accepts_aliases_and_names():
    event = ErrorEvent.model_validate({"path": "/x", "message": "bad"})
    assert event.message == "bad"


def test_rate_limit_state_invariant():
    with pytest.raises(ValidationError):
        RateLimitState(burst_limit=10, burst_remaining=11)


def test_exception_context_is_formatted():
    error = InsightHubError("failed", context={"path": "/x"})
    assert str(error) == "failed | context={'path': '/x'}"
    assert InsightHubError().message == "Insight hub error occurred"


def test_crm_errors_expose_payload_message():
    upstream = UpstreamError({"message": "Invalid token"}, status_code=401)
    transport = TransportError({"message": "Could not reach https://crm"})
    bare = UpstreamError("plain text body", status_code=502)
    empty = CRMClientError({"code": 17})

    assert upstream.message == "Invalid token"
    assert upstream.status_code == 401
    assert transport.payload == {"message": "Could not reach https://crm"}
    assert bare.message == "plain text body"
    assert empty.message == CRMClientError.default_message


def test_validation_error_is_a_value_error():
    assert issubclass(HubValidationError, ValueError)
    assert issubclass(HubValidationError, InsightHubError)


@pytest.mark.parametrize("duration", [float("inf"), float("-inf"), float("nan")])
def test_request_event_rejects_non_finite_duration(duration):
    with pytest.raises(ValidationError):
        RequestEvent(method="GET", path="/a", status_code=200, duration_millis=duration)
