from datetime import datetime, timedelta, timezone

import pytest

from insight_hub.analytics.aggregator import AnalyticsAggregator
from insight_hub.domain.models import ErrorEvent, RequestEvent


def _request(
    idx: int, method: str = "GET", path: str = "/a", status: int = 200, duration: int = 10
) -> RequestEvent:
    return RequestEvent(
        method=method,
        path=path,
        status_code=status,
        duration_millis=duration,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=idx),
    )


def _error(idx: int) -> ErrorEvent:
    return ErrorEvent(
        path=f"/err/{idx}",
        message=f"boom {idx}",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=idx),
    )


def test_empty_log_yields_zero_snapshot():
    snapshot = AnalyticsAggregator().compute_snapshot([], [])

    assert snapshot.requests.total == 0
    assert snapshot.success_count == 0
    assert snapshot.error_count == 0
    assert snapshot.average_duration_millis == 0
    assert snapshot.recent_requests == ()
    assert snapshot.recent_errors == ()
    assert snapshot.endpoints == {}


def test_average_duration_of_three_requests():
    records = [_request(i, duration=d) for i, d in enumerate([100, 200, 300])]

    snapshot = AnalyticsAggregator().compute_snapshot(records, [])

    assert snapshot.average_duration_millis == 200


def test_average_duration_rounds_half_up():
    records = [_request(0, duration=1), _request(1, duration=2)]

    totals = AnalyticsAggregator().calculate_totals(records)

    assert totals.average_duration_millis == 2


def test_success_and_error_counts_split_on_400():
    records = [
        _request(0, status=200),
        _request(1, status=302),
        _request(2, status=399),
        _request(3, status=400),
        _request(4, status=503),
    ]

    totals = AnalyticsAggregator().calculate_totals(records)

    assert totals.total == 5
    assert totals.success == 3
    assert totals.errors == 2


def test_per_endpoint_grouping():
    records = [
        _request(0, "GET", "/a", 200, 10),
        _request(1, "GET", "/a", 500, 20),
        _request(2, "POST", "/b", 201, 30),
    ]

    endpoints = AnalyticsAggregator().compute_snapshot(records, []).per_endpoint

    assert set(endpoints) == {"GET /a", "POST /b"}
    assert endpoints["GET /a"].count == 2
    assert endpoints["GET /a"].average_duration_millis == pytest.approx(15)
    assert endpoints["GET /a"].error_count == 1
    assert endpoints["GET /a"].total_duration_millis == 30
    assert endpoints["POST /b"].count == 1
    assert endpoints["POST /b"].average_duration_millis == pytest.approx(30)
    assert endpoints["POST /b"].error_count == 0


def test_per_endpoint_average_is_independent_of_order():
    records = [_request(i, duration=d) for i, d in enumerate([7, 13, 1, 29])]

    agg = AnalyticsAggregator()
    forward = agg.calculate_endpoint_stats(records)
    backward = agg.calculate_endpoint_stats(list(reversed(records)))

    assert forward == backward
    assert forward["GET /a"].average_duration_millis == 12.5


def test_recent_windows_are_newest_first_and_capped():
    requests = [_request(i, path=f"/p/{i}") for i in range(30)]
    errors = [_error(i) for i in range(15)]

    snapshot = AnalyticsAggregator().compute_snapshot(requests, errors)

    assert len(snapshot.recent_requests) == 20
    assert snapshot.recent_requests[0].path == "/p/29"
    assert snapshot.recent_requests[-1].path == "/p/10"
    assert len(snapshot.recent_errors) == 10
    assert snapshot.recent_errors[0].message == "boom 14"


def test_custom_recent_limits():
    agg = AnalyticsAggregator(recent_requests=2, recent_errors=0)
    snapshot = agg.compute_snapshot([_request(i) for i in range(5)], [_error(1)])

    assert len(snapshot.recent_requests) == 2
    assert snapshot.recent_errors == ()


def test_negative_recent_limit_rejected():
    with pytest.raises(ValueError):
        AnalyticsAggregator(recent_requests=-1)


def test_snapshot_serializes_with_camel_case_keys():
    snapshot = AnalyticsAggregator().compute_snapshot([_request(0)], [])

    dumped = snapshot.model_dump(mode="json", by_alias=True)

    assert dumped["requests"]["avgDuration"] == 10
    assert dumped["recentRequests"][0]["statusCode"] == 200
    assert dumped["recentRequests"][0]["durationMillis"] == 10
    assert dumped["endpoints"]["GET /a"]["errors"] == 0
    assert dumped["endpoints"]["GET /a"]["avgDuration"] == 10
    assert dumped["endpoints"]["GET /a"]["totalDurationMillis"] == 10
