import json
from datetime import datetime, timezone

import pytest

from insight_hub.analytics.monitor import ApiMonitor
from insight_hub.domain.models import AnalyticsSnapshot, ErrorEvent, RequestEvent


class _StubAggregator:
    def __init__(self):
        self.calls = []

    def compute_snapshot(self, requests, errors):
        self.calls.append((len(requests), len(errors)))
        return AnalyticsSnapshot()


def _event(path: str = "/contacts", status: int = 200, duration: int = 10) -> RequestEvent:
    return RequestEvent(
        method="GET", path=path, status_code=status, duration_millis=duration
    )


def test_track_request_counts_every_call():
    monitor = ApiMonitor()
    for i in range(25):
        monitor.track_request(_event(duration=i))

    assert monitor.get_analytics().requests.total == 25


def test_track_request_total_capped_at_retention():
    monitor = ApiMonitor(retention=10)
    for i in range(15):
        monitor.track_request(_event(path=f"/p/{i}"))

    snapshot = monitor.get_analytics()
    assert snapshot.requests.total == 10
    assert [e.path for e in monitor.requests.all()][0] == "/p/5"


def test_track_request_accepts_camel_case_mapping():
    monitor = ApiMonitor()
    monitor.track_request(
        {
            "method": "post",
            "path": "/contacts",
            "statusCode": 201,
            "durationMillis": 12,
            "timestamp": datetime(2024, 5, 1, tzinfo=timezone.utc),
        }
    )

    stored = monitor.requests.all()[0]
    assert stored.method == "POST"
    assert stored.status_code == 201
    assert stored.duration_millis == 12


def test_track_request_accepts_keyword_fields():
    monitor = ApiMonitor()
    monitor.track_request(method="GET", path="/x", status_code=404, duration_millis=3)

    assert monitor.get_analytics().error_count == 1


def test_track_request_never_raises_on_invalid_input():
    monitor = ApiMonitor()

    monitor.track_request({"method": "GET"})
    monitor.track_request(method="GET", path="/x", status_code=200, duration_millis=-5)
    monitor.track_request(object())  # type: ignore[arg-type]
    monitor.track_request(
        method="GET", path="/x", status_code=200, duration_millis=float("inf")
    )
    monitor.track_request(
        method="GET", path="/x", status_code=200, duration_millis=float("nan")
    )

    assert len(monitor.requests) == 0


def test_track_error_records_and_never_raises():
    monitor = ApiMonitor()
    monitor.track_error(path="/api/contacts", message="upstream exploded")
    monitor.track_error({"path": "/missing-message"})

    snapshot = monitor.get_analytics()
    assert len(snapshot.recent_errors) == 1
    assert snapshot.recent_errors[0].message == "upstream exploded"


def test_error_log_is_independent_of_request_log():
    monitor = ApiMonitor(retention=2)
    for i in range(3):
        monitor.track_error(ErrorEvent(path=f"/e/{i}", message="x"))
    monitor.track_request(_event())

    assert len(monitor.errors) == 2
    assert len(monitor.requests) == 1


def test_get_analytics_delegates_to_aggregator():
    agg = _StubAggregator()
    monitor = ApiMonitor(aggregator=agg)
    monitor.track_request(_event())
    monitor.track_error(path="/e", message="m")

    monitor.get_analytics()

    assert agg.calls == [(1, 1)]


@pytest.mark.asyncio
async def test_subscriber_receives_snapshot_before_live_events():
    monitor = ApiMonitor()
    monitor.track_request(_event(path="/before"))

    subscription = monitor.subscribe()
    monitor.track_request(_event(path="/after"))
    monitor.track_error(path="/after", message="bad")

    first = json.loads(await subscription.receive())
    second = json.loads(await subscription.receive())
    third = json.loads(await subscription.receive())

    assert first["type"] == "analytics"
    assert first["data"]["requests"]["total"] == 1
    assert second["type"] == "request"
    assert second["data"]["path"] == "/after"
    assert second["data"]["statusCode"] == 200
    assert third["type"] == "error"
    assert subscription.pending == 0


@pytest.mark.asyncio
async def test_unsubscribed_observer_gets_no_further_events():
    monitor = ApiMonitor()
    subscription = monitor.subscribe()
    await subscription.receive()

    monitor.unsubscribe(subscription)
    monitor.track_request(_event())

    assert await subscription.receive() is None
    assert monitor.broadcaster.subscriber_count == 0
