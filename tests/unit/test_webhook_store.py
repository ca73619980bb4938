import pytest

from insight_hub.webhooks.store import WebhookStore, new_webhook_id


def test_record_generates_id_and_defaults_type():
    store = WebhookStore()

    webhook = store.record(body={"event": "ContactCreate"})

    assert webhook.id.startswith("wh_")
    assert len(webhook.id.rsplit("_", 1)[1]) == 9
    assert webhook.type == "default"
    assert store.get_by_id(webhook.id) == webhook


def test_get_all_is_newest_first_and_filters_by_type():
    store = WebhookStore()
    for i in range(5):
        store.record("contact" if i % 2 == 0 else "opportunity", body={"n": i})

    assert [w.body["n"] for w in store.get_all()] == [4, 3, 2, 1, 0]
    assert [w.body["n"] for w in store.get_all(webhook_type="contact")] == [4, 2, 0]
    assert [w.body["n"] for w in store.get_all(limit=2)] == [4, 3]
    assert store.get_all(limit=0) == []


def test_store_is_bounded():
    store = WebhookStore(max_webhooks=3)
    ids = [store.record(body=i).id for i in range(4)]

    assert store.count() == 3
    assert store.get_by_id(ids[0]) is None


def test_clear_returns_count():
    store = WebhookStore()
    store.record()
    store.record()

    assert store.clear() == 2
    assert store.count() == 0


def test_ids_are_unique_enough():
    assert len({new_webhook_id() for _ in range(50)}) == 50


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        WebhookStore(max_webhooks=0)
