"""Tests for subscriptions and event routing."""

from urbit_mcp.client.subscription import Subscription, SubscriptionRegistry


def make_sub(creation_id: int, app: str = "graph-store", path: str = "/updates") -> Subscription:
    return Subscription(channel_uid="1650000000-abc123", creation_id=creation_id, app=app, path=path)


def test_matches_on_creation_id_only():
    sub = make_sub(3)
    assert sub.matches({"id": 3, "response": "diff"})
    assert not sub.matches({"id": 4})
    assert not sub.matches({"id": "3"})
    assert not sub.matches({"response": "diff"})
    assert not sub.matches([3])


def test_bool_id_never_matches():
    assert not make_sub(1).matches({"id": True})


def test_pop_message_is_fifo_and_none_when_empty():
    sub = make_sub(2)
    assert sub.pop_message() is None
    sub.push("a")
    sub.push("b")
    assert len(sub) == 2
    assert sub.pop_message() == "a"
    assert sub.pop_message() == "b"
    assert sub.pop_message() is None


def test_route_queues_json_of_matching_subscription():
    registry = SubscriptionRegistry()
    first, second = make_sub(2), make_sub(3, path="/keys")
    registry.add(first)
    registry.add(second)

    assert registry.route({"id": 3, "response": "diff", "json": {"fact": 1}}) is second
    assert len(first) == 0
    assert second.pop_message() == {"fact": 1}


def test_route_null_json_matches_without_queueing():
    registry = SubscriptionRegistry()
    sub = make_sub(2)
    registry.add(sub)

    assert registry.route({"id": 2, "response": "subscribe", "ok": "ok", "json": None}) is sub
    assert registry.route({"id": 2, "response": "subscribe", "ok": "ok"}) is sub
    assert len(sub) == 0


def test_route_without_match():
    registry = SubscriptionRegistry()
    registry.add(make_sub(2))
    assert registry.route({"id": 9, "json": {}}) is None
    assert registry.route("not an object") is None


def test_registry_lookup_and_removal():
    registry = SubscriptionRegistry()
    sub = make_sub(2)
    registry.add(sub)

    assert registry.get(2) is sub
    assert registry.find("graph-store", "/updates") is sub
    assert registry.find("graph-store", "/keys") is None
    assert registry.remove(2) is sub
    assert registry.remove(2) is None
    assert len(registry) == 0
    assert list(registry) == []
