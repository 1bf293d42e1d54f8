"""
Tests for subscription keys and the registry.
"""

from electrum_ws import SubscriptionRegistry, subscription_key


def noop(*args):
    pass


def test_string_first_param_scopes_the_key():
    assert subscription_key("blockchain.scripthash", ["abc123"]) == "blockchain.scripthash-abc123"
    assert subscription_key("blockchain.headers", []) == "blockchain.headers"
    assert subscription_key("blockchain.headers", [{"raw": True}]) == "blockchain.headers"
    assert subscription_key("blockchain.headers", [1, "x"]) == "blockchain.headers"


def test_push_routes_by_method_and_first_param():
    registry = SubscriptionRegistry()
    scripthash = registry.add("blockchain.scripthash", noop, ["abc123"])
    headers = registry.add("blockchain.headers", noop, [])

    assert registry.match_push("blockchain.scripthash.subscribe", ["abc123", "status"]) is scripthash
    assert registry.match_push("blockchain.headers.subscribe", [{"height": 1}]) is headers
    assert registry.match_push("blockchain.scripthash.subscribe", ["other", "status"]) is None
    assert registry.match_push("blockchain.scripthash", ["abc123"]) is None


def test_reregistering_keeps_replay_position():
    registry = SubscriptionRegistry()
    registry.add("a", noop, [])
    registry.add("b", noop, [])

    def replacement(*args):
        pass

    registry.add("a", replacement, [])

    assert [s.method for s in registry] == ["a", "b"]
    assert registry.get("a").callback is replacement


def test_remove_reports_whether_entry_existed():
    registry = SubscriptionRegistry()
    registry.add("blockchain.scripthash", noop, ["abc"])

    assert registry.remove("blockchain.scripthash", ["zzz"]) is None
    assert registry.remove("blockchain.scripthash", ["abc"]) is not None
    assert len(registry) == 0
    assert "blockchain.scripthash-abc" not in registry
