from __future__ import annotations

from packrip.cards.event_store import RipEventStore


def test_listeners_receive_events_and_failures_are_contained() -> None:
    store = RipEventStore()
    seen: list[dict | None] = []

    def broken(payload):
        raise RuntimeError("listener bug")

    store.add_listener("rip_event", broken)
    store.add_listener("rip_event", seen.append)
    stamp = store.record_rip("chan", at_ms=1234)

    assert stamp == 1234
    assert seen == [{"channelId": "chan", "at": 1234}]
    assert store.last_rip_at("chan") == 1234
    assert store.last_rip_at("other") == 0


def test_live_feed_is_bounded_and_filterable() -> None:
    store = RipEventStore(feed_capacity=3)
    for i in range(5):
        store.add_result({"channelId": "a" if i % 2 else "b", "viewerId": str(i)})

    assert [item["viewerId"] for item in store.get_live_feed()] == ["2", "3", "4"]
    assert [item["viewerId"] for item in store.get_live_feed("a")] == ["3"]
    assert [item["viewerId"] for item in store.get_live_feed(limit=1)] == ["4"]

    store.clear_all_data()
    assert store.get_live_feed() == []
