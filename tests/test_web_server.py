from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import make_config
from packrip.cards.event_store import RipEventStore
from packrip.cards.scheduler import SchedulerRegistry, WindowScheduler
from packrip.web_server import RipWebServer


@pytest.fixture
def client(awarder):
    events = RipEventStore()
    registry = SchedulerRegistry(lambda channel: WindowScheduler(channel, awarder, events=events))
    server = RipWebServer({"app": {"leaderboard_limit": 2}}, registry, awarder, events)
    with TestClient(server.app) as test_client:
        yield test_client


def test_root_reports_running(client) -> None:
    assert client.get("/").json() == {"status": "Backend running!"}


def test_sync_config_validates(client) -> None:
    assert client.post("/sync-config", json=make_config()).json()["ok"] is True
    response = client.post("/sync-config", json=make_config(default_id="nope"))
    assert response.status_code == 400
    assert "Default collection not found" in response.json()["detail"]["error"]


def test_rip_card_awards_and_persists(client) -> None:
    client.post("/sync-config", json=make_config())
    response = client.post("/rip-card", json={"channelId": "chan", "viewerId": "v1"})
    body = response.json()
    assert body["success"] is True
    assert body["rarity"] in {"Common", "Rare", "Legendary"}

    viewer = client.get("/viewer/chan/v1").json()
    assert viewer["cards"] == [body["card"]]
    assert viewer["totalValue"] == body["card"]["price"]


def test_rip_card_errors(client) -> None:
    assert client.post("/rip-card", json={"channelId": "chan"}).status_code == 400
    response = client.post("/rip-card", json={"channelId": "chan", "viewerId": "v1"})
    assert response.status_code == 500
    assert "No collections configured" in response.json()["detail"]["error"]


def test_give_card_and_leaderboard(client) -> None:
    client.post("/give-card", json={"channelId": "chan", "viewerId": "a", "card": {"name": "x", "price": 2}})
    client.post("/give-card", json={"channelId": "chan", "viewerId": "b", "card": {"name": "y", "price": "7.5"}})
    client.post("/give-card", json={"channelId": "chan", "viewerId": "c", "card": {"name": "z", "price": "junk"}})

    board = client.get("/leaderboard/chan").json()
    assert board == [
        {"viewerId": "b", "cardCount": 1, "totalValue": 7.5},
        {"viewerId": "a", "cardCount": 1, "totalValue": 2.0},
    ]
    assert client.get("/viewer/chan/nobody").json() == {"viewerId": "nobody", "cards": [], "totalValue": 0.0}


def test_rip_event_and_status(client) -> None:
    assert client.get("/rip-status/chan").json() == {"lastRipAt": 0}
    assert client.post("/rip-event", json={}).status_code == 400
    stamp = client.post("/rip-event", json={"channelId": "chan"}).json()["at"]
    assert client.get("/rip-status/chan").json() == {"lastRipAt": stamp}


def test_window_control_flow(client) -> None:
    client.post("/sync-config", json=make_config())

    opened = client.post("/window/chan/open", json={"durationSeconds": 70}).json()
    assert opened["success"] is True

    assert client.post("/window/chan/enroll", json={"viewerId": "A"}).json()["status"] == "accepted"
    assert client.post("/window/chan/enroll", json={"viewerId": "A"}).json()["status"] == "duplicate"
    chat = client.post("/window/chan/chat", json={"userId": "B", "username": "Bob", "message": " !RIP "})
    assert chat.json()["status"] == "accepted"
    ignored = client.post("/window/chan/chat", json={"userId": "C", "message": "hello"})
    assert ignored.json()["status"] == "ignored"

    status = client.get("/window/chan").json()
    assert status["stateLabel"] == "OPEN"
    assert [p["viewerId"] for p in status["participants"]] == ["A", "B"]

    report = client.post("/window/chan/resolve").json()
    assert report["success"] is True
    assert [r["viewerId"] for r in report["results"]] == ["A", "B"]
    assert report["results"][1]["displayName"] == "Bob"

    assert client.post("/window/chan/enroll", json={"viewerId": "D"}).json()["status"] == "closed"
    assert len(client.get("/viewer/chan/A").json()["cards"]) == 1
    assert client.get("/window/chan").json()["lastReport"]["windowId"] == opened["windowId"]


def test_resolve_reports_configuration_error(client) -> None:
    client.post("/window/chan/open")
    client.post("/window/chan/enroll", json={"viewerId": "A"})
    report = client.post("/window/chan/resolve").json()
    assert report["success"] is False
    assert report["configError"]
    assert report["results"] == []


def test_resolve_with_corrupt_data_file_returns_report(client, data_file) -> None:
    client.post("/sync-config", json=make_config())
    client.post("/window/chan/open")
    client.post("/window/chan/enroll", json={"viewerId": "A"})
    data_file.path.write_text("{not json")

    response = client.post("/window/chan/resolve")
    assert response.status_code == 200
    report = response.json()
    assert report["success"] is False
    assert "Could not read stored config" in report["configError"]
    assert client.get("/window/chan").json()["lastReport"]["configError"] == report["configError"]
