"""Tests for the change bus and the realtime WebSocket channel."""

import asyncio
import json

import pytest
from prometheus_client import REGISTRY
from starlette.websockets import WebSocketDisconnect

from tenantdb.realtime import DELETE, INSERT, ChangeBus, queue_deliverer
from tenantdb.routers.realtime import CLOSE_NOT_FOUND, CLOSE_UNAUTHORIZED, handle_client_message


@pytest.fixture
def bus():
    return ChangeBus()


class TestChangeBus:
    """Unit tests for ChangeBus."""

    def test_publish_to_matching_subscribers(self, bus):
        received = []
        other = []
        subscription = bus.connect("p1", received.append)
        bus.subscribe(subscription, "items")
        bus.connect("p1", other.append)

        delivered = bus.publish("p1", "items", INSERT, {"record": {"id": "r1"}})

        assert delivered == 1
        assert received == [
            {"type": "change", "event": "INSERT", "table": "items", "record": {"id": "r1"}}
        ]
        assert other == []

    def test_project_scoping(self, bus):
        received = []
        subscription = bus.connect("p1", received.append)
        bus.subscribe(subscription, "items")

        assert bus.publish("p2", "items", INSERT, {"record": {}}) == 0
        assert received == []

    def test_unsubscribe(self, bus):
        received = []
        subscription = bus.connect("p1", received.append)
        bus.subscribe(subscription, "items")
        bus.unsubscribe(subscription, "items")

        bus.publish("p1", "items", DELETE, {"record": {"id": "r1"}})

        assert received == []

    def test_disconnect(self, bus):
        subscription = bus.connect("p1", lambda message: None)
        assert bus.subscriber_count == 1

        bus.disconnect(subscription)
        bus.disconnect(subscription)

        assert bus.subscriber_count == 0

    def test_unknown_event(self, bus):
        with pytest.raises(ValueError):
            bus.publish("p1", "items", "TRUNCATE", {})

    def test_failing_subscriber_does_not_break_others(self, bus):
        def broken(message):
            raise RuntimeError("socket gone")

        received = []
        for deliver in (broken, received.append):
            subscription = bus.connect("p1", deliver)
            bus.subscribe(subscription, "items")

        delivered = bus.publish("p1", "items", INSERT, {"record": {"id": "r1"}})

        assert delivered == 1
        assert len(received) == 1


def test_queue_deliverer_drops_when_full():
    before = REGISTRY.get_sample_value("tenantdb_change_events_dropped_total") or 0

    async def scenario():
        queue = asyncio.Queue(maxsize=1)
        deliver = queue_deliverer(queue, asyncio.get_running_loop())
        deliver({"table": "items", "n": 1})
        deliver({"table": "items", "n": 2})
        await asyncio.sleep(0)
        return [queue.get_nowait() for _ in range(queue.qsize())]

    assert asyncio.run(scenario()) == [{"table": "items", "n": 1}]
    assert REGISTRY.get_sample_value("tenantdb_change_events_dropped_total") == before + 1


class TestHandleClientMessage:
    """Tests for subscribe/unsubscribe message handling."""

    @pytest.fixture
    def subscription(self, bus):
        return bus.connect("p1", lambda message: None)

    def test_subscribe(self, bus, subscription):
        reply = handle_client_message(bus, subscription, json.dumps({"type": "subscribe", "table": "items"}))

        assert reply == {"type": "subscribed", "table": "items"}
        assert subscription.tables == {"items"}

    def test_unsubscribe(self, bus, subscription):
        bus.subscribe(subscription, "items")

        reply = handle_client_message(bus, subscription, json.dumps({"type": "unsubscribe", "table": "items"}))

        assert reply == {"type": "unsubscribed", "table": "items"}
        assert subscription.tables == set()

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            json.dumps({"type": "subscribe"}),
            json.dumps({"type": "subscribe", "table": ""}),
            json.dumps({"type": "shout", "table": "items"}),
        ],
    )
    def test_invalid_messages(self, bus, subscription, raw):
        reply = handle_client_message(bus, subscription, raw)

        assert reply["type"] == "error"
        assert subscription.tables == set()


class TestRealtimeWebSocket:
    """Tests for the /api/realtime WebSocket."""

    def test_receives_changes_of_subscribed_table(self, client, project, items_table, anon_headers):
        url = f"/api/realtime?projectId={project['id']}&apikey={project['anon_key']}"

        with client.websocket_connect(url) as websocket:
            websocket.send_json({"type": "subscribe", "table": "items"})
            assert websocket.receive_json() == {"type": "subscribed", "table": "items"}

            row = client.post(
                f"/api/projects/{project['id']}/items", json={"title": "Widget"}, headers=anon_headers
            ).json()

            message = websocket.receive_json()

        assert message == {"type": "change", "event": "INSERT", "table": "items", "record": row}

    def test_update_and_delete_events(self, client, project, items_table, service_headers):
        url = f"/api/realtime?projectId={project['id']}&apikey={project['service_key']}"
        rows_url = f"/api/projects/{project['id']}/items"
        row = client.post(rows_url, json={"a": 1}, headers=service_headers).json()

        with client.websocket_connect(url) as websocket:
            websocket.send_json({"type": "subscribe", "table": "items"})
            websocket.receive_json()

            client.put(f"{rows_url}/{row['id']}", json={"a": 2}, headers=service_headers)
            updated = websocket.receive_json()
            client.delete(f"{rows_url}/{row['id']}", headers=service_headers)
            deleted = websocket.receive_json()

        assert updated["event"] == "UPDATE"
        assert updated["record"] == {"id": row["id"], "a": 2}
        assert deleted["event"] == "DELETE"
        assert deleted["record"]["id"] == row["id"]

    def test_admin_token(self, client, project, admin_token):
        url = f"/api/realtime?projectId={project['id']}&adminToken={admin_token}"

        with client.websocket_connect(url) as websocket:
            websocket.send_json({"type": "subscribe", "table": "items"})
            assert websocket.receive_json()["type"] == "subscribed"

    def test_bad_message_keeps_connection(self, client, project):
        url = f"/api/realtime?projectId={project['id']}&apikey={project['anon_key']}"

        with client.websocket_connect(url) as websocket:
            websocket.send_text("hello")
            assert websocket.receive_json()["type"] == "error"

            websocket.send_json({"type": "subscribe", "table": "items"})
            assert websocket.receive_json()["type"] == "subscribed"

    def test_invalid_key(self, client, project):
        url = f"/api/realtime?projectId={project['id']}&apikey=wrong"

        with client.websocket_connect(url) as websocket:
            assert websocket.receive_json()["type"] == "error"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == CLOSE_UNAUTHORIZED

    def test_key_of_other_project(self, client, project, admin_headers):
        other = client.post("/api/admin/projects", json={"name": "Other"}, headers=admin_headers).json()
        url = f"/api/realtime?projectId={project['id']}&apikey={other['anon_key']}"

        with client.websocket_connect(url) as websocket:
            websocket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == CLOSE_UNAUTHORIZED

    def test_unknown_project(self, client):
        with client.websocket_connect("/api/realtime?projectId=nope&apikey=x") as websocket:
            websocket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == CLOSE_NOT_FOUND
