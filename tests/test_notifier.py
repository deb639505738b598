import asyncio

from fastapi.testclient import TestClient

from main import app
from models.generation import GenerationStatus, GenerationType
from utils.notifier import GenerationProgressHub, hub


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


def test_events_go_to_subscribers_only():
    progress_hub = GenerationProgressHub()
    watcher, bystander = FakeSocket(), FakeSocket()
    progress_hub.register(watcher)
    progress_hub.register(bystander)

    async def scenario():
        await progress_hub.handle_message(watcher, '{"type": "subscribe", "generationId": "gen-1"}')
        return await progress_hub.emit_status("gen-1", GenerationType.PDF, GenerationStatus.POLLING, "Waiting")

    delivered = asyncio.run(scenario())

    assert delivered == 1
    assert watcher.sent[0] == {"type": "subscribed", "generationId": "gen-1"}
    assert watcher.sent[1] == {
        "type": "generation-progress",
        "generationType": "pdf",
        "generationId": "gen-1",
        "status": "polling",
        "progress": "Waiting",
    }
    assert bystander.sent == []


def test_unsubscribed_generation_is_broadcast():
    progress_hub = GenerationProgressHub()
    sockets = [FakeSocket(), FakeSocket()]
    for socket in sockets:
        progress_hub.register(socket)

    delivered = asyncio.run(progress_hub.emit_error("gen-9", GenerationType.PODCAST, "boom"))

    assert delivered == 2
    assert all(socket.sent[0]["error"] == "boom" for socket in sockets)


def test_failed_socket_is_dropped():
    progress_hub = GenerationProgressHub()
    broken = FakeSocket(fail=True)
    progress_hub.register(broken)
    progress_hub.subscribe(broken, "gen-1")

    delivered = asyncio.run(progress_hub.emit_complete("gen-1", GenerationType.PDF))

    assert delivered == 0
    assert broken not in progress_hub.connections
    assert progress_hub.subscriber_count("gen-1") == 0


def test_malformed_messages_are_ignored():
    progress_hub = GenerationProgressHub()
    socket = FakeSocket()
    progress_hub.register(socket)

    async def scenario():
        await progress_hub.handle_message(socket, "not json")
        await progress_hub.handle_message(socket, '["subscribe"]')
        await progress_hub.handle_message(socket, '{"type": "subscribe"}')

    asyncio.run(scenario())

    assert socket.sent == []
    assert progress_hub.clients == {}


def test_websocket_subscriptions_route_progress():
    with TestClient(app) as client:
        with client.websocket_connect("/ws/generation-progress") as first, \
                client.websocket_connect("/ws/generation-progress") as second:
            assert first.receive_json()["type"] == "connected"
            assert second.receive_json()["type"] == "connected"
            first.send_json({"type": "subscribe", "generationId": "gen-1"})
            assert first.receive_json() == {"type": "subscribed", "generationId": "gen-1"}
            second.send_json({"type": "subscribe", "generationId": "gen-2"})
            assert second.receive_json() == {"type": "subscribed", "generationId": "gen-2"}

            client.portal.call(hub.emit, {"generationId": "gen-1", "type": "pdf", "status": "complete"})
            client.portal.call(hub.emit, {"generationId": "gen-2", "type": "podcast", "status": "error", "error": "x"})

            first_event = first.receive_json()
            second_event = second.receive_json()
            assert (first_event["generationId"], first_event["status"]) == ("gen-1", "complete")
            assert (second_event["generationId"], second_event["status"]) == ("gen-2", "error")
