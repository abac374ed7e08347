"""Tests for the SSE broadcaster."""

import json
import time

import pytest

from collab_hub.services.broadcaster import (
    Broadcaster,
    SSEEvent,
    get_broadcaster,
    init_broadcaster,
    shutdown_broadcaster,
)


@pytest.fixture
def broadcaster():
    b = Broadcaster(max_connections=2, heartbeat_interval=1, connection_timeout=60)
    b.start()
    yield b
    b.stop()


class TestSSEEvent:

    def test_format(self):
        event = SSEEvent(event_type="banner", data={"text": "hi"}, event_id=3)
        lines = event.format().split("\n")
        assert lines[0] == "event: banner"
        assert lines[1] == "id: 3"
        assert json.loads(lines[2][len("data: "):]) == {"text": "hi"}
        assert event.format().endswith("\n\n")


class TestClients:

    def test_register_and_unregister(self, broadcaster):
        client_id = broadcaster.register_client()
        assert broadcaster.active_connections == 1
        assert broadcaster.unregister_client(client_id) is True
        assert broadcaster.unregister_client(client_id) is False

    def test_connection_limit(self, broadcaster):
        broadcaster.register_client()
        broadcaster.register_client()
        assert broadcaster.register_client() is None


class TestBroadcast:

    def test_delivers_to_all_clients(self, broadcaster):
        a = broadcaster.register_client()
        b = broadcaster.register_client()

        assert broadcaster.broadcast("presence", {"agent_id": "market_monitor"}) == 2
        assert broadcaster.get_next_event(a, timeout=1).event_type == "presence"
        assert broadcaster.get_next_event(b, timeout=1).data == {"agent_id": "market_monitor"}

    def test_type_filter(self, broadcaster):
        broadcaster.register_client(types=["banner"])
        assert broadcaster.broadcast("presence", {}) == 0
        assert broadcaster.broadcast("banner", {"text": "x"}) == 1

    def test_agent_filter_matches_either_side_of_pair(self, broadcaster):
        broadcaster.register_client(agent_id="knowledge_curator")
        assert broadcaster.broadcast(
            "collaboration",
            {"source_agent": "market_monitor", "target_agent": "knowledge_curator"},
        ) == 1
        assert broadcaster.broadcast(
            "collaboration",
            {"source_agent": "market_monitor", "target_agent": "strategy_doc_generator"},
        ) == 0

    def test_event_ids_increase(self, broadcaster):
        client = broadcaster.register_client()
        broadcaster.broadcast("a", {})
        broadcaster.broadcast("b", {})
        first = broadcaster.get_next_event(client, timeout=1)
        second = broadcaster.get_next_event(client, timeout=1)
        assert second.event_id > first.event_id

    def test_get_next_event_times_out(self, broadcaster):
        client = broadcaster.register_client()
        assert broadcaster.get_next_event(client, timeout=0.01) is None

    def test_stop_wakes_clients(self, broadcaster):
        client = broadcaster.register_client()
        queue = broadcaster.get_client(client).event_queue
        broadcaster.stop()
        assert queue.get(timeout=1) is None
        assert broadcaster.get_health_status()["status"] == "stopped"


class TestIdleReaping:

    def test_drops_only_subscribers_that_stopped_polling(self):
        b = Broadcaster(heartbeat_interval=1, connection_timeout=5)
        idle = b.register_client()
        fresh = b.register_client()
        b.get_client(idle).last_polled = time.monotonic() - 10

        assert b.reap_idle() == [idle]
        assert b.get_client(idle) is None
        assert b.get_client(fresh) is not None

    def test_stop_does_not_wait_for_reaper_interval(self):
        b = Broadcaster(connection_timeout=600)
        b.start()
        started = time.monotonic()
        b.stop()
        assert time.monotonic() - started < 1.0
        assert b.running is False


class TestGlobalInstance:

    def test_init_get_shutdown(self):
        created = init_broadcaster({"sse": {"max_connections": 5}})
        assert get_broadcaster() is created
        assert init_broadcaster() is created
        assert created.get_health_status()["max_connections"] == 5

        shutdown_broadcaster()
        with pytest.raises(RuntimeError):
            get_broadcaster()
