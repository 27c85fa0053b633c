import asyncio
import json
import threading

import pytest
from fastapi.testclient import TestClient

from flock_helpers import small_config
from flocksim.app import server
from flocksim.app.server import MAX_STEP_COUNT, SimulationController, create_app


class RecordingClient:
    def __init__(self) -> None:
        self.sent_ticks = []

    async def send_text(self, text: str) -> None:
        self.sent_ticks.append(json.loads(text)["tick"])


@pytest.fixture
def controller():
    controller = SimulationController(small_config(6))
    yield controller
    controller.world.close()


@pytest.fixture
def client(controller):
    return TestClient(create_app(controller, autostart=False))


def _attach(controller: SimulationController) -> RecordingClient:
    recorder = RecordingClient()
    controller.clients.add(recorder)
    controller._client_last_sent[recorder] = -1
    return recorder


def test_snapshot_queue_ack_cleanup(controller) -> None:
    recorder = _attach(controller)

    async def exercise() -> None:
        await controller.step()
        await controller._broadcast_snapshot()
        await controller.step()
        await controller._broadcast_snapshot()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        assert recorder.sent_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_broadcast_without_clients_queues_nothing(controller) -> None:
    async def exercise() -> None:
        for _ in range(500):
            await controller.step()
            await controller._broadcast_snapshot()

    asyncio.run(exercise())
    assert controller.tick == 500
    assert len(controller._snapshot_queue) == 0


def test_snapshot_queue_is_bounded_when_client_never_acks(controller) -> None:
    recorder = _attach(controller)

    async def exercise() -> None:
        for _ in range(200):
            await controller.step()
            await controller._broadcast_snapshot()

    asyncio.run(exercise())
    assert 0 < len(controller._snapshot_queue) <= server._MAX_QUEUED_SNAPSHOTS
    assert controller._snapshot_queue[-1].tick == 200
    assert recorder.sent_ticks == list(range(1, 201))


def test_step_runs_ticks_off_the_event_loop_thread(controller, monkeypatch) -> None:
    tick_threads = []
    original_tick = controller.world.tick

    def recording_tick():
        tick_threads.append(threading.get_ident())
        return original_tick()

    monkeypatch.setattr(controller.world, "tick", recording_tick)

    async def exercise() -> int:
        return await controller.step(3)

    assert asyncio.run(exercise()) == 3
    assert len(tick_threads) == 3
    assert threading.get_ident() not in tick_threads


def test_reads_wait_for_simulation_lock(controller) -> None:
    async def exercise() -> None:
        await controller._lock.acquire()
        snapshot_task = asyncio.create_task(controller.read_snapshot())
        status_task = asyncio.create_task(controller.read_status())
        await asyncio.sleep(0)
        assert not snapshot_task.done()
        assert not status_task.done()
        controller._lock.release()
        snapshot = await snapshot_task
        status = await status_task
        assert snapshot["tick"] == 0
        assert len(snapshot["agents"]) == 6
        assert status["population"] == 6

    asyncio.run(exercise())


def test_importing_server_builds_no_default_world() -> None:
    assert not hasattr(server, "controller")
    assert not hasattr(server, "app")


def test_queued_snapshot_payload_is_json(controller) -> None:
    queued = controller._serialize_snapshot()
    message = json.loads(queued.payload)
    assert message["type"] == "snapshot"
    assert message["tick"] == 0
    assert len(message["payload"]["agents"]) == 6
    assert message["payload"]["metrics"] is None
    assert message["payload"]["controls"] == {"target": None, "leader": None, "evade_walls": True}


def test_status_and_step(client) -> None:
    response = client.get("/api/status")
    assert response.status_code == 200
    assert response.json()["population"] == 6
    assert response.json()["running"] is False

    response = client.post("/api/control/step", json={"count": 3})
    assert response.json() == {"tick": 3}
    status = client.get("/api/status").json()
    assert status["tick"] == 3
    assert status["metrics"]["population"] == 6


def test_target_input_sets_and_clears(client, controller) -> None:
    response = client.post("/api/input/target", json={"x": 120.0, "y": 80.0})
    assert response.json() == {"target": [120.0, 80.0]}
    assert controller.world.target.x == 120.0
    assert client.get("/api/snapshot").json()["controls"]["target"] == [120.0, 80.0]

    assert client.delete("/api/input/target").json() == {"target": None}
    assert controller.world.target is None


def test_target_input_rejects_bad_coordinates(client) -> None:
    response = client.post("/api/input/target", json={"x": "left"})
    assert response.status_code == 400


def test_walls_toggle(client, controller) -> None:
    assert client.post("/api/input/walls/toggle").json() == {"evade_walls": False}
    assert controller.world.evade_walls is False
    assert client.post("/api/input/walls/toggle").json() == {"evade_walls": True}


def test_leader_input(client, controller) -> None:
    assert client.post("/api/input/leader", json={"index": 5}).json() == {"leader": 5}
    assert controller.world.leader == 5
    assert client.post("/api/input/leader", json={"index": 6}).status_code == 404
    assert client.post("/api/input/leader", json={"index": "a"}).status_code == 400
    assert client.post("/api/input/leader", json={"index": None}).json() == {"leader": None}
    assert client.post("/api/input/leader/toggle").json() == {"leader": 0}
    assert client.post("/api/input/leader/toggle").json() == {"leader": None}


def test_reset_restores_world(client, controller) -> None:
    client.post("/api/control/step", json={"count": 2})
    client.post("/api/input/target", json={"x": 1.0, "y": 2.0})
    response = client.post("/api/control/reset")
    assert response.json() == {"running": False, "tick": 0}
    assert controller.world.target is None


def test_speed_multiplier_is_clamped(client, controller) -> None:
    assert client.post("/api/control/speed", json={"multiplier": 50}).json() == {"multiplier": 5.0}
    assert controller.speed_multiplier == 5.0


def test_step_rejects_bad_counts(client, controller) -> None:
    assert client.post("/api/control/step", json={"count": MAX_STEP_COUNT + 1}).status_code == 400
    assert client.post("/api/control/step", json={"count": 100000}).status_code == 400
    assert client.post("/api/control/step", json={"count": "x"}).status_code == 400
    assert client.post("/api/control/step", json={"count": None}).status_code == 400
    assert client.post("/api/control/step", json={"count": 0}).status_code == 400
    assert controller.tick == 0


def test_speed_rejects_non_numeric_multiplier(client, controller) -> None:
    assert client.post("/api/control/speed", json={"multiplier": "fast"}).status_code == 400
    assert controller.speed_multiplier == 1.0
