from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from time import perf_counter
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.clock import FixedRateClock
from ..sim.core.config import SimulationConfig
from ..sim.core.world import World

logger = logging.getLogger(__name__)

# Ticks run per loop iteration before the backlog is dropped.
_MAX_CATCH_UP = 8
# Unacknowledged snapshots kept for slow clients; older ones are dropped.
_MAX_QUEUED_SNAPSHOTS = 64
# Upper bound for a single /api/control/step request.
MAX_STEP_COUNT = 600


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.world = World(config)
        self.clock = FixedRateClock(config.tick_rate, max_catch_up=_MAX_CATCH_UP)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=_MAX_QUEUED_SNAPSHOTS)
        self._ticks_since_broadcast = 0
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def tick(self) -> int:
        return self.world.tick_count

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
        self.running = True
        logger.info("Simulation started")

    async def stop(self) -> None:
        self.running = False
        logger.info("Simulation stopped at tick %d", self.tick)

    async def shutdown(self) -> None:
        self.running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        self.world.close()

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
            self.clock.reset()
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        logger.info("Simulation reset")
        await self._broadcast_snapshot()

    async def step(self, count: int = 1) -> int:
        async with self._lock:
            await asyncio.to_thread(self._run_ticks, count)
            return self.tick

    def _run_ticks(self, count: int) -> None:
        for _ in range(count):
            self.world.tick()

    async def set_target(self, x: float, y: float) -> None:
        async with self._lock:
            self.world.set_target(x, y)
        logger.debug("Target set to (%.1f, %.1f)", x, y)

    async def clear_target(self) -> None:
        async with self._lock:
            self.world.clear_target()
        logger.debug("Target cleared")

    async def toggle_walls(self) -> bool:
        async with self._lock:
            enabled = self.world.toggle_walls()
        logger.debug("Wall evasion %s", "enabled" if enabled else "disabled")
        return enabled

    async def set_leader(self, index: Optional[int]) -> Optional[int]:
        async with self._lock:
            if index is None:
                self.world.clear_leader()
            else:
                self.world.set_leader(index)
            return self.world.leader

    async def toggle_leader(self) -> Optional[int]:
        async with self._lock:
            return self.world.toggle_leader()

    async def _loop(self) -> None:
        last = perf_counter()
        while True:
            await asyncio.sleep(self.clock.tick_length / self.speed_multiplier)
            now = perf_counter()
            elapsed = (now - last) * self.speed_multiplier
            last = now
            if not self.running:
                continue
            async with self._lock:
                ran = await asyncio.to_thread(self.world.run_pending, self.clock, elapsed)
            if not ran:
                continue
            self._ticks_since_broadcast += len(ran)
            if self._ticks_since_broadcast >= self.broadcast_interval:
                self._ticks_since_broadcast = 0
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    async def read_snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            return self.snapshot_payload()

    async def read_status(self) -> Dict[str, Any]:
        async with self._lock:
            metrics = self.world.metrics
            return {
                "running": self.running,
                "tick": self.tick,
                "population": len(self.world.agents),
                "metrics": None if metrics is None else asdict(metrics),
            }

    def snapshot_payload(self) -> Dict[str, Any]:
        """Build the render payload; callers hold ``_lock`` while the loop is live."""
        snapshot = self.world.snapshot()
        return {
            "tick": snapshot.tick,
            "metrics": None if snapshot.metrics is None else asdict(snapshot.metrics),
            "agents": snapshot.agents,
            "world": asdict(snapshot.world),
            "controls": asdict(snapshot.controls),
            "metadata": asdict(snapshot.metadata),
        }

    def _serialize_snapshot(self) -> QueuedSnapshot:
        payload = self.snapshot_payload()
        message = {"type": "snapshot", "tick": payload["tick"], "payload": payload}
        return QueuedSnapshot(tick=payload["tick"], payload=json.dumps(message))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        if not self.clients:
            return
        async with self._lock:
            queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


def _float_field(payload: dict, key: str) -> float:
    try:
        return float(payload[key])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"'{key}' must be a number")


def create_app(controller: SimulationController, autostart: bool = True) -> FastAPI:
    app = FastAPI(title="Boids Flocking Simulation")
    app.state.controller = controller

    @app.on_event("startup")
    async def _startup() -> None:
        if autostart:
            await controller.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await controller.shutdown()

    @app.get("/api/status")
    async def status() -> JSONResponse:
        return JSONResponse(await controller.read_status())

    @app.get("/api/snapshot")
    async def snapshot() -> JSONResponse:
        return JSONResponse(await controller.read_snapshot())

    @app.post("/api/control/start")
    async def start_simulation() -> JSONResponse:
        await controller.start()
        return JSONResponse({"running": True})

    @app.post("/api/control/stop")
    async def stop_simulation() -> JSONResponse:
        await controller.stop()
        return JSONResponse({"running": False})

    @app.post("/api/control/reset")
    async def reset_simulation() -> JSONResponse:
        await controller.reset()
        return JSONResponse({"running": controller.running, "tick": controller.tick})

    @app.post("/api/control/step")
    async def step_simulation(payload: Optional[dict] = None) -> JSONResponse:
        try:
            count = int((payload or {}).get("count", 1))
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="'count' must be an integer")
        if not 1 <= count <= MAX_STEP_COUNT:
            raise HTTPException(status_code=400, detail=f"'count' must be between 1 and {MAX_STEP_COUNT}")
        tick = await controller.step(count)
        return JSONResponse({"tick": tick})

    @app.post("/api/control/speed")
    async def set_speed(payload: dict) -> JSONResponse:
        speed = _float_field({"multiplier": 1.0, **payload}, "multiplier")
        controller.speed_multiplier = max(0.1, min(5.0, speed))
        return JSONResponse({"multiplier": controller.speed_multiplier})

    @app.post("/api/input/target")
    async def set_target(payload: Optional[dict] = None) -> JSONResponse:
        if not payload:
            await controller.clear_target()
            return JSONResponse({"target": None})
        x = _float_field(payload, "x")
        y = _float_field(payload, "y")
        await controller.set_target(x, y)
        return JSONResponse({"target": [x, y]})

    @app.delete("/api/input/target")
    async def clear_target() -> JSONResponse:
        await controller.clear_target()
        return JSONResponse({"target": None})

    @app.post("/api/input/walls/toggle")
    async def toggle_walls() -> JSONResponse:
        enabled = await controller.toggle_walls()
        return JSONResponse({"evade_walls": enabled})

    @app.post("/api/input/leader")
    async def set_leader(payload: dict) -> JSONResponse:
        index = payload.get("index")
        if index is not None and not isinstance(index, int):
            raise HTTPException(status_code=400, detail="'index' must be an integer or null")
        try:
            leader = await controller.set_leader(index)
        except IndexError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return JSONResponse({"leader": leader})

    @app.post("/api/input/leader/toggle")
    async def toggle_leader() -> JSONResponse:
        try:
            leader = await controller.toggle_leader()
        except IndexError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return JSONResponse({"leader": leader})

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        controller.clients.add(websocket)
        controller._client_last_sent[websocket] = -1
        logger.info("Client connected (%d total)", len(controller.clients))
        await controller._send_pending_snapshots(websocket)
        try:
            while True:
                message = await websocket.receive_text()
                try:
                    payload = json.loads(message)
                except json.JSONDecodeError:
                    continue
                if isinstance(payload, dict) and payload.get("type") == "ack":
                    tick = payload.get("tick")
                    if isinstance(tick, int):
                        await controller.acknowledge(tick)
        except WebSocketDisconnect:
            controller.clients.discard(websocket)
            controller._client_last_sent.pop(websocket, None)
            logger.info("Client disconnected (%d remaining)", len(controller.clients))

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    controller = SimulationController(SimulationConfig())
    uvicorn.run(create_app(controller), host="127.0.0.1", port=8000)


__all__ = ["create_app", "MAX_STEP_COUNT", "QueuedSnapshot", "SimulationController"]
