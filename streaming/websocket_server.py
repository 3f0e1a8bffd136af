"""Battle snapshot websocket streaming server and broadcaster."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import websockets

from battle.entities import SimulationState
from streaming.state_serializer import serialize_state

LOGGER = logging.getLogger(__name__)

MODES = ("full_state", "positions_only", "kill_feed")
KILL_FEED_LENGTH = 10


@dataclass
class _Client:
    websocket: Any
    mode: str = "full_state"
    queue: asyncio.Queue[bytes] = field(default_factory=lambda: asyncio.Queue(maxsize=1))


def _parse_mode(message: Any) -> str:
    if not isinstance(message, str):
        return "full_state"
    try:
        payload = json.loads(message)
    except json.JSONDecodeError:
        return "full_state"
    mode = payload.get("mode", "full_state") if isinstance(payload, dict) else "full_state"
    return mode if mode in MODES else "full_state"


class SnapshotServer:
    """Broadcast battle snapshots to websocket clients with backpressure control.

    Each client holds at most one pending frame; a newer frame replaces a
    stale one. Clients pick a view by sending ``{"mode": ...}`` first.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8765, max_fps: int = 30) -> None:
        self.host = host
        self.port = port
        self.max_fps = max(1, max_fps)
        self._min_interval = 1.0 / self.max_fps
        self._last_broadcast = 0.0
        self._last_sent: tuple[str, int, bool] | None = None
        self._clients: list[_Client] = []
        self._server = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        """Start websocket listener."""

        async def _handler(ws: Any) -> None:
            try:
                first_msg = await asyncio.wait_for(ws.recv(), timeout=1.0)
            except (asyncio.TimeoutError, websockets.ConnectionClosed):
                first_msg = None
            client = _Client(websocket=ws, mode=_parse_mode(first_msg))
            self._clients.append(client)
            sender = asyncio.create_task(self._sender_loop(client))
            try:
                await ws.wait_closed()
            finally:
                if client in self._clients:
                    self._clients.remove(client)
                sender.cancel()

        self._server = await websockets.serve(_handler, self.host, self.port)
        LOGGER.info("Snapshot server listening on ws://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop listener and disconnect clients."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    def add_client(self, websocket: Any, mode: str = "full_state") -> asyncio.Task:
        """Attach an already-open connection and start its sender."""
        client = _Client(websocket=websocket, mode=mode if mode in MODES else "full_state")
        self._clients.append(client)
        return asyncio.create_task(self._sender_loop(client))

    async def _sender_loop(self, client: _Client) -> None:
        while True:
            frame = await client.queue.get()
            try:
                await client.websocket.send(frame)
            except websockets.ConnectionClosed:
                if client in self._clients:
                    self._clients.remove(client)
                return

    async def broadcast(self, state: SimulationState) -> None:
        """Broadcast a snapshot, dropping stale frames on backpressure.

        Frames arriving faster than ``max_fps`` are skipped, except the final
        one of a battle. A frame older than the last one sent for the same
        battle is dropped, as is anything after that battle's final frame, so
        viewers only ever see time move forward.
        """
        key = (state.battle_id, state.frame_index, not state.in_progress)
        last = self._last_sent
        if last is not None and last[0] == state.battle_id and (last[2] or key[1:] <= last[1:]):
            LOGGER.debug("Dropping out-of-order frame %d of battle %s", state.frame_index, state.battle_id)
            return
        now = time.monotonic()
        if state.in_progress and (now - self._last_broadcast) < self._min_interval:
            return
        self._last_broadcast = now
        self._last_sent = key

        for client in list(self._clients):
            frame = serialize_state(self._apply_filter(state, client.mode))
            if client.queue.full():
                try:
                    client.queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            client.queue.put_nowait(frame)

    def _apply_filter(self, state: SimulationState, mode: str) -> Any:
        if mode == "positions_only":
            return {
                "battleId": state.battle_id,
                "frameIndex": state.frame_index,
                "elapsed": state.elapsed,
                "phase": state.phase,
                "arena": state.arena,
                "dots": [
                    {"id": dot.dot_id, "x": dot.x, "y": dot.y, "size": dot.size, "color": dot.color}
                    for dot in state.dots
                ],
            }
        if mode == "kill_feed":
            return {
                "battleId": state.battle_id,
                "frameIndex": state.frame_index,
                "activeCount": state.active_count,
                "eliminations": list(state.elimination_log[-KILL_FEED_LENGTH:]),
                "winner": state.winner,
                "inProgress": state.in_progress,
            }
        return state
