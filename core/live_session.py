"""Background real-time battle session for viewers and the websocket server."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from core.driver import BattleDriver, BattleState

LOGGER = logging.getLogger(__name__)

NoticeCallback = Callable[[dict[str, Any]], None]


@dataclass
class SessionControlState:
    """Mutable thread-safe control state for a running live session."""

    stop_event: threading.Event
    pause_event: threading.Event
    speed_multiplier: float = 1.0
    frame_rate: float = 60.0


class LiveBattleSession:
    """Ticks a battle driver on a background thread at a target frame rate.

    Battle time advances by wall time scaled by the speed multiplier and does
    not advance while paused. Lifecycle notices (``complete``, ``stopped``,
    ``error``) go to ``on_notice``; snapshots keep flowing through the
    driver's own ``on_update``.
    """

    def __init__(
        self,
        driver: BattleDriver,
        on_notice: NoticeCallback | None = None,
        frame_rate: float = 60.0,
    ) -> None:
        if frame_rate <= 0:
            raise ValueError("frame_rate must be > 0")
        self.driver = driver
        self.on_notice = on_notice
        self._thread: threading.Thread | None = None
        self._state = SessionControlState(
            stop_event=threading.Event(),
            pause_event=threading.Event(),
            frame_rate=float(frame_rate),
        )
        self.error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start session in a background daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._state.stop_event.clear()
        self._state.pause_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"battle-{self.driver.battle_id[:8]}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Request cancellation; the battle's completion callback will not fire."""
        self._state.stop_event.set()
        self._state.pause_event.clear()

    def pause(self) -> None:
        self._state.pause_event.set()

    def resume(self) -> None:
        self._state.pause_event.clear()

    def set_speed(self, multiplier: float) -> None:
        """Adjust how fast battle time runs relative to wall time."""
        self._state.speed_multiplier = max(0.01, float(multiplier))

    def join(self, timeout: float | None = None) -> None:
        """Join worker thread for deterministic tests/shutdown."""
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        interval = 1.0 / self._state.frame_rate
        battle_now = 0.0
        try:
            self.driver.start(now=battle_now)
            last_wall = time.monotonic()
            while self.driver.state == BattleState.RUNNING:
                if self._state.stop_event.is_set():
                    break
                time.sleep(interval)
                now_wall = time.monotonic()
                wall_dt = now_wall - last_wall
                last_wall = now_wall
                if self._state.pause_event.is_set():
                    continue
                battle_now += wall_dt * self._state.speed_multiplier
                self.driver.tick(now=battle_now)
        except Exception as exc:
            self.error = exc
            LOGGER.exception("Battle %s failed", self.driver.battle_id)
            # a callback error leaves the driver running; release its maps
            self.driver.stop()
            self._notify({"event": "error", "battleId": self.driver.battle_id, "message": str(exc)})
            return

        if self.driver.state == BattleState.COMPLETED:
            winner = self.driver.winner
            self._notify(
                {
                    "event": "complete",
                    "battleId": self.driver.battle_id,
                    "winner": winner.to_dict() if winner is not None else None,
                    "durationSeconds": self.driver.elapsed,
                }
            )
            return

        self.driver.stop()
        self._notify(
            {
                "event": "stopped",
                "battleId": self.driver.battle_id,
                "frameIndex": self.driver.frame_index,
                "elapsed": self.driver.elapsed,
            }
        )

    def _notify(self, payload: dict[str, Any]) -> None:
        if self.on_notice is None:
            return
        try:
            self.on_notice(payload)
        except Exception:
            LOGGER.exception("Session notice callback failed for battle %s", self.driver.battle_id)
