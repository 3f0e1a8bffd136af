"""Adapter from driver callbacks to the battle store and the event bus."""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from battle.entities import Dot, SimulationState
from core.event_bus import EventBus
from data.battle_store import BattleStore, FrameSample

LOGGER = logging.getLogger(__name__)

SNAPSHOT_EVENT = "snapshot"
COMPLETE_EVENT = "complete"


class BattleSync:
    """Persists and republishes what a :class:`core.driver.BattleDriver` emits.

    Live state is written every ``persist_every`` frames plus the final frame;
    frame samples are written every frame. Writes run in order on a single
    writer thread, so ``on_update`` only enqueues and never waits on the
    store. Call ``flush`` before reading the store back and ``close`` when the
    battle is done. Store failures are logged and the battle keeps running.
    """

    def __init__(
        self,
        store: BattleStore | None = None,
        bus: EventBus | None = None,
        persist_every: int = 30,
        on_winner: Callable[[Dot], None] | None = None,
    ) -> None:
        if persist_every < 1:
            raise ValueError("persist_every must be >= 1")
        self.store = store
        self.bus = bus
        self.persist_every = int(persist_every)
        self.on_winner = on_winner
        self.battle_id: str | None = None
        self.last_state: SimulationState | None = None
        self.persisted_frames: list[int] = []
        self.completed = False
        self._writer: ThreadPoolExecutor | None = None
        if store is not None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="battle-store")

    def bind(self, driver) -> None:
        """Register the battle row before the driver starts."""
        self.battle_id = driver.battle_id
        if self.store is not None:
            self.store.start_battle(
                battle_id=driver.battle_id,
                seed=driver.seed,
                settings=driver.settings.to_dict(),
                roster_size=driver.initial_count,
                total_duration=driver.total_duration,
            )

    def on_update(self, state: SimulationState) -> None:
        self.last_state = state
        if self.bus is not None:
            self.bus.publish(SNAPSHOT_EVENT, state)
        if self._writer is not None:
            self._writer.submit(self._persist, state)
        elif self.store is not None:
            LOGGER.warning("Sync for battle %s is closed; frame %d not persisted", self.battle_id, state.frame_index)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write queued so far has reached the store."""
        if self._writer is not None:
            self._writer.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        """Finish queued writes and stop the writer thread."""
        if self._writer is not None:
            self._writer.shutdown(wait=True)
            self._writer = None

    def _persist(self, state: SimulationState) -> None:
        try:
            self.store.record_frame_sample(
                state.battle_id,
                FrameSample(
                    frame_index=state.frame_index,
                    elapsed=state.elapsed,
                    active_count=state.active_count,
                    largest_size=max((dot.size for dot in state.dots), default=0.0),
                    phase=state.phase,
                ),
            )
            if state.frame_index % self.persist_every == 0 or not state.in_progress:
                self.store.save_live_state(state)
                self.persisted_frames.append(state.frame_index)
            if not state.in_progress:
                self.store.complete_battle(
                    state.battle_id,
                    winner=state.winner,
                    final_state=state,
                    duration_seconds=state.elapsed,
                )
        except sqlite3.Error:
            LOGGER.exception("Failed to persist frame %d of battle %s", state.frame_index, state.battle_id)

    def on_complete(self, winner: Dot) -> None:
        self.completed = True
        LOGGER.info("Battle %s winner: %s (%d eliminations)", self.battle_id, winner.name, winner.eliminations)
        if self.bus is not None:
            self.bus.publish(
                COMPLETE_EVENT,
                {
                    "battleId": self.battle_id,
                    "winner": winner.to_dict(),
                    "durationSeconds": self.last_state.elapsed if self.last_state is not None else 0.0,
                },
            )
        if self.on_winner is not None:
            self.on_winner(winner)

    def mark_stopped(self) -> None:
        if self.store is None or self.battle_id is None:
            return
        self.flush()
        try:
            self.store.mark_status(self.battle_id, "stopped")
        except sqlite3.Error:
            LOGGER.exception("Failed to mark battle %s stopped", self.battle_id)
