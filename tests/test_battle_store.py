"""Tests for SQLite battle persistence and the driver sync adapter."""

from __future__ import annotations

import dataclasses
import sqlite3
import threading
import time

import pytest

from battle.config_schema import EngineConfig
from battle.roster import bot_roster
from core.battle_sync import COMPLETE_EVENT, SNAPSHOT_EVENT, BattleSync
from core.config_loader import BattleConfig
from core.event_bus import EventBus
from data.battle_store import BattleStore
from main import build_driver


def _short_config() -> BattleConfig:
    engine = dataclasses.replace(
        EngineConfig(),
        arena_width=160.0,
        arena_height=160.0,
        min_battle_seconds=3.0,
        max_battle_seconds=3.0,
    )
    return BattleConfig(engine=engine, seed=21)


def test_store_persists_completed_battle(tmp_path) -> None:
    db_path = tmp_path / "battles.db"
    store = BattleStore(db_path)
    driver, sync = build_driver(bot_roster(6), config=_short_config(), store=store)
    winner = driver.run_simulated(frame_interval=0.05)
    sync.close()
    final = driver.last_snapshot
    assert winner is not None and final is not None

    record = store.fetch_battle(driver.battle_id)
    assert record is not None
    assert record["status"] == "completed"
    assert record["winner_id"] == winner.dot_id
    assert record["winner_name"] == winner.name
    assert record["seed"] == 21
    assert record["roster_size"] == 6
    assert record["duration_seconds"] == final.elapsed
    assert record["settings"]["powerFrequency"] == "normal"

    samples = store.fetch_samples(driver.battle_id)
    assert samples[0]["frame_index"] == 0
    assert samples[0]["active_count"] == 6
    assert samples[-1]["frame_index"] == final.frame_index
    assert [row["frame_index"] for row in samples] == sorted({row["frame_index"] for row in samples})

    eliminations = store.fetch_eliminations(driver.battle_id)
    assert len(eliminations) == len(final.elimination_log)
    assert [row["sequence"] for row in eliminations] == list(range(len(eliminations)))

    live = store.fetch_live_state(driver.battle_id)
    assert live is not None
    assert live["inProgress"] is False
    assert live["frameIndex"] == final.frame_index
    assert store.latest_battle_id() == driver.battle_id
    assert sync.completed
    store.close()

    conn = sqlite3.connect(db_path)
    live_rows = conn.execute("SELECT COUNT(*) FROM live_state").fetchone()[0]
    conn.close()
    assert live_rows == 1


def test_sync_persists_live_state_every_interval(tmp_path) -> None:
    store = BattleStore(tmp_path / "b.db")
    driver, sync = build_driver(bot_roster(4), config=_short_config(), store=store, persist_every=30)
    driver.run_simulated(frame_interval=0.05)
    sync.flush()

    assert sync.persisted_frames[0] == 0
    assert all(frame % 30 == 0 for frame in sync.persisted_frames[:-1])
    assert sync.persisted_frames[-1] == driver.last_snapshot.frame_index
    sync.close()
    store.close()


def test_sync_marks_stopped_battles(tmp_path) -> None:
    store = BattleStore(tmp_path / "b.db")
    driver, sync = build_driver(bot_roster(4), config=_short_config(), store=store)
    driver.start(now=0.0)
    driver.stop()
    sync.mark_stopped()
    sync.close()

    record = store.fetch_battle(driver.battle_id)
    assert record is not None
    assert record["status"] == "stopped"
    assert record["winner_id"] is None
    store.close()


def test_sync_publishes_on_event_bus() -> None:
    bus = EventBus()
    snapshots: list = []
    completions: list = []
    lock = threading.Lock()

    def _on_snapshot(state) -> None:
        with lock:
            snapshots.append(state.frame_index)

    def _on_complete(payload) -> None:
        with lock:
            completions.append(payload)

    bus.subscribe(SNAPSHOT_EVENT, _on_snapshot)
    bus.subscribe(COMPLETE_EVENT, _on_complete)
    driver, _ = build_driver(bot_roster(4), config=_short_config(), bus=bus)
    winner = driver.run_simulated(frame_interval=0.05)
    time.sleep(0.1)
    bus.close()

    assert winner is not None
    assert 0 in snapshots
    assert len(completions) == 1
    assert completions[0]["winner"]["id"] == winner.dot_id
    assert completions[0]["battleId"] == driver.battle_id


def test_sync_rejects_bad_interval() -> None:
    with pytest.raises(ValueError):
        BattleSync(persist_every=0)


class _GatedStore:
    """Store stand-in whose writes wait until the test opens the gate."""

    def __init__(self) -> None:
        self.gate = threading.Event()
        self.calls: list[tuple[str, int]] = []

    def start_battle(self, **_kwargs) -> None:
        self.calls.append(("start", -1))

    def record_frame_sample(self, _battle_id: str, sample) -> None:
        assert self.gate.wait(timeout=5)
        self.calls.append(("sample", sample.frame_index))

    def save_live_state(self, state) -> None:
        self.calls.append(("live", state.frame_index))

    def complete_battle(self, _battle_id: str, **_kwargs) -> None:
        self.calls.append(("complete", -1))

    def mark_status(self, _battle_id: str, status: str) -> None:
        self.calls.append((status, -1))


def test_sync_update_does_not_wait_on_the_store() -> None:
    store = _GatedStore()
    driver, sync = build_driver(bot_roster(4), config=BattleConfig(seed=3), store=store, persist_every=2)

    started = time.monotonic()
    driver.run_simulated(frame_interval=0.05, max_frames=4)
    assert time.monotonic() - started < 2.0
    assert store.calls == [("start", -1)]

    driver.stop()
    store.gate.set()
    sync.close()
    samples = [frame for kind, frame in store.calls if kind == "sample"]
    assert samples == [0, 1, 2, 3, 4]
    assert [frame for kind, frame in store.calls if kind == "live"] == [0, 2, 4]


def test_sync_writes_final_frame_before_completion() -> None:
    store = _GatedStore()
    store.gate.set()
    driver, sync = build_driver(bot_roster(4), config=_short_config(), store=store)
    driver.run_simulated(frame_interval=0.05)
    sync.close()

    final_index = driver.last_snapshot.frame_index
    assert store.calls[-3:] == [("sample", final_index), ("live", final_index), ("complete", -1)]
