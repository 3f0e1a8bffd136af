"""Lifecycle and invariant tests for the battle driver."""

from __future__ import annotations

import dataclasses

import pytest

from battle.config_schema import EngineConfig
from battle.entities import Dot, SimulationState
from battle.roster import bot_roster
from battle.settings import BattleConfigError
from core.driver import BattleDriver, BattleRuntimeError, BattleState


class _Recorder:
    def __init__(self) -> None:
        self.snapshots: list[SimulationState] = []
        self.winners: list[Dot] = []

    def on_update(self, state: SimulationState) -> None:
        self.snapshots.append(state)

    def on_complete(self, winner: Dot) -> None:
        self.winners.append(winner)


def _far_roster(sizes: list[float]) -> list[dict]:
    positions = [(100.0, 100.0), (400.0, 300.0), (700.0, 500.0)]
    return [
        {"id": f"d{i}", "name": f"Dot{i}", "x": x, "y": y, "size": size, "speed": 1.0, "power": None}
        for i, (size, (x, y)) in enumerate(zip(sizes, positions))
    ]


def _driver(roster, recorder: _Recorder, **kwargs) -> BattleDriver:
    kwargs.setdefault("seed", 1234)
    kwargs.setdefault("wall_clock", lambda: 1_700_000_000.0)
    return BattleDriver(roster, recorder.on_update, recorder.on_complete, **kwargs)


def _crowded_config() -> EngineConfig:
    return dataclasses.replace(EngineConfig(), arena_width=160.0, arena_height=160.0)


def test_battle_terminates_with_single_completion() -> None:
    recorder = _Recorder()
    driver = _driver(bot_roster(12), recorder, settings={"battleDurationMinutes": 0.5})
    winner = driver.run_simulated(frame_interval=0.05)

    assert winner is not None
    assert driver.state == BattleState.COMPLETED
    assert len(recorder.winners) == 1
    assert recorder.winners[0].dot_id == winner.dot_id

    final = recorder.snapshots[-1]
    assert not final.in_progress
    assert final.winner is not None and final.winner.dot_id == winner.dot_id
    assert final.elapsed <= driver.total_duration
    assert all(state.in_progress for state in recorder.snapshots[:-1])

    assert driver.tick(now=driver.total_duration + 5.0) is False
    assert len(recorder.winners) == 1


def test_single_dot_wins_immediately() -> None:
    recorder = _Recorder()
    driver = _driver([{"id": "solo", "name": "Solo"}], recorder)
    snapshot = driver.start(now=0.0)

    assert driver.state == BattleState.COMPLETED
    assert not snapshot.in_progress
    assert snapshot.winner is not None and snapshot.winner.dot_id == "solo"
    assert [w.dot_id for w in recorder.winners] == ["solo"]
    assert snapshot.elimination_log == ()


def test_elimination_log_is_monotonic_and_conserves_dots() -> None:
    recorder = _Recorder()
    roster = bot_roster(10)
    driver = _driver(roster, recorder, config=_crowded_config(), settings={"intensity": "chaos"})
    driver.run_simulated(frame_interval=0.05)

    final = recorder.snapshots[-1]
    assert final.elimination_log, "crowded arena should produce eliminations"
    elapsed = [event.elapsed for event in final.elimination_log]
    assert elapsed == sorted(elapsed)
    eliminated = [event.eliminated_id for event in final.elimination_log]
    assert len(eliminated) == len(set(eliminated))

    previous_log = 0
    for state in recorder.snapshots:
        assert state.active_count + len(state.elimination_log) == len(roster)
        assert len(state.elimination_log) >= previous_log
        previous_log = len(state.elimination_log)
        alive = {dot.dot_id for dot in state.dots}
        assert not alive & {event.eliminated_id for event in state.elimination_log}
        assert all(dot.size >= driver.config.min_size for dot in state.dots)


def test_timeout_picks_largest_dot() -> None:
    recorder = _Recorder()
    driver = _driver(_far_roster([5.0, 12.0, 8.0]), recorder)
    driver.start(now=0.0)
    assert driver.tick(now=driver.total_duration) is False

    assert driver.winner is not None and driver.winner.dot_id == "d1"
    assert driver.finish_reason == "timeout"
    assert [w.dot_id for w in recorder.winners] == ["d1"]
    final = recorder.snapshots[-1]
    assert final.elapsed == pytest.approx(driver.total_duration)
    assert final.metadata["finish_reason"] == "timeout"
    assert final.active_count == 3


def test_stop_cancels_without_completion() -> None:
    recorder = _Recorder()
    driver = _driver(_far_roster([9.0, 10.0, 11.0]), recorder)
    driver.start(now=0.0)
    for frame in range(1, 4):
        assert driver.tick(now=frame / 60.0)

    assert driver.stop()
    assert driver.state == BattleState.STOPPED
    assert driver.tick(now=1.0) is False
    assert not driver.stop()
    assert recorder.winners == []
    assert len(recorder.snapshots) == 4


def test_final_phase_turns_everyone_berserk() -> None:
    recorder = _Recorder()
    driver = _driver(_far_roster([9.0, 10.0, 11.0]), recorder)
    driver.start(now=0.0)
    assert driver.tick(now=driver.total_duration * 0.95)

    state = recorder.snapshots[-1]
    assert state.phase == "final"
    assert state.metadata["berserkers"] == 3.0
    assert all(p.berserker for p in driver.arena.personalities.values())


@pytest.mark.parametrize(
    "roster",
    [
        [],
        [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}],
        [{"id": "a", "name": "A"}, {"id": "b", "name": "A"}],
        [{"id": "a"}],
        [{"id": "a", "name": "A", "size": 3.0}],
        ["Ada", "Brick"],
        [{"id": "a", "name": "A", "x": float("nan")}],
        [{"id": "a", "name": "A", "size": float("inf")}],
    ],
)
def test_invalid_rosters_raise(roster: list[dict]) -> None:
    with pytest.raises(BattleConfigError):
        _driver(roster, _Recorder())


def test_invalid_settings_raise() -> None:
    with pytest.raises(BattleConfigError):
        _driver(bot_roster(3), _Recorder(), settings={"powerChance": 2.0})
    with pytest.raises(BattleConfigError):
        _driver(bot_roster(3), _Recorder(), config=dataclasses.replace(EngineConfig(), arena_width=0.0))


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
@pytest.mark.parametrize(
    "key", ["speedMultiplier", "aggressionMultiplier", "powerChance", "battleDurationMinutes", "arenaShrinksAt"]
)
def test_non_finite_settings_raise(key: str, value: float) -> None:
    with pytest.raises(BattleConfigError, match="finite"):
        _driver(bot_roster(4), _Recorder(), settings={key: value})


@pytest.mark.parametrize("field_name", ["damping", "max_speed", "arena_width", "elimination_margin", "wall_attrition"])
def test_non_finite_engine_constants_raise(field_name: str) -> None:
    config = dataclasses.replace(EngineConfig(), **{field_name: float("nan")})
    with pytest.raises(BattleConfigError, match="finite"):
        _driver(bot_roster(4), _Recorder(), config=config)


def test_driver_is_single_use() -> None:
    driver = _driver(bot_roster(3), _Recorder())
    driver.start(now=0.0)
    with pytest.raises(BattleRuntimeError):
        driver.start(now=1.0)


def test_frame_failure_marks_driver_failed() -> None:
    recorder = _Recorder()
    driver = _driver(_far_roster([9.0, 10.0, 11.0]), recorder)
    driver.start(now=0.0)
    good = driver.last_snapshot

    def _boom(*_args, **_kwargs):
        raise ValueError("bad frame")

    driver.arena.step = _boom
    with pytest.raises(BattleRuntimeError, match="bad frame") as excinfo:
        driver.tick(now=0.1)
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert driver.state == BattleState.FAILED
    assert driver.last_snapshot is good
    assert recorder.winners == []


def test_update_callback_errors_propagate() -> None:
    def _fail(_state: SimulationState) -> None:
        raise RuntimeError("viewer down")

    driver = BattleDriver(bot_roster(3), _fail, lambda _w: None, seed=1)
    with pytest.raises(RuntimeError, match="viewer down"):
        driver.start(now=0.0)


def test_snapshots_are_detached_copies() -> None:
    recorder = _Recorder()
    driver = _driver(_far_roster([9.0, 10.0, 11.0]), recorder)
    snapshot = driver.start(now=0.0)
    snapshot.dots[0].size = 99.0
    assert driver.dots[0].size == 9.0


def test_same_seed_replays_identically() -> None:
    def _run() -> tuple[str, list, dict]:
        recorder = _Recorder()
        driver = _driver(bot_roster(10), recorder, config=_crowded_config(), seed=77)
        winner = driver.run_simulated(frame_interval=0.05)
        assert winner is not None
        final = recorder.snapshots[-1]
        return driver.battle_id, [e.to_dict() for e in final.elimination_log], final.to_dict()

    assert _run() == _run()


def test_run_simulated_respects_max_frames() -> None:
    recorder = _Recorder()
    driver = _driver(bot_roster(5), recorder)
    assert driver.run_simulated(frame_interval=0.05, max_frames=10) is None
    assert driver.state == BattleState.RUNNING
    assert driver.frame_index == 10
    with pytest.raises(ValueError):
        driver.run_simulated(frame_interval=0.0)


def test_shield_protects_only_while_active_on_battle_clock() -> None:
    recorder = _Recorder()
    config = dataclasses.replace(EngineConfig(), max_speed=0.01, min_speed=0.005)
    shield = {"type": "shield", "duration": 500.0, "cooldown": 60000.0, "active": True, "lastUsed": 0.0}
    roster = [
        {"id": "big", "name": "Big", "x": 400.0, "y": 300.0, "size": 20.0, "speed": 1.0, "power": None},
        {"id": "small", "name": "Small", "x": 402.0, "y": 300.0, "size": 8.0, "speed": 1.0, "power": shield},
    ]
    driver = _driver(roster, recorder, config=config)
    driver.start(now=0.0)

    for now in (0.1, 0.2, 0.3, 0.4):
        assert driver.tick(now=now)
        state = recorder.snapshots[-1]
        assert state.active_count == 2
        assert state.metadata["shielded_pairs"] == [["big", "small"]]

    assert driver.tick(now=0.5) is False
    assert driver.winner is not None and driver.winner.dot_id == "big"
    assert [w.dot_id for w in recorder.winners] == ["big"]
    event = driver.elimination_log[0]
    assert (event.eliminator_id, event.eliminated_id) == ("big", "small")
    assert event.elapsed == pytest.approx(0.5)
