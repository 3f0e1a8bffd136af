from __future__ import annotations

import dataclasses
import time

import pytest

from battle.config_schema import EngineConfig
from battle.roster import bot_roster
from core.driver import BattleDriver, BattleState
from core.live_session import LiveBattleSession


def _driver(completions: list, updates: list, seconds: float) -> BattleDriver:
    config = dataclasses.replace(EngineConfig(), min_battle_seconds=seconds, max_battle_seconds=seconds)
    return BattleDriver(
        bot_roster(5),
        on_update=updates.append,
        on_complete=completions.append,
        config=config,
        seed=8,
    )


def test_live_session_runs_battle_to_completion() -> None:
    notices: list[dict] = []
    completions: list = []
    updates: list = []
    driver = _driver(completions, updates, seconds=1.0)

    session = LiveBattleSession(driver, on_notice=notices.append, frame_rate=120.0)
    session.set_speed(10.0)
    session.start()
    session.join(timeout=5)

    assert driver.state == BattleState.COMPLETED
    assert len(completions) == 1
    assert [n["event"] for n in notices] == ["complete"]
    assert notices[0]["winner"]["id"] == completions[0].dot_id
    assert updates[-1].in_progress is False
    assert session.error is None


def test_live_session_stop_cancels_battle() -> None:
    notices: list[dict] = []
    completions: list = []
    updates: list = []
    driver = _driver(completions, updates, seconds=60.0)

    session = LiveBattleSession(driver, on_notice=notices.append)
    session.start()
    time.sleep(0.1)
    assert session.running
    session.stop()
    session.join(timeout=3)

    assert not session.running
    assert driver.state == BattleState.STOPPED
    assert completions == []
    assert [n["event"] for n in notices] == ["stopped"]
    assert notices[0]["battleId"] == driver.battle_id


def test_live_session_pause_freezes_battle_clock() -> None:
    updates: list = []
    driver = _driver([], updates, seconds=60.0)
    session = LiveBattleSession(driver, frame_rate=100.0)
    session.start()
    time.sleep(0.1)
    session.pause()
    time.sleep(0.05)
    frozen = driver.frame_index
    time.sleep(0.1)
    assert driver.frame_index == frozen

    session.resume()
    time.sleep(0.1)
    session.stop()
    session.join(timeout=3)
    assert driver.frame_index > frozen


def test_live_session_reports_frame_errors() -> None:
    notices: list[dict] = []
    driver = _driver([], [], seconds=60.0)

    def _boom(*_args, **_kwargs):
        raise ValueError("arena exploded")

    driver.arena.step = _boom
    session = LiveBattleSession(driver, on_notice=notices.append)
    session.start()
    session.join(timeout=3)

    assert driver.state == BattleState.FAILED
    assert notices[0]["event"] == "error"
    assert "arena exploded" in notices[0]["message"]
    assert session.error is not None


def test_live_session_rejects_bad_frame_rate() -> None:
    with pytest.raises(ValueError):
        LiveBattleSession(_driver([], [], seconds=60.0), frame_rate=0)


def test_live_session_stops_driver_when_update_callback_fails() -> None:
    notices: list[dict] = []
    config = dataclasses.replace(EngineConfig(), min_battle_seconds=60.0, max_battle_seconds=60.0)

    def _viewer_down(_state) -> None:
        raise RuntimeError("viewer down")

    driver = BattleDriver(bot_roster(5), on_update=_viewer_down, on_complete=lambda _w: None, config=config, seed=8)
    session = LiveBattleSession(driver, on_notice=notices.append)
    session.start()
    session.join(timeout=3)

    assert not session.running
    assert isinstance(session.error, RuntimeError)
    assert driver.state == BattleState.STOPPED
    assert driver.arena.velocities == {}
    assert driver.arena.personalities == {}
    assert [n["event"] for n in notices] == ["error"]
