"""Frame-step tests for the per-battle arena."""

from __future__ import annotations

import dataclasses
import random

import pytest

from battle.arena import BattleArena
from battle.config_schema import EngineConfig
from battle.entities import Dot, Power, PowerKind, Velocity
from battle.personality import Personality
from battle.phases import PhaseController
from battle.settings import BattleSettings

FRAME = 1.0 / 60.0


def _dot(dot_id: str, x: float, y: float, size: float = 10.0, power: Power | None = None) -> Dot:
    return Dot(dot_id=dot_id, name=dot_id.upper(), x=x, y=y, size=size, color="c", speed=1.0, power=power)


def _phase(progress: float):
    return PhaseController(EngineConfig(), BattleSettings()).evaluate(progress * 100.0, 100.0)


def _arena(dots: list[Dot], config: EngineConfig | None = None, power_seed: int = 5) -> BattleArena:
    arena = BattleArena(
        dots=dots,
        config=config or EngineConfig(),
        settings=BattleSettings(),
        behavior_rng=random.Random(1),
        physics_rng=random.Random(2),
        power_rng=random.Random(power_seed),
    )
    arena.reset()
    # passive personalities: never flee, never chase
    for dot in dots:
        arena.personalities[dot.dot_id] = Personality(aggression=0.0, cowardice=0.0, pack_hunter=False)
    return arena


@pytest.mark.parametrize(
    "progress, expected_size",
    [(0.1, 10.0), (0.5, 10.0), (0.75, 9.9), (0.95, 9.9)],
)
def test_wall_attrition_only_in_closing_phases(progress: float, expected_size: float) -> None:
    dot = _dot("a", x=1.0, y=300.0)
    arena = _arena([dot])
    arena.velocities["a"] = Velocity(-4.0, 0.0)

    report = arena.step(FRAME, progress * 100.0, 0.0, _phase(progress))

    assert report.wall_hits == ["a"]
    assert dot.size == pytest.approx(expected_size)
    assert dot.x >= _phase(progress).arena.left + dot.size


def test_teleport_replaces_integration_for_the_frame() -> None:
    config = dataclasses.replace(EngineConfig(), teleport_rate=1000.0)
    power = Power(kind=PowerKind.TELEPORT, duration_ms=5000.0, cooldown_ms=15000.0, active=True, last_used_ms=0.0)
    dot = _dot("a", x=400.0, y=300.0, power=power)
    arena = _arena([dot], config=config, power_seed=11)

    report = arena.step(FRAME, 1.0, 0.0, _phase(0.01))

    expected = random.Random(11)
    expected.random()
    assert report.teleported == ["a"]
    assert dot.x == pytest.approx(expected.uniform(10.0, 790.0))
    assert dot.y == pytest.approx(expected.uniform(10.0, 590.0))
    assert arena.velocities["a"].magnitude == pytest.approx(dot.speed)


def test_powers_activate_and_expire_on_battle_clock() -> None:
    config = dataclasses.replace(EngineConfig(), power_activation_rate=1e6)
    power = Power(kind=PowerKind.SPEED, duration_ms=500.0, cooldown_ms=2000.0)
    arena = _arena([_dot("a", x=400.0, y=300.0, power=power)], config=config)
    phase = _phase(0.01)

    assert arena.step(FRAME, 1.0, 0.0, phase).activated_powers == ["a"]
    assert power.active and power.last_used_ms == 1000.0

    assert arena.step(FRAME, 1.2, 0.0, phase).activated_powers == []
    assert power.active

    arena.step(FRAME, 1.5, 0.0, phase)
    assert not power.active

    # still cooling down
    assert arena.step(FRAME, 2.0, 0.0, phase).activated_powers == []
    assert not power.active

    assert arena.step(FRAME, 3.0, 0.0, phase).activated_powers == ["a"]
    assert power.last_used_ms == 3000.0


def test_berserk_conversion_happens_once_in_final_phase() -> None:
    arena = _arena([_dot("a", x=300.0, y=300.0), _dot("b", x=500.0, y=300.0)])

    assert not arena.step(FRAME, 50.0, 0.0, _phase(0.5)).berserk_conversion
    assert not any(p.berserker for p in arena.personalities.values())

    assert arena.step(FRAME, 95.0, 0.0, _phase(0.95)).berserk_conversion
    assert all(p.berserker for p in arena.personalities.values())
    assert all(p.aggression == pytest.approx(0.2) for p in arena.personalities.values())

    assert not arena.step(FRAME, 96.0, 0.0, _phase(0.96)).berserk_conversion


def test_step_prunes_eliminated_dots_and_their_maps() -> None:
    arena = _arena([_dot("big", x=400.0, y=300.0, size=20.0), _dot("small", x=402.0, y=300.0, size=8.0)])

    report = arena.step(FRAME, 1.0, 1234.0, _phase(0.01))

    assert report.outcome.eliminated_ids == {"small"}
    assert report.outcome.events[0].timestamp == 1234.0
    assert [dot.dot_id for dot in arena.dots] == ["big"]
    assert set(arena.velocities) == {"big"}
    assert set(arena.personalities) == {"big"}


def test_release_clears_per_battle_maps() -> None:
    arena = _arena([_dot("a", x=300.0, y=300.0), _dot("b", x=500.0, y=300.0)])
    arena.release()
    assert arena.velocities == {}
    assert arena.personalities == {}


def test_largest_dot_tie_breaks() -> None:
    first = _dot("a", x=100.0, y=100.0, size=12.0)
    second = _dot("b", x=300.0, y=300.0, size=12.0)
    third = _dot("c", x=500.0, y=500.0, size=9.0)
    arena = _arena([first, second, third])
    assert arena.largest_dot() is first

    second.eliminations = 2
    assert arena.largest_dot() is second
