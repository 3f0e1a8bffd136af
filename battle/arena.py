"""Per-battle arena: owns velocities and personalities and steps one frame."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

from battle.config_schema import EngineConfig
from battle.elimination import EliminationOutcome, resolve_eliminations
from battle.entities import Dot, Velocity
from battle.personality import Personality, assign_personality, choose_intent
from battle.phases import BattlePhase, PhaseInfo
from battle.physics import (
    apply_damping,
    apply_steering,
    apply_wall_attrition,
    bounce_off_walls,
    clamp_speed,
    integrate_position,
)
from battle.powers import apply_grow, speed_boost, try_teleport, update_power
from battle.settings import BattleSettings


@dataclass
class FrameReport:
    """What happened during one arena frame."""

    outcome: EliminationOutcome
    activated_powers: list[str] = field(default_factory=list)
    teleported: list[str] = field(default_factory=list)
    wall_hits: list[str] = field(default_factory=list)
    berserk_conversion: bool = False


class BattleArena:
    """Mutable world of one battle.

    Velocity and personality maps are keyed by dot id and live only as long
    as this instance; independent battles never share them.
    """

    def __init__(
        self,
        dots: list[Dot],
        config: EngineConfig,
        settings: BattleSettings,
        behavior_rng: random.Random,
        physics_rng: random.Random,
        power_rng: random.Random,
    ) -> None:
        self.dots = dots
        self.config = config
        self.settings = settings
        self.behavior_rng = behavior_rng
        self.physics_rng = physics_rng
        self.power_rng = power_rng
        self.velocities: dict[str, Velocity] = {}
        self.personalities: dict[str, Personality] = {}
        self.berserk = False

    def reset(self) -> None:
        """Assign starting velocities and personalities to every dot."""
        self.velocities = {}
        self.personalities = {}
        self.berserk = False
        for dot in self.dots:
            heading = self.physics_rng.uniform(0.0, math.tau)
            self.velocities[dot.dot_id] = Velocity(math.cos(heading) * dot.speed, math.sin(heading) * dot.speed)
            self.personalities[dot.dot_id] = assign_personality(
                self.behavior_rng, self.config, self.settings.aggression_multiplier
            )

    def release(self) -> None:
        self.velocities.clear()
        self.personalities.clear()

    def step(self, dt: float, elapsed: float, timestamp: float, phase: PhaseInfo) -> FrameReport:
        """Advance one frame: behavior, movement, eliminations, pruning."""
        report = FrameReport(outcome=EliminationOutcome())
        now_ms = elapsed * 1000.0

        if phase.phase == BattlePhase.FINAL and not self.berserk:
            for personality in self.personalities.values():
                personality.make_berserker(self.config)
            self.berserk = True
            report.berserk_conversion = True

        for dot in self.dots:
            velocity = self.velocities[dot.dot_id]
            personality = self.personalities[dot.dot_id]

            if dot.power is not None:
                if update_power(dot.power, now_ms, dt, phase.aggression_multiplier, self.power_rng, self.config):
                    report.activated_powers.append(dot.dot_id)

            intent = choose_intent(
                dot, self.dots, personality, self.personalities, phase, self.behavior_rng, self.config
            )
            apply_steering(dot, velocity, intent, phase, dt, self.config)
            apply_damping(velocity, dt, self.config)
            clamp_speed(velocity, phase, self.physics_rng, self.config)

            if try_teleport(dot, velocity, phase.arena, dt, self.power_rng, self.config):
                report.teleported.append(dot.dot_id)
            else:
                integrate_position(dot, velocity, speed_boost(dot, self.config), dt, self.config)
            apply_grow(dot, dt, self.config)

            if bounce_off_walls(dot, velocity, phase.arena, self.config):
                report.wall_hits.append(dot.dot_id)
                if phase.is_closing:
                    apply_wall_attrition(dot, self.config)
                clamp_speed(velocity, phase, self.physics_rng, self.config)

        report.outcome = resolve_eliminations(
            self.dots, self.personalities, phase, timestamp, elapsed, self.config
        )
        if report.outcome.eliminated_ids:
            self.prune(report.outcome.eliminated_ids)
        return report

    def prune(self, eliminated_ids: set[str]) -> None:
        self.dots = [dot for dot in self.dots if dot.dot_id not in eliminated_ids]
        for dot_id in eliminated_ids:
            self.velocities.pop(dot_id, None)
            self.personalities.pop(dot_id, None)

    def largest_dot(self) -> Dot | None:
        """Forced tie-break: size, then eliminations, then roster order."""
        best: Dot | None = None
        for dot in self.dots:
            if best is None or (dot.size, dot.eliminations) > (best.size, best.eliminations):
                best = dot
        return best

    def get_metrics(self) -> dict[str, float]:
        sizes = [dot.size for dot in self.dots]
        berserkers = sum(1 for p in self.personalities.values() if p.berserker)
        active_powers = sum(1 for dot in self.dots if dot.power is not None and dot.power.active)
        return {
            "active_count": float(len(self.dots)),
            "largest_size": float(max(sizes)) if sizes else 0.0,
            "mean_size": float(sum(sizes) / len(sizes)) if sizes else 0.0,
            "berserkers": float(berserkers),
            "active_powers": float(active_powers),
        }
