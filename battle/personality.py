"""Per-dot personalities and the flee / chase / wander target choice."""

from __future__ import annotations

import enum
import math
import random
from dataclasses import dataclass
from typing import Mapping, Sequence

from battle.config_schema import EngineConfig
from battle.entities import Dot
from battle.phases import PhaseInfo


class IntentMode(str, enum.Enum):
    FLEE = "flee"
    CHASE = "chase"
    WANDER = "wander"
    CENTER = "center"


@dataclass
class Personality:
    """Ephemeral behavioral tendencies of one dot for one battle."""

    aggression: float
    cowardice: float
    pack_hunter: bool
    berserker: bool = False
    target_id: str | None = None
    flee_from_id: str | None = None

    def make_berserker(self, config: EngineConfig) -> None:
        """Suppress fleeing and boost aggression; applied once."""
        if self.berserker:
            return
        self.berserker = True
        self.flee_from_id = None
        self.aggression = min(
            1.0, self.aggression * config.berserker_aggression_scale + config.berserker_aggression_boost
        )


@dataclass(frozen=True)
class Intent:
    """Where a dot wants to go this frame and how hard it pushes."""

    mode: IntentMode
    target_x: float
    target_y: float
    force: float


def assign_personality(rng: random.Random, config: EngineConfig, aggression_multiplier: float) -> Personality:
    aggression = rng.uniform(config.aggression_min, config.aggression_max) * aggression_multiplier
    return Personality(
        aggression=max(0.0, min(1.0, aggression)),
        cowardice=rng.uniform(config.cowardice_min, config.cowardice_max),
        pack_hunter=rng.random() < config.pack_hunter_chance,
    )


def _distance(a: Dot, b: Dot) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def find_threat(dot: Dot, others: Sequence[Dot], config: EngineConfig) -> Dot | None:
    """Return the most dangerous nearby larger dot, if any.

    Danger score is distance minus weighted size advantage; lower is worse.
    """
    best: Dot | None = None
    best_score = math.inf
    for other in others:
        if other.dot_id == dot.dot_id:
            continue
        advantage = other.size - dot.size
        if advantage < config.threat_size_margin:
            continue
        distance = _distance(dot, other)
        if distance >= config.flee_radius:
            continue
        score = distance - config.threat_size_weight * advantage
        if score < best_score:
            best_score = score
            best = other
    return best


def find_prey(
    dot: Dot,
    others: Sequence[Dot],
    personality: Personality,
    personalities: Mapping[str, Personality],
    config: EngineConfig,
) -> Dot | None:
    """Return the preferred smaller dot to chase.

    Pack hunters rank prey by how many other pack hunters already target it;
    ties fall back to distance, then roster order.
    """
    pack_counts: dict[str, int] = {}
    if personality.pack_hunter:
        for other_id, other_personality in personalities.items():
            if other_id == dot.dot_id or not other_personality.pack_hunter:
                continue
            if other_personality.target_id is not None:
                pack_counts[other_personality.target_id] = pack_counts.get(other_personality.target_id, 0) + 1

    best: Dot | None = None
    best_key: tuple[int, float] | None = None
    for other in others:
        if other.dot_id == dot.dot_id:
            continue
        if dot.size - other.size < config.prey_size_margin:
            continue
        key = (-pack_counts.get(other.dot_id, 0), _distance(dot, other))
        if best_key is None or key < best_key:
            best_key = key
            best = other
    return best


def choose_intent(
    dot: Dot,
    others: Sequence[Dot],
    personality: Personality,
    personalities: Mapping[str, Personality],
    phase: PhaseInfo,
    rng: random.Random,
    config: EngineConfig,
) -> Intent:
    """Pick this frame's movement target and record it on ``personality``."""
    personality.flee_from_id = None
    personality.target_id = None

    if not personality.berserker and rng.random() < personality.cowardice:
        threat = find_threat(dot, others, config)
        if threat is not None:
            personality.flee_from_id = threat.dot_id
            return Intent(
                mode=IntentMode.FLEE,
                target_x=2.0 * dot.x - threat.x,
                target_y=2.0 * dot.y - threat.y,
                force=config.flee_force,
            )

    if rng.random() < personality.aggression * phase.aggression_multiplier:
        prey = find_prey(dot, others, personality, personalities, config)
        if prey is not None:
            personality.target_id = prey.dot_id
            return Intent(mode=IntentMode.CHASE, target_x=prey.x, target_y=prey.y, force=config.chase_force)

    if phase.is_closing:
        cx, cy = phase.arena.center
        jitter = config.center_jitter * (1.0 - phase.progress)
        return Intent(
            mode=IntentMode.CENTER,
            target_x=cx + rng.uniform(-jitter, jitter),
            target_y=cy + rng.uniform(-jitter, jitter),
            force=config.wander_force + phase.progress,
        )

    return Intent(
        mode=IntentMode.WANDER,
        target_x=dot.x + rng.uniform(-config.wander_radius, config.wander_radius),
        target_y=dot.y + rng.uniform(-config.wander_radius, config.wander_radius),
        force=config.wander_force,
    )
