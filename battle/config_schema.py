"""Engine tuning schema and the frozen config built from it."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

REQUIRED_PARAMS: dict[str, type] = {}

DEFAULTS = {
    "arena_width": 800.0,
    "arena_height": 600.0,
    "initial_size_min": 8.0,
    "initial_size_max": 12.0,
    "min_size": 4.0,
    "speed_min": 1.0,
    "speed_max": 3.0,
    # powers
    "power_duration_min_ms": 5000.0,
    "power_duration_max_ms": 15000.0,
    "power_cooldown_min_ms": 15000.0,
    "power_cooldown_max_ms": 30000.0,
    "power_activation_rate": 0.6,
    "speed_boost_factor": 1.5,
    "teleport_rate": 3.0,
    "grow_rate": 3.0,
    "grow_size_cap": 25.0,
    # personality
    "aggression_min": 0.3,
    "aggression_max": 0.9,
    "cowardice_min": 0.1,
    "cowardice_max": 0.6,
    "pack_hunter_chance": 0.4,
    "threat_size_margin": 3.0,
    "threat_size_weight": 4.0,
    "flee_radius": 120.0,
    "prey_size_margin": 2.0,
    "wander_radius": 100.0,
    "center_jitter": 150.0,
    "flee_force": 1.3,
    "chase_force": 1.1,
    "wander_force": 0.5,
    "berserker_aggression_scale": 1.5,
    "berserker_aggression_boost": 0.2,
    # physics
    "steering_gain": 0.25,
    "damping": 0.92,
    "frame_rate_normalizer": 60.0,
    "max_speed": 5.0,
    "min_speed": 0.5,
    "wall_bounce": -0.7,
    "wall_attrition": 0.1,
    "max_frame_delta": 0.1,
    # elimination
    "elimination_margin": 0.0,
    "min_size_difference": 1.0,
    "growth_factor": 1.0,
    "berserker_size_bonus": 0.5,
    "berserker_aggression_bonus": 0.05,
    # duration
    "min_battle_seconds": 30.0,
    "max_battle_seconds": 600.0,
    "full_roster_size": 50,
}

OPTIONAL_PARAMS: dict[str, type] = {
    key: (int if isinstance(value, int) else float) for key, value in DEFAULTS.items()
}


@dataclass(frozen=True)
class EngineConfig:
    """Runtime constants for one battle engine instance."""

    arena_width: float = 800.0
    arena_height: float = 600.0
    initial_size_min: float = 8.0
    initial_size_max: float = 12.0
    min_size: float = 4.0
    speed_min: float = 1.0
    speed_max: float = 3.0
    power_duration_min_ms: float = 5000.0
    power_duration_max_ms: float = 15000.0
    power_cooldown_min_ms: float = 15000.0
    power_cooldown_max_ms: float = 30000.0
    power_activation_rate: float = 0.6
    speed_boost_factor: float = 1.5
    teleport_rate: float = 3.0
    grow_rate: float = 3.0
    grow_size_cap: float = 25.0
    aggression_min: float = 0.3
    aggression_max: float = 0.9
    cowardice_min: float = 0.1
    cowardice_max: float = 0.6
    pack_hunter_chance: float = 0.4
    threat_size_margin: float = 3.0
    threat_size_weight: float = 4.0
    flee_radius: float = 120.0
    prey_size_margin: float = 2.0
    wander_radius: float = 100.0
    center_jitter: float = 150.0
    flee_force: float = 1.3
    chase_force: float = 1.1
    wander_force: float = 0.5
    berserker_aggression_scale: float = 1.5
    berserker_aggression_boost: float = 0.2
    steering_gain: float = 0.25
    damping: float = 0.92
    frame_rate_normalizer: float = 60.0
    max_speed: float = 5.0
    min_speed: float = 0.5
    wall_bounce: float = -0.7
    wall_attrition: float = 0.1
    max_frame_delta: float = 0.1
    elimination_margin: float = 0.0
    min_size_difference: float = 1.0
    growth_factor: float = 1.0
    berserker_size_bonus: float = 0.5
    berserker_aggression_bonus: float = 0.05
    min_battle_seconds: float = 30.0
    max_battle_seconds: float = 600.0
    full_roster_size: int = 50

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> EngineConfig:
        """Build a config from validated params, ignoring keys it does not own."""
        known = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in params.items():
            if key not in known:
                continue
            values[key] = int(value) if key == "full_roster_size" else float(value)
        return cls(**values)
