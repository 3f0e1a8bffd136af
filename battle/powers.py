"""Power-up subsystem: rolling, activation, expiry, and per-frame effects."""

from __future__ import annotations

import math
import random

from battle.config_schema import EngineConfig
from battle.entities import ArenaBounds, Dot, Power, PowerKind, Velocity

POWER_KINDS = (PowerKind.SPEED, PowerKind.SHIELD, PowerKind.TELEPORT, PowerKind.GROW)


def roll_power(rng: random.Random, config: EngineConfig, power_chance: float) -> Power | None:
    """Return a fresh power with probability ``power_chance``."""
    if rng.random() >= power_chance:
        return None
    return Power(
        kind=rng.choice(POWER_KINDS),
        duration_ms=rng.uniform(config.power_duration_min_ms, config.power_duration_max_ms),
        cooldown_ms=rng.uniform(config.power_cooldown_min_ms, config.power_cooldown_max_ms),
    )


def can_activate(power: Power, now_ms: float) -> bool:
    if power.active:
        return False
    if power.last_used_ms is None:
        return True
    return now_ms - power.last_used_ms >= power.cooldown_ms


def update_power(
    power: Power,
    now_ms: float,
    dt: float,
    aggression_multiplier: float,
    rng: random.Random,
    config: EngineConfig,
) -> bool:
    """Expire or activate ``power`` for this frame.

    Expiry is checked against the battle clock every frame. Returns True when
    the power was activated on this frame.
    """
    if power.active:
        if power.last_used_ms is None or now_ms - power.last_used_ms >= power.duration_ms:
            power.active = False
        return False

    if not can_activate(power, now_ms):
        return False
    chance = config.power_activation_rate * aggression_multiplier * dt
    if rng.random() < chance:
        power.active = True
        power.last_used_ms = now_ms
        return True
    return False


def speed_boost(dot: Dot, config: EngineConfig) -> float:
    """Displacement multiplier for this frame."""
    return config.speed_boost_factor if dot.has_active_power(PowerKind.SPEED) else 1.0


def apply_grow(dot: Dot, dt: float, config: EngineConfig) -> None:
    if not dot.has_active_power(PowerKind.GROW) or dot.size >= config.grow_size_cap:
        return
    dot.size = min(config.grow_size_cap, dot.size + config.grow_rate * dt)


def try_teleport(
    dot: Dot,
    velocity: Velocity,
    bounds: ArenaBounds,
    dt: float,
    rng: random.Random,
    config: EngineConfig,
) -> bool:
    """Relocate ``dot`` when its teleport fires this frame.

    ``velocity`` is reset in place to a fresh random heading.
    """
    if not dot.has_active_power(PowerKind.TELEPORT):
        return False
    if rng.random() >= config.teleport_rate * dt:
        return False
    dot.x = random_coordinate(bounds.left, bounds.right, dot.size, rng)
    dot.y = random_coordinate(bounds.top, bounds.bottom, dot.size, rng)
    heading = rng.uniform(0.0, math.tau)
    velocity.vx = math.cos(heading) * dot.speed
    velocity.vy = math.sin(heading) * dot.speed
    return True


def random_coordinate(low: float, high: float, margin: float, rng: random.Random) -> float:
    lo = low + margin
    hi = high - margin
    if lo >= hi:
        return (low + high) / 2.0
    return rng.uniform(lo, hi)
