"""Movement integrator: steering, damping, speed clamp, integration, walls."""

from __future__ import annotations

import math
import random

from battle.config_schema import EngineConfig
from battle.entities import ArenaBounds, Dot, Velocity
from battle.personality import Intent
from battle.phases import PhaseInfo


def frame_scale(dt: float, config: EngineConfig) -> float:
    """Convert wall-clock seconds into reference-frame units (60 fps)."""
    return dt * config.frame_rate_normalizer


def apply_steering(dot: Dot, velocity: Velocity, intent: Intent, phase: PhaseInfo, dt: float, config: EngineConfig) -> None:
    dx = intent.target_x - dot.x
    dy = intent.target_y - dot.y
    distance = math.hypot(dx, dy)
    if distance <= 1e-9:
        return
    accel = dot.speed * intent.force * phase.speed_multiplier * config.steering_gain * frame_scale(dt, config)
    velocity.vx += dx / distance * accel
    velocity.vy += dy / distance * accel


def apply_damping(velocity: Velocity, dt: float, config: EngineConfig) -> None:
    factor = config.damping ** frame_scale(dt, config)
    velocity.vx *= factor
    velocity.vy *= factor


def clamp_speed(velocity: Velocity, phase: PhaseInfo, rng: random.Random, config: EngineConfig) -> None:
    """Keep speed within [min_speed, phase max], rescaling the vector."""
    max_speed = config.max_speed * phase.speed_multiplier
    magnitude = velocity.magnitude
    if magnitude <= 1e-9:
        heading = rng.uniform(0.0, math.tau)
        velocity.vx = math.cos(heading) * config.min_speed
        velocity.vy = math.sin(heading) * config.min_speed
        return
    if magnitude > max_speed:
        scale = max_speed / magnitude
    elif magnitude < config.min_speed:
        scale = config.min_speed / magnitude
    else:
        return
    velocity.vx *= scale
    velocity.vy *= scale


def integrate_position(dot: Dot, velocity: Velocity, boost: float, dt: float, config: EngineConfig) -> None:
    step = frame_scale(dt, config) * boost
    dot.x += velocity.vx * step
    dot.y += velocity.vy * step


def _clamp_axis(position: float, low: float, high: float, size: float) -> tuple[float, bool]:
    lo = low + size
    hi = high - size
    if lo > hi:
        # dot is wider than the arena on this axis; pin it to the middle
        return (low + high) / 2.0, True
    if position <= lo:
        return lo, True
    if position >= hi:
        return hi, True
    return position, False


def bounce_off_walls(dot: Dot, velocity: Velocity, bounds: ArenaBounds, config: EngineConfig) -> bool:
    """Clamp ``dot`` inside ``bounds``; reflect velocity on hit axes.

    Returns True when any wall was hit this frame.
    """
    dot.x, hit_x = _clamp_axis(dot.x, bounds.left, bounds.right, dot.size)
    dot.y, hit_y = _clamp_axis(dot.y, bounds.top, bounds.bottom, dot.size)
    if hit_x:
        velocity.vx *= config.wall_bounce
    if hit_y:
        velocity.vy *= config.wall_bounce
    return hit_x or hit_y


def apply_wall_attrition(dot: Dot, config: EngineConfig) -> None:
    dot.size = max(config.min_size, dot.size - config.wall_attrition)
