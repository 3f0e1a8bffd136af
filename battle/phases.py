"""Phase controller: battle progress, difficulty multipliers, arena shrink."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from battle.config_schema import EngineConfig
from battle.entities import ArenaBounds
from battle.settings import BattleSettings


class BattlePhase(str, enum.Enum):
    """Coarse division of battle progress."""

    EARLY = "early"
    MIDDLE = "middle"
    LATE = "late"
    FINAL = "final"


MIDDLE_STARTS_AT = 0.3
LATE_STARTS_AT = 0.7
FINAL_STARTS_AT = 0.9

# phase -> (aggression, speed, growth)
PHASE_MULTIPLIERS: dict[BattlePhase, tuple[float, float, float]] = {
    BattlePhase.EARLY: (1.0, 1.0, 1.0),
    BattlePhase.MIDDLE: (1.3, 1.1, 1.1),
    BattlePhase.LATE: (1.6, 1.25, 1.25),
    BattlePhase.FINAL: (2.0, 1.5, 1.5),
}

LATE_ARENA_SCALE = 0.7
FINAL_ARENA_SCALE = 0.5


@dataclass(frozen=True)
class PhaseInfo:
    """Per-frame phase evaluation shared by behavior, physics, and resolver."""

    phase: BattlePhase
    progress: float
    aggression_multiplier: float
    speed_multiplier: float
    growth_multiplier: float
    arena: ArenaBounds

    @property
    def is_closing(self) -> bool:
        """Late and final phases apply center pressure and wall attrition."""
        return self.phase in (BattlePhase.LATE, BattlePhase.FINAL)


def phase_for_progress(progress: float) -> BattlePhase:
    if progress < MIDDLE_STARTS_AT:
        return BattlePhase.EARLY
    if progress < LATE_STARTS_AT:
        return BattlePhase.MIDDLE
    if progress < FINAL_STARTS_AT:
        return BattlePhase.LATE
    return BattlePhase.FINAL


def _lerp(start: float, end: float, fraction: float) -> float:
    fraction = max(0.0, min(1.0, fraction))
    return start + (end - start) * fraction


def arena_scale(progress: float, shrinks_at: float) -> float:
    """Return the arena size fraction for ``progress``.

    Full size before ``shrinks_at``; linear down to 70% at the start of the
    final phase and to 50% at the deadline.
    """
    progress = max(0.0, min(1.0, progress))
    if progress < shrinks_at or shrinks_at >= 1.0:
        return 1.0
    if shrinks_at >= FINAL_STARTS_AT:
        return _lerp(1.0, FINAL_ARENA_SCALE, (progress - shrinks_at) / (1.0 - shrinks_at))
    if progress < FINAL_STARTS_AT:
        return _lerp(1.0, LATE_ARENA_SCALE, (progress - shrinks_at) / (FINAL_STARTS_AT - shrinks_at))
    return _lerp(LATE_ARENA_SCALE, FINAL_ARENA_SCALE, (progress - FINAL_STARTS_AT) / (1.0 - FINAL_STARTS_AT))


def battle_duration_seconds(participants: int, settings: BattleSettings, config: EngineConfig) -> float:
    """Total battle duration: larger rosters get longer, within config bounds."""
    full = max(1, int(config.full_roster_size))
    fill = min(max(0, int(participants)), full) / full
    seconds = float(settings.battle_duration_minutes) * 60.0 * (0.5 + 0.5 * fill)
    return max(config.min_battle_seconds, min(config.max_battle_seconds, seconds))


class PhaseController:
    """Derives phase, multipliers, and arena geometry from elapsed time.

    The settings speed multiplier is folded into every phase. The settings
    aggression multiplier is not: it is applied once, when personalities are
    drawn.
    """

    def __init__(self, config: EngineConfig, settings: BattleSettings) -> None:
        self.config = config
        self.settings = settings
        self.full_arena = ArenaBounds(0.0, 0.0, float(config.arena_width), float(config.arena_height))

    def evaluate(self, elapsed: float, total_duration: float) -> PhaseInfo:
        progress = 0.0 if total_duration <= 0 else max(0.0, min(1.0, elapsed / total_duration))
        phase = phase_for_progress(progress)
        aggression, speed, growth = PHASE_MULTIPLIERS[phase]
        return PhaseInfo(
            phase=phase,
            progress=progress,
            aggression_multiplier=aggression,
            speed_multiplier=speed * self.settings.speed_multiplier,
            growth_multiplier=growth,
            arena=self.bounds_for(progress),
        )

    def bounds_for(self, progress: float) -> ArenaBounds:
        scale = arena_scale(progress, self.settings.arena_shrinks_at)
        cx, cy = self.full_arena.center
        half_w = self.full_arena.width * scale / 2.0
        half_h = self.full_arena.height * scale / 2.0
        return ArenaBounds(cx - half_w, cy - half_h, cx + half_w, cy + half_h)
