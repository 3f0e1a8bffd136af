"""Entity model for dot battles: dots, powers, elimination events, snapshots."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field, replace
from typing import Any


class PowerKind(str, enum.Enum):
    """Temporary abilities a dot can hold."""

    SPEED = "speed"
    SHIELD = "shield"
    TELEPORT = "teleport"
    GROW = "grow"


@dataclass
class Power:
    """One special ability slot with duration and cooldown in milliseconds."""

    kind: PowerKind
    duration_ms: float
    cooldown_ms: float
    active: bool = False
    last_used_ms: float | None = None

    def is_active(self, kind: PowerKind) -> bool:
        return self.active and self.kind == kind

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "duration": float(self.duration_ms),
            "cooldown": float(self.cooldown_ms),
            "active": bool(self.active),
            "lastUsed": None if self.last_used_ms is None else float(self.last_used_ms),
        }


@dataclass
class Dot:
    """Single battle participant.

    Velocity is not stored here: the arena owning the battle keeps it in a
    map keyed by ``dot_id``.
    """

    dot_id: str
    name: str
    x: float
    y: float
    size: float
    color: str
    speed: float
    eliminations: int = 0
    power: Power | None = None

    def has_active_power(self, kind: PowerKind) -> bool:
        return self.power is not None and self.power.is_active(kind)

    def copy(self) -> Dot:
        return replace(self, power=replace(self.power) if self.power is not None else None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.dot_id,
            "name": self.name,
            "x": float(self.x),
            "y": float(self.y),
            "size": float(self.size),
            "color": self.color,
            "speed": float(self.speed),
            "eliminations": int(self.eliminations),
            "power": self.power.to_dict() if self.power is not None else None,
        }


@dataclass
class Velocity:
    """Per-frame kinetic state owned by the arena, keyed by dot id."""

    vx: float = 0.0
    vy: float = 0.0

    @property
    def magnitude(self) -> float:
        return math.hypot(self.vx, self.vy)


@dataclass(frozen=True)
class EliminationEvent:
    """Append-only kill-feed record."""

    timestamp: float
    elapsed: float
    eliminator_id: str
    eliminator_name: str
    eliminated_id: str
    eliminated_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": float(self.timestamp),
            "elapsed": float(self.elapsed),
            "eliminatorId": self.eliminator_id,
            "eliminatorName": self.eliminator_name,
            "eliminatedId": self.eliminated_id,
            "eliminatedName": self.eliminated_name,
        }


@dataclass(frozen=True)
class ArenaBounds:
    """Axis-aligned playable rectangle."""

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> tuple[float, float]:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    def to_dict(self) -> dict[str, float]:
        return {
            "left": float(self.left),
            "top": float(self.top),
            "right": float(self.right),
            "bottom": float(self.bottom),
        }


@dataclass(frozen=True)
class SimulationState:
    """Complete, consistent state of one battle frame handed to callers."""

    battle_id: str
    started_at: str
    dots: tuple[Dot, ...]
    elimination_log: tuple[EliminationEvent, ...]
    winner: Dot | None
    in_progress: bool
    last_update_time: float | None
    frame_index: int = 0
    elapsed: float = 0.0
    total_duration: float = 0.0
    phase: str = "early"
    arena: ArenaBounds | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def active_count(self) -> int:
        return len(self.dots)

    def to_dict(self) -> dict[str, Any]:
        return {
            "battleId": self.battle_id,
            "startedAt": self.started_at,
            "dots": [dot.to_dict() for dot in self.dots],
            "eliminationLog": [event.to_dict() for event in self.elimination_log],
            "winner": self.winner.to_dict() if self.winner is not None else None,
            "inProgress": bool(self.in_progress),
            "lastUpdateTime": self.last_update_time,
            "frameIndex": int(self.frame_index),
            "elapsed": float(self.elapsed),
            "totalDuration": float(self.total_duration),
            "phase": self.phase,
            "arena": self.arena.to_dict() if self.arena is not None else None,
            "metadata": dict(self.metadata),
        }
