"""Battle settings: preset-driven knobs exposed to battle organisers."""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, fields
from typing import Any, Mapping

from battle.config_schema import EngineConfig


class BattleConfigError(ValueError):
    """Raised when a battle cannot be constructed from its inputs."""


INTENSITY_PRESETS: dict[str, tuple[float, float]] = {
    "casual": (0.5, 0.8),
    "normal": (1.0, 1.0),
    "intense": (1.5, 1.3),
    "chaos": (2.0, 1.6),
}

DURATION_PRESETS: dict[str, float] = {
    "short": 1.5,
    "normal": 2.0,
    "long": 3.0,
}

POWER_FREQUENCY_PRESETS: dict[str, float] = {
    "rare": 0.3,
    "normal": 0.5,
    "frequent": 0.7,
}

_PRESET_KEYS = {
    "intensity": INTENSITY_PRESETS,
    "duration": DURATION_PRESETS,
    "powerFrequency": POWER_FREQUENCY_PRESETS,
}
_NUMERIC_KEYS = (
    "aggressionMultiplier",
    "speedMultiplier",
    "powerChance",
    "battleDurationMinutes",
    "arenaShrinksAt",
)


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


@dataclass(frozen=True)
class BattleSettings:
    """Validated organiser settings for one battle."""

    intensity: str = "normal"
    duration: str = "normal"
    power_frequency: str = "normal"
    aggression_multiplier: float = 1.0
    speed_multiplier: float = 1.0
    power_chance: float = 0.5
    battle_duration_minutes: float = 2.0
    arena_shrinks_at: float = 0.7

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> BattleSettings:
        """Build settings from the organiser mapping.

        Presets fill in the derived numbers; explicit numeric keys win over
        presets. Unknown keys and unknown preset names fall back to defaults
        with a warning. Out-of-range numbers raise ``BattleConfigError``.
        """
        raw = dict(payload or {})
        unknown = [key for key in raw if key not in _PRESET_KEYS and key not in _NUMERIC_KEYS]
        if unknown:
            warnings.warn(f"Ignoring unknown battle setting(s): {sorted(unknown)}", stacklevel=2)

        presets: dict[str, str] = {}
        for key, table in _PRESET_KEYS.items():
            value = str(raw.get(key, "normal"))
            if value not in table:
                warnings.warn(f"Unknown {key} '{value}', using 'normal'.", stacklevel=2)
                value = "normal"
            presets[key] = value

        aggression, speed = INTENSITY_PRESETS[presets["intensity"]]
        numbers = {
            "aggressionMultiplier": aggression,
            "speedMultiplier": speed,
            "powerChance": POWER_FREQUENCY_PRESETS[presets["powerFrequency"]],
            "battleDurationMinutes": DURATION_PRESETS[presets["duration"]],
            "arenaShrinksAt": 0.7,
        }
        for key in _NUMERIC_KEYS:
            if key not in raw or raw[key] is None:
                continue
            try:
                numbers[key] = float(raw[key])
            except (TypeError, ValueError) as exc:
                raise BattleConfigError(f"Setting '{key}' must be a number, got {raw[key]!r}.") from exc

        settings = cls(
            intensity=presets["intensity"],
            duration=presets["duration"],
            power_frequency=presets["powerFrequency"],
            aggression_multiplier=numbers["aggressionMultiplier"],
            speed_multiplier=numbers["speedMultiplier"],
            power_chance=numbers["powerChance"],
            battle_duration_minutes=numbers["battleDurationMinutes"],
            arena_shrinks_at=numbers["arenaShrinksAt"],
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        for key, value in (
            ("aggressionMultiplier", self.aggression_multiplier),
            ("speedMultiplier", self.speed_multiplier),
            ("powerChance", self.power_chance),
            ("battleDurationMinutes", self.battle_duration_minutes),
            ("arenaShrinksAt", self.arena_shrinks_at),
        ):
            if not _is_finite_number(value):
                raise BattleConfigError(f"Setting '{key}' must be a finite number, got {value!r}.")
        if self.battle_duration_minutes <= 0:
            raise BattleConfigError("battleDurationMinutes must be > 0")
        if self.aggression_multiplier < 0 or self.speed_multiplier <= 0:
            raise BattleConfigError("aggressionMultiplier must be >= 0 and speedMultiplier > 0")
        if not 0.0 <= self.power_chance <= 1.0:
            raise BattleConfigError("powerChance must be in [0.0, 1.0]")
        if not 0.0 <= self.arena_shrinks_at <= 1.0:
            raise BattleConfigError("arenaShrinksAt must be in [0.0, 1.0]")

    def to_dict(self) -> dict[str, Any]:
        return {
            "intensity": self.intensity,
            "duration": self.duration,
            "powerFrequency": self.power_frequency,
            "aggressionMultiplier": self.aggression_multiplier,
            "speedMultiplier": self.speed_multiplier,
            "powerChance": self.power_chance,
            "battleDurationMinutes": self.battle_duration_minutes,
            "arenaShrinksAt": self.arena_shrinks_at,
        }


def validate_engine_config(config: EngineConfig) -> None:
    """Reject degenerate engine constants before any frame runs."""
    for item in fields(config):
        value = getattr(config, item.name)
        if not _is_finite_number(value):
            raise BattleConfigError(f"Engine constant '{item.name}' must be a finite number, got {value!r}.")
    if config.arena_width <= 0 or config.arena_height <= 0:
        raise BattleConfigError("Arena dimensions must be > 0")
    if config.min_size <= 0:
        raise BattleConfigError("min_size must be > 0")
    if config.initial_size_min <= config.min_size or config.initial_size_max < config.initial_size_min:
        raise BattleConfigError("Initial size range must lie above min_size")
    if 2 * config.initial_size_max >= min(config.arena_width, config.arena_height):
        raise BattleConfigError("Arena is too small for the initial dot size")
    if config.min_battle_seconds <= 0 or config.max_battle_seconds < config.min_battle_seconds:
        raise BattleConfigError("Battle duration bounds must be positive and ordered")
    if not 0.0 < config.damping <= 1.0:
        raise BattleConfigError("damping must be in (0.0, 1.0]")
    if config.min_speed <= 0 or config.max_speed < config.min_speed:
        raise BattleConfigError("Speed bounds must be positive and ordered")
    if config.full_roster_size <= 0:
        raise BattleConfigError("full_roster_size must be > 0")
    if config.frame_rate_normalizer <= 0 or config.max_frame_delta <= 0:
        raise BattleConfigError("Frame timing constants must be > 0")
