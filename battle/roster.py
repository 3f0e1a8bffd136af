"""Roster validation and initial dot placement."""

from __future__ import annotations

import math
import random
from typing import Any, Iterable, Mapping

from battle.config_schema import EngineConfig
from battle.entities import Dot, Power, PowerKind
from battle.powers import random_coordinate, roll_power
from battle.settings import BattleConfigError, BattleSettings

RosterEntry = Mapping[str, Any] | Dot


def dot_color(index: int) -> str:
    """Golden-angle hue spacing keeps neighbouring entrants distinct."""
    return f"hsl({(index * 137.5) % 360:.1f}, 70%, 60%)"


def bot_roster(count: int, prefix: str = "Dot_Bot") -> list[dict[str, str]]:
    return [{"id": f"bot-{index}", "name": f"{prefix}{index}"} for index in range(max(0, int(count)))]


def _entry_value(entry: RosterEntry, key: str, attr: str | None = None) -> Any:
    if isinstance(entry, Dot):
        return getattr(entry, attr or key)
    return entry.get(key)


def _parse_power(raw: Any) -> Power | None:
    if raw is None or isinstance(raw, Power):
        return raw
    if not isinstance(raw, Mapping):
        raise BattleConfigError(f"Power must be a mapping, got {type(raw).__name__}.")
    try:
        kind = PowerKind(str(raw.get("type", raw.get("kind"))))
    except ValueError as exc:
        raise BattleConfigError(f"Unknown power type {raw.get('type')!r}.") from exc
    return Power(
        kind=kind,
        duration_ms=float(raw.get("duration", raw.get("duration_ms", 0.0))),
        cooldown_ms=float(raw.get("cooldown", raw.get("cooldown_ms", 0.0))),
        active=bool(raw.get("active", False)),
        last_used_ms=None if raw.get("lastUsed") is None else float(raw["lastUsed"]),
    )


def validate_roster(entries: Iterable[RosterEntry]) -> list[RosterEntry]:
    """Reject empty rosters and duplicate ids or names."""
    items = list(entries)
    if not items:
        raise BattleConfigError("A battle needs at least one dot.")
    seen_ids: set[str] = set()
    seen_names: set[str] = set()
    for index, entry in enumerate(items):
        if not isinstance(entry, (Mapping, Dot)):
            raise BattleConfigError(
                f"Roster entry {index} must be a mapping or Dot, got {type(entry).__name__}."
            )
        dot_id = _entry_value(entry, "id", "dot_id")
        name = _entry_value(entry, "name")
        if dot_id is None or str(dot_id) == "":
            raise BattleConfigError(f"Roster entry {index} has no id.")
        if name is None or str(name) == "":
            raise BattleConfigError(f"Roster entry {index} has no name.")
        if str(dot_id) in seen_ids:
            raise BattleConfigError(f"Duplicate dot id '{dot_id}'.")
        if str(name) in seen_names:
            raise BattleConfigError(f"Duplicate dot name '{name}'.")
        seen_ids.add(str(dot_id))
        seen_names.add(str(name))
    return items


def spawn_dots(
    entries: Iterable[RosterEntry],
    config: EngineConfig,
    settings: BattleSettings,
    rng: random.Random,
) -> list[Dot]:
    """Turn roster entries into initialised dots.

    Values present on an entry are kept; everything else is randomised.
    """
    dots: list[Dot] = []
    for index, entry in enumerate(validate_roster(entries)):
        if isinstance(entry, Dot):
            dot = entry.copy()
        else:
            size = entry.get("size")
            size = float(size) if size is not None else rng.uniform(config.initial_size_min, config.initial_size_max)
            x = entry.get("x")
            y = entry.get("y")
            speed = entry.get("speed")
            dot = Dot(
                dot_id=str(entry["id"]),
                name=str(entry["name"]),
                x=float(x) if x is not None else random_coordinate(0.0, config.arena_width, size, rng),
                y=float(y) if y is not None else random_coordinate(0.0, config.arena_height, size, rng),
                size=size,
                color=str(entry.get("color") or dot_color(index)),
                speed=float(speed) if speed is not None else rng.uniform(config.speed_min, config.speed_max),
                eliminations=int(entry.get("eliminations", 0) or 0),
                power=_parse_power(entry["power"]) if "power" in entry else roll_power(rng, config, settings.power_chance),
            )
        for attr in ("x", "y", "size", "speed"):
            if not math.isfinite(getattr(dot, attr)):
                raise BattleConfigError(f"Dot '{dot.name}' {attr} must be finite.")
        if dot.size <= config.min_size:
            raise BattleConfigError(f"Dot '{dot.name}' size {dot.size} is at or below the floor {config.min_size}.")
        if dot.speed <= 0:
            raise BattleConfigError(f"Dot '{dot.name}' speed must be > 0.")
        dots.append(dot)
    return dots
