"""Battle config file loading and validation (YAML or JSON)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from battle import config_schema
from battle.config_schema import EngineConfig
from battle.settings import BattleConfigError, BattleSettings, validate_engine_config
from core.schema_validator import SchemaValidationError, validate_params


class ConfigValidationError(ValueError):
    """Raised when a battle config file fails validation."""


_TOP_LEVEL = {"battle", "params", "seed"}


@dataclass(frozen=True)
class BattleConfig:
    """Validated battle configuration container."""

    settings: BattleSettings = field(default_factory=BattleSettings)
    engine: EngineConfig = field(default_factory=EngineConfig)
    seed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "battle": self.settings.to_dict(),
            "params": {name: getattr(self.engine, name) for name in config_schema.DEFAULTS},
            "seed": self.seed,
        }


def _read_payload(path: Path) -> Any:
    if not path.exists():
        raise ConfigValidationError(f"Config file not found: {path}")
    content = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(content)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(f"Failed to parse config '{path}': {exc}") from exc
    raise ConfigValidationError(f"Unsupported config extension: {suffix}")


def build_config(payload: Mapping[str, Any] | None, strict: bool = True) -> BattleConfig:
    """Validate a raw mapping with ``battle``, ``params`` and ``seed`` sections."""
    raw = dict(payload or {})
    extras = [key for key in raw if key not in _TOP_LEVEL]
    if extras:
        raise ConfigValidationError(f"Unknown top-level field(s): {sorted(extras)}.")

    battle_section = raw.get("battle") or {}
    params_section = raw.get("params") or {}
    if not isinstance(battle_section, Mapping):
        raise ConfigValidationError("Section 'battle' must be a mapping.")
    if not isinstance(params_section, Mapping):
        raise ConfigValidationError("Section 'params' must be a mapping.")

    seed = raw.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigValidationError(f"Field 'seed' expected int, got {type(seed).__name__}.")

    try:
        params = validate_params(dict(params_section), config_schema, section="params", strict=strict)
        engine = EngineConfig.from_params(params)
        validate_engine_config(engine)
        settings = BattleSettings.from_mapping(battle_section)
    except (SchemaValidationError, BattleConfigError) as exc:
        raise ConfigValidationError(str(exc)) from exc

    return BattleConfig(settings=settings, engine=engine, seed=seed)


def load_config(path: str | Path, strict: bool = True) -> BattleConfig:
    """Load and validate a battle config file."""
    payload = _read_payload(Path(path))
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ConfigValidationError("Top-level config must be a mapping.")
    return build_config(payload, strict=strict)


def load_roster(path: str | Path) -> list[dict[str, Any]]:
    """Load a roster: one name per line (``.txt``) or a YAML/JSON list.

    Text rosters derive ids from line order; comment lines start with ``#``.
    """
    roster_path = Path(path)
    if roster_path.suffix.lower() in {".json", ".yaml", ".yml"}:
        payload = _read_payload(roster_path)
        if not isinstance(payload, list):
            raise ConfigValidationError("Roster file must contain a list of entries.")
        entries: list[dict[str, Any]] = []
        for index, item in enumerate(payload):
            if isinstance(item, str):
                entries.append({"id": f"dot-{index}", "name": item})
            elif isinstance(item, Mapping):
                entries.append(dict(item))
            else:
                raise ConfigValidationError(f"Roster entry {index} must be a name or mapping.")
        return entries

    if not roster_path.exists():
        raise ConfigValidationError(f"Roster file not found: {roster_path}")
    names = [
        line.strip()
        for line in roster_path.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    return [{"id": f"dot-{index}", "name": name} for index, name in enumerate(names)]
