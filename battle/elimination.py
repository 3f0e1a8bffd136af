"""Elimination resolver: pairwise contact, tie-breaks, shields, growth."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np

from battle.config_schema import EngineConfig
from battle.entities import Dot, EliminationEvent, PowerKind
from battle.personality import Personality
from battle.phases import PhaseInfo


@dataclass
class EliminationOutcome:
    """Result of one resolver pass."""

    events: list[EliminationEvent] = field(default_factory=list)
    eliminated_ids: set[str] = field(default_factory=set)
    shielded_pairs: list[tuple[str, str]] = field(default_factory=list)


def pairwise_distances(dots: Sequence[Dot]) -> np.ndarray:
    """Return the symmetric matrix of center distances."""
    xs = np.fromiter((dot.x for dot in dots), dtype=float, count=len(dots))
    ys = np.fromiter((dot.y for dot in dots), dtype=float, count=len(dots))
    return np.hypot(xs[:, None] - xs[None, :], ys[:, None] - ys[None, :])


def resolve_eliminations(
    dots: Sequence[Dot],
    personalities: Mapping[str, Personality],
    phase: PhaseInfo,
    timestamp: float,
    elapsed: float,
    config: EngineConfig,
) -> EliminationOutcome:
    """Resolve every unordered pair of ``dots`` once, in roster order.

    ``dots`` are mutated (eliminator growth and counters) but not removed;
    the caller prunes ``eliminated_ids`` after the pass. A dot eliminated
    earlier in the pass is skipped, and a dot that already eliminated someone
    this pass cannot itself be eliminated until the next frame.
    """
    outcome = EliminationOutcome()
    count = len(dots)
    if count < 2:
        return outcome

    distances = pairwise_distances(dots)
    eliminators: set[str] = set()

    for i in range(count):
        first = dots[i]
        if first.dot_id in outcome.eliminated_ids:
            continue
        for j in range(i + 1, count):
            second = dots[j]
            if second.dot_id in outcome.eliminated_ids:
                continue
            if first.dot_id in outcome.eliminated_ids:
                break

            reach = max(first.size, second.size) + config.elimination_margin
            if not float(distances[i, j]) < reach:
                continue

            if first.size >= second.size:
                winner, loser = first, second
            else:
                winner, loser = second, first
            if winner.size - loser.size < config.min_size_difference:
                continue
            if loser.has_active_power(PowerKind.SHIELD):
                outcome.shielded_pairs.append((winner.dot_id, loser.dot_id))
                continue
            if loser.dot_id in eliminators:
                continue

            outcome.events.append(
                EliminationEvent(
                    timestamp=timestamp,
                    elapsed=elapsed,
                    eliminator_id=winner.dot_id,
                    eliminator_name=winner.name,
                    eliminated_id=loser.dot_id,
                    eliminated_name=loser.name,
                )
            )
            outcome.eliminated_ids.add(loser.dot_id)
            eliminators.add(winner.dot_id)
            _reward(winner, personalities.get(winner.dot_id), phase, config)

    return outcome


def _reward(winner: Dot, personality: Personality | None, phase: PhaseInfo, config: EngineConfig) -> None:
    winner.eliminations += 1
    winner.size += config.growth_factor * phase.growth_multiplier
    if personality is not None and personality.berserker:
        winner.size += config.berserker_size_bonus
        personality.aggression = min(1.0, personality.aggression + config.berserker_aggression_bonus)
