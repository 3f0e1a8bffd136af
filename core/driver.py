"""Battle driver: owns one battle's state machine, frame loop, and callbacks."""

from __future__ import annotations

import enum
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from battle.arena import BattleArena
from battle.config_schema import EngineConfig
from battle.entities import Dot, EliminationEvent, SimulationState
from battle.phases import PhaseController, PhaseInfo, battle_duration_seconds
from battle.roster import RosterEntry, spawn_dots
from battle.settings import BattleSettings, validate_engine_config
from core.deterministic_rng import DeterministicRNG

LOGGER = logging.getLogger(__name__)

UpdateCallback = Callable[[SimulationState], None]
CompleteCallback = Callable[[Dot], None]
Clock = Callable[[], float]


class BattleState(str, enum.Enum):
    """Lifecycle states of a single-use battle."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class BattleRuntimeError(RuntimeError):
    """Raised when a frame fails or the driver is misused."""


def _idle_activity() -> dict[str, Any]:
    return {"activated_powers": [], "teleported": [], "wall_hits": 0, "shielded_pairs": []}


class BattleDriver:
    """Runs one free-for-all battle from roster to single winner.

    The driver never schedules itself: the embedding runner calls ``start``
    once and then ``tick`` per frame (or ``run_simulated`` for a synchronous
    battle on a simulated clock). Every frame emits a full snapshot through
    ``on_update``; ``on_complete`` fires exactly once, after the final
    snapshot, unless the battle is stopped.
    """

    def __init__(
        self,
        roster: Iterable[RosterEntry],
        on_update: UpdateCallback,
        on_complete: CompleteCallback,
        settings: BattleSettings | Mapping[str, Any] | None = None,
        config: EngineConfig | None = None,
        seed: int | None = None,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
        battle_id: str | None = None,
    ) -> None:
        if isinstance(settings, BattleSettings):
            self.settings = settings
        else:
            self.settings = BattleSettings.from_mapping(settings)
        self.settings.validate()
        self.config = config or EngineConfig()
        validate_engine_config(self.config)

        self.seed = int(seed) if seed is not None else random.SystemRandom().getrandbits(32)
        self.rng = DeterministicRNG(self.seed)
        self.on_update = on_update
        self.on_complete = on_complete
        self._clock = clock
        self._wall_clock = wall_clock

        dots = spawn_dots(roster, self.config, self.settings, self.rng.stream("roster"))
        self.initial_count = len(dots)
        self.total_duration = battle_duration_seconds(self.initial_count, self.settings, self.config)
        self.battle_id = battle_id or self.rng.token()

        self.arena = BattleArena(
            dots=dots,
            config=self.config,
            settings=self.settings,
            behavior_rng=self.rng.stream("behavior"),
            physics_rng=self.rng.stream("physics"),
            power_rng=self.rng.stream("powers"),
        )
        self.phase_controller = PhaseController(self.config, self.settings)

        self.elimination_log: list[EliminationEvent] = []
        self.frame_index = 0
        self.winner: Dot | None = None
        self.finish_reason: str | None = None
        self.started_at: str = ""
        self.last_snapshot: SimulationState | None = None

        self._state = BattleState.INITIALIZING
        self._start_time = 0.0
        self._last_frame_time = 0.0
        self._elapsed = 0.0
        self._phase: PhaseInfo = self.phase_controller.evaluate(0.0, self.total_duration)
        self._completion_sent = False
        self._frame_activity: dict[str, Any] = _idle_activity()

    @property
    def state(self) -> BattleState:
        return self._state

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def dots(self) -> list[Dot]:
        return self.arena.dots

    def start(self, now: float | None = None) -> SimulationState:
        """Initialise velocities and personalities and enter ``running``.

        A one-dot roster completes immediately with that dot as winner.
        """
        if self._state != BattleState.INITIALIZING:
            raise BattleRuntimeError(f"Battle {self.battle_id} is single-use (state: {self._state.value}).")

        now = self._clock() if now is None else float(now)
        self._start_time = now
        self._last_frame_time = now
        self.started_at = datetime.fromtimestamp(self._wall_clock(), tz=timezone.utc).isoformat()
        self.arena.reset()
        self._state = BattleState.RUNNING
        LOGGER.info(
            "Battle %s started: %d dots, %.1fs duration, seed %d",
            self.battle_id,
            self.initial_count,
            self.total_duration,
            self.seed,
        )

        if len(self.arena.dots) == 1:
            self._finish(self.arena.dots[0], reason="last_standing")
        else:
            self._emit(self._build_snapshot(in_progress=True))
        return self.last_snapshot  # type: ignore[return-value]

    def tick(self, now: float | None = None) -> bool:
        """Run one frame at battle clock ``now``.

        Returns True while the battle keeps running.
        """
        if self._state != BattleState.RUNNING:
            return False

        now = self._clock() if now is None else float(now)
        elapsed = max(0.0, now - self._start_time)
        if elapsed >= self.total_duration:
            self._elapsed = self.total_duration
            self._frame_activity = _idle_activity()
            self._phase = self.phase_controller.evaluate(self.total_duration, self.total_duration)
            self._finish(self.arena.largest_dot(), reason="timeout")
            return False

        dt = min(max(0.0, now - self._last_frame_time), self.config.max_frame_delta)
        self._last_frame_time = now
        self._elapsed = elapsed
        phase = self.phase_controller.evaluate(elapsed, self.total_duration)
        try:
            report = self.arena.step(dt, elapsed, self._wall_clock(), phase)
        except Exception as exc:
            self._state = BattleState.FAILED
            raise BattleRuntimeError(
                f"Battle {self.battle_id} failed on frame {self.frame_index + 1}: {exc}"
            ) from exc

        self.frame_index += 1
        self._phase = phase
        if report.berserk_conversion:
            LOGGER.info("Battle %s entered final phase: all dots berserk", self.battle_id)
        for event in report.outcome.events:
            LOGGER.debug("%s eliminated %s at %.2fs", event.eliminator_name, event.eliminated_name, event.elapsed)
        if report.activated_powers or report.teleported:
            LOGGER.debug(
                "Frame %d: powers activated %s, teleported %s",
                self.frame_index,
                report.activated_powers,
                report.teleported,
            )
        self.elimination_log.extend(report.outcome.events)
        self._frame_activity = {
            "activated_powers": list(report.activated_powers),
            "teleported": list(report.teleported),
            "wall_hits": len(report.wall_hits),
            "shielded_pairs": [list(pair) for pair in report.outcome.shielded_pairs],
        }

        if len(self.arena.dots) <= 1:
            survivor = self.arena.dots[0] if self.arena.dots else None
            self._finish(survivor, reason="last_standing")
            return False

        self._emit(self._build_snapshot(in_progress=True))
        return True

    def stop(self) -> bool:
        """Cancel the battle; the completion callback will never fire."""
        if self._state not in (BattleState.INITIALIZING, BattleState.RUNNING):
            return False
        self._state = BattleState.STOPPED
        self.arena.release()
        LOGGER.info("Battle %s stopped after %d frames", self.battle_id, self.frame_index)
        return True

    def run_simulated(
        self,
        frame_interval: float = 1.0 / 60.0,
        max_frames: int | None = None,
    ) -> Dot | None:
        """Drive the battle synchronously on a simulated clock.

        Returns the winner, or None when ``max_frames`` ran out first or the
        battle was stopped from a callback.
        """
        if frame_interval <= 0:
            raise ValueError("frame_interval must be > 0")
        if self._state == BattleState.INITIALIZING:
            self.start(now=0.0)

        base = self._last_frame_time
        frames = 0
        while self._state == BattleState.RUNNING:
            if max_frames is not None and frames >= max_frames:
                break
            frames += 1
            self.tick(now=base + frames * frame_interval)
        return self.winner

    def snapshot(self) -> SimulationState:
        """Build a fresh snapshot of the current state without emitting it."""
        return self._build_snapshot(in_progress=self._state == BattleState.RUNNING)

    def _finish(self, winner: Dot | None, reason: str) -> None:
        self.winner = winner
        self.finish_reason = reason
        self._state = BattleState.COMPLETED
        snapshot = self._build_snapshot(in_progress=False)
        self.arena.release()
        self._emit(snapshot)
        LOGGER.info(
            "Battle %s completed (%s): winner %s after %d frames, %d eliminations",
            self.battle_id,
            reason,
            winner.name if winner is not None else "<none>",
            self.frame_index,
            len(self.elimination_log),
        )
        if winner is not None and not self._completion_sent:
            self._completion_sent = True
            self.on_complete(winner.copy())

    def _emit(self, snapshot: SimulationState) -> None:
        self.last_snapshot = snapshot
        self.on_update(snapshot)

    def _build_snapshot(self, in_progress: bool) -> SimulationState:
        return SimulationState(
            battle_id=self.battle_id,
            started_at=self.started_at,
            dots=tuple(dot.copy() for dot in self.arena.dots),
            elimination_log=tuple(self.elimination_log),
            winner=self.winner.copy() if self.winner is not None else None,
            in_progress=in_progress,
            last_update_time=float(self._wall_clock()),
            frame_index=self.frame_index,
            elapsed=float(self._elapsed),
            total_duration=float(self.total_duration),
            phase=self._phase.phase.value,
            arena=self._phase.arena,
            metadata={
                "seed": self.seed,
                "initial_count": self.initial_count,
                "eliminated_count": len(self.elimination_log),
                "finish_reason": self.finish_reason,
                **self.arena.get_metrics(),
                **self._frame_activity,
            },
        )
