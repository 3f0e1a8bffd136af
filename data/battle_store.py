"""SQLite-backed battle records, live state, frame samples, and eliminations."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from battle.entities import Dot, SimulationState


@dataclass(frozen=True)
class FrameSample:
    """One row of per-frame battle metrics."""

    frame_index: int
    elapsed: float = 0.0
    active_count: int = 0
    largest_size: float = 0.0
    phase: str = "early"


class BattleStore:
    """Persist battle metadata, the latest live snapshot, and per-frame samples.

    The connection is shared across threads (session thread writes, CLI reads),
    so every statement runs under one lock.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def close(self) -> None:
        with self._lock:
            self.connection.close()

    def _ensure_schema(self) -> None:
        self.connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS battles (
                battle_id TEXT PRIMARY KEY,
                seed INTEGER NOT NULL,
                settings_json TEXT NOT NULL,
                roster_size INTEGER NOT NULL,
                total_duration REAL NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                winner_id TEXT,
                winner_name TEXT,
                duration_seconds REAL,
                final_state_json TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS live_state (
                battle_id TEXT PRIMARY KEY,
                frame_index INTEGER NOT NULL,
                state_json TEXT NOT NULL,
                FOREIGN KEY (battle_id)
                    REFERENCES battles (battle_id)
                    ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS frame_samples (
                battle_id TEXT NOT NULL,
                frame_index INTEGER NOT NULL,
                elapsed REAL NOT NULL,
                active_count INTEGER NOT NULL,
                largest_size REAL NOT NULL,
                phase TEXT NOT NULL,
                PRIMARY KEY (battle_id, frame_index),
                FOREIGN KEY (battle_id)
                    REFERENCES battles (battle_id)
                    ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS eliminations (
                battle_id TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                elapsed REAL NOT NULL,
                eliminator_id TEXT NOT NULL,
                eliminator_name TEXT NOT NULL,
                eliminated_id TEXT NOT NULL,
                eliminated_name TEXT NOT NULL,
                PRIMARY KEY (battle_id, sequence),
                FOREIGN KEY (battle_id)
                    REFERENCES battles (battle_id)
                    ON DELETE CASCADE
            );
            """
        )
        self.connection.commit()

    def start_battle(
        self,
        battle_id: str,
        seed: int,
        settings: Mapping[str, Any],
        roster_size: int,
        total_duration: float,
    ) -> str:
        settings_json = json.dumps(dict(settings), sort_keys=True)
        with self._lock:
            self.connection.execute(
                """
                INSERT OR IGNORE INTO battles (
                    battle_id, seed, settings_json, roster_size, total_duration
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (battle_id, int(seed), settings_json, int(roster_size), float(total_duration)),
            )
            self.connection.commit()
        return battle_id

    def save_live_state(self, state: SimulationState) -> None:
        """Upsert the latest snapshot for a battle."""
        state_json = json.dumps(state.to_dict(), sort_keys=True)
        with self._lock:
            self.connection.execute(
                """
                INSERT INTO live_state (battle_id, frame_index, state_json)
                VALUES (?, ?, ?)
                ON CONFLICT (battle_id) DO UPDATE SET
                    frame_index = excluded.frame_index,
                    state_json = excluded.state_json
                """,
                (state.battle_id, int(state.frame_index), state_json),
            )
            self.connection.commit()

    def record_frame_sample(self, battle_id: str, sample: FrameSample) -> None:
        with self._lock:
            self.connection.execute(
                """
                INSERT OR REPLACE INTO frame_samples (
                    battle_id, frame_index, elapsed, active_count, largest_size, phase
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    battle_id,
                    sample.frame_index,
                    sample.elapsed,
                    sample.active_count,
                    sample.largest_size,
                    sample.phase,
                ),
            )
            self.connection.commit()

    def complete_battle(
        self,
        battle_id: str,
        winner: Dot | None,
        final_state: SimulationState,
        duration_seconds: float,
        status: str = "completed",
    ) -> None:
        """Record the winner, final state, elimination log, and elapsed duration."""
        rows = [
            (
                battle_id,
                sequence,
                event.elapsed,
                event.eliminator_id,
                event.eliminator_name,
                event.eliminated_id,
                event.eliminated_name,
            )
            for sequence, event in enumerate(final_state.elimination_log)
        ]
        with self._lock:
            self.connection.execute(
                """
                UPDATE battles SET
                    status = ?,
                    winner_id = ?,
                    winner_name = ?,
                    duration_seconds = ?,
                    final_state_json = ?
                WHERE battle_id = ?
                """,
                (
                    status,
                    winner.dot_id if winner is not None else None,
                    winner.name if winner is not None else None,
                    float(duration_seconds),
                    json.dumps(final_state.to_dict(), sort_keys=True),
                    battle_id,
                ),
            )
            self.connection.executemany(
                """
                INSERT OR REPLACE INTO eliminations (
                    battle_id, sequence, elapsed, eliminator_id, eliminator_name,
                    eliminated_id, eliminated_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            self.connection.commit()

    def mark_status(self, battle_id: str, status: str) -> None:
        with self._lock:
            self.connection.execute(
                "UPDATE battles SET status = ? WHERE battle_id = ?",
                (status, battle_id),
            )
            self.connection.commit()

    def fetch_battle(self, battle_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT battle_id, seed, settings_json, roster_size, total_duration,
                       status, winner_id, winner_name, duration_seconds
                FROM battles
                WHERE battle_id = ?
                """,
                (battle_id,),
            ).fetchone()
        if row is None:
            return None
        record = dict(row)
        record["settings"] = json.loads(record.pop("settings_json"))
        return record

    def fetch_live_state(self, battle_id: str) -> dict[str, Any] | None:
        """Return the most recently persisted snapshot as a dict."""
        with self._lock:
            row = self.connection.execute(
                "SELECT state_json FROM live_state WHERE battle_id = ?",
                (battle_id,),
            ).fetchone()
        return json.loads(row[0]) if row is not None else None

    def fetch_samples(self, battle_id: str) -> list[dict[str, Any]]:
        """Return ordered frame samples for plotting/analysis."""
        with self._lock:
            rows = self.connection.execute(
                """
                SELECT frame_index, elapsed, active_count, largest_size, phase
                FROM frame_samples
                WHERE battle_id = ?
                ORDER BY frame_index ASC
                """,
                (battle_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def fetch_eliminations(self, battle_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self.connection.execute(
                """
                SELECT sequence, elapsed, eliminator_id, eliminator_name,
                       eliminated_id, eliminated_name
                FROM eliminations
                WHERE battle_id = ?
                ORDER BY sequence ASC
                """,
                (battle_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def latest_battle_id(self) -> str | None:
        """Return most recently created battle id, if any."""
        with self._lock:
            row = self.connection.execute(
                """
                SELECT battle_id
                FROM battles
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """
            ).fetchone()
        return str(row[0]) if row is not None else None
