"""Plot utilities for persisted battle frame samples."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from data.battle_store import BattleStore  # noqa: E402


def plot_battle(db_path: str | Path, battle_id: str, output_path: str | Path) -> Path:
    """Render active-count and largest-size curves for a battle from SQLite.

    Elimination times are marked on the active-count axis.
    """
    store = BattleStore(db_path)
    try:
        samples = store.fetch_samples(battle_id)
        eliminations = store.fetch_eliminations(battle_id)
    finally:
        store.close()
    if not samples:
        raise ValueError(f"No frame samples recorded for battle '{battle_id}'.")

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    elapsed = [float(row["elapsed"]) for row in samples]
    active = [int(row["active_count"]) for row in samples]
    largest = [float(row["largest_size"]) for row in samples]

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(8, 6), sharex=True)
    ax1.step(elapsed, active, where="post", label="active dots")
    for row in eliminations:
        ax1.axvline(float(row["elapsed"]), color="tab:red", alpha=0.15, linewidth=0.8)
    ax1.set_ylabel("dots")
    ax1.legend()

    ax2.plot(elapsed, largest, label="largest size", color="tab:green")
    ax2.set_ylabel("size")
    ax2.set_xlabel("elapsed (s)")
    ax2.legend()

    fig.suptitle(f"battle {battle_id[:12]}")
    fig.tight_layout()
    fig.savefig(output)
    plt.close(fig)
    return output
