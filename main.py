"""Battle assembly helpers shared by the CLI and embedding code."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from battle.roster import RosterEntry, bot_roster
from core.battle_sync import BattleSync
from core.config_loader import BattleConfig, load_config
from core.driver import BattleDriver
from core.event_bus import EventBus
from data.battle_store import BattleStore

LOGGER = logging.getLogger(__name__)


def build_driver(
    roster: Iterable[RosterEntry],
    config: BattleConfig | None = None,
    store: BattleStore | None = None,
    bus: EventBus | None = None,
    persist_every: int = 30,
    seed: int | None = None,
) -> tuple[BattleDriver, BattleSync]:
    """Build a driver wired to a :class:`BattleSync` and register the battle.

    ``seed`` overrides the config seed when given. Close the returned sync
    once the battle is over so queued writes reach the store.
    """
    config = config or BattleConfig()
    sync = BattleSync(store=store, bus=bus, persist_every=persist_every)
    driver = BattleDriver(
        roster=roster,
        on_update=sync.on_update,
        on_complete=sync.on_complete,
        settings=config.settings,
        config=config.engine,
        seed=seed if seed is not None else config.seed,
    )
    sync.bind(driver)
    return driver, sync


def main(config_path: str = "configs/battle_default.yaml", bots: int = 20) -> None:
    """Load config and run one bot battle on a simulated clock."""
    config = load_config(config_path)
    store = BattleStore(Path("battles.db"))
    try:
        driver, sync = build_driver(bot_roster(bots), config=config, store=store)
        winner = driver.run_simulated()
        sync.close()
        LOGGER.info("Winner: %s", winner.name if winner is not None else "<none>")
    finally:
        store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
