"""Command-line entry points for running, serving, and plotting battles."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
import sys

# Allow `python cli/main.py ...` execution from IDEs by adding repo root to sys.path.
if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from battle.entities import SimulationState
from battle.roster import bot_roster
from battle.settings import BattleConfigError
from core.battle_sync import SNAPSHOT_EVENT
from core.config_loader import BattleConfig, ConfigValidationError, load_config, load_roster
from core.driver import BattleState
from core.event_bus import EventBus
from core.live_session import LiveBattleSession
from data.battle_store import BattleStore
from main import build_driver
from streaming.websocket_server import SnapshotServer
from visualization.plotting import plot_battle

LOGGER = logging.getLogger(__name__)


def _load(args: argparse.Namespace) -> tuple[BattleConfig, list]:
    config = load_config(args.config) if args.config else BattleConfig()
    roster = load_roster(args.roster) if args.roster else bot_roster(args.bots)
    return config, roster


def _run_single(args: argparse.Namespace) -> int:
    config, roster = _load(args)
    store = BattleStore(Path(args.db))
    try:
        driver, sync = build_driver(roster, config=config, store=store, seed=args.seed)
        try:
            winner = driver.run_simulated(frame_interval=args.frame_interval)
        finally:
            sync.close()
    finally:
        store.close()
    print(driver.battle_id)
    print(winner.name if winner is not None else "<none>")
    return 0


async def _serve(args: argparse.Namespace) -> int:
    config, roster = _load(args)
    loop = asyncio.get_running_loop()
    finished = asyncio.Event()
    server = SnapshotServer(host=args.host, port=args.port, max_fps=args.fps)
    bus = EventBus()
    store = BattleStore(Path(args.db)) if args.db else None

    def _forward(state: SimulationState) -> None:
        asyncio.run_coroutine_threadsafe(server.broadcast(state), loop)

    def _on_notice(payload: dict) -> None:
        LOGGER.info("Session %s: %s", payload.get("event"), payload.get("battleId"))
        loop.call_soon_threadsafe(finished.set)

    bus.subscribe(SNAPSHOT_EVENT, _forward)
    driver, sync = build_driver(roster, config=config, store=store, bus=bus, seed=args.seed)
    session = LiveBattleSession(driver, on_notice=_on_notice, frame_rate=args.frame_rate)
    session.set_speed(args.speed)

    await server.start()
    session.start()
    try:
        await finished.wait()
        await asyncio.sleep(max(0.0, args.linger))
    finally:
        session.stop()
        session.join(timeout=5)
        if driver.state == BattleState.STOPPED:
            sync.mark_stopped()
        sync.close()
        bus.close()
        await server.stop()
        if store is not None:
            store.close()
    print(driver.battle_id)
    print(driver.winner.name if driver.winner is not None else "<none>")
    return 0 if session.error is None else 1


def _plot(args: argparse.Namespace) -> int:
    battle_id = args.battle
    if battle_id is None:
        store = BattleStore(Path(args.db))
        try:
            battle_id = store.latest_battle_id()
        finally:
            store.close()
        if battle_id is None:
            LOGGER.error("No battles recorded in %s", args.db)
            return 1
    path = plot_battle(args.db, battle_id, args.out)
    print(path)
    return 0


def _add_battle_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--config", default=None, help="YAML/JSON battle config (built-in defaults when omitted)")
    cmd.add_argument("--roster", help="text file (one name per line) or YAML/JSON list")
    cmd.add_argument("--bots", type=int, default=20, help="generated bot count when no roster is given")
    cmd.add_argument("--seed", type=int, default=None)


def run_cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="dot-royale")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="run one battle on a simulated clock")
    _add_battle_args(run_cmd)
    run_cmd.add_argument("--db", default="battles.db")
    run_cmd.add_argument("--frame-interval", type=float, default=1.0 / 60.0)

    serve_cmd = sub.add_parser("serve", help="run a real-time battle and stream it over websockets")
    _add_battle_args(serve_cmd)
    serve_cmd.add_argument("--db", default=None)
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8765)
    serve_cmd.add_argument("--fps", type=int, default=30, help="max broadcast rate")
    serve_cmd.add_argument("--frame-rate", type=float, default=60.0)
    serve_cmd.add_argument("--speed", type=float, default=1.0)
    serve_cmd.add_argument("--linger", type=float, default=1.0, help="seconds to keep serving after the battle")

    plot_cmd = sub.add_parser("plot", help="plot a recorded battle")
    plot_cmd.add_argument("--battle", default=None, help="battle id (defaults to latest)")
    plot_cmd.add_argument("--db", default="battles.db")
    plot_cmd.add_argument("--out", default="artifacts/battle.png")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    try:
        if args.command == "run":
            return _run_single(args)
        if args.command == "serve":
            return asyncio.run(_serve(args))
        if args.command == "plot":
            return _plot(args)
    except (ConfigValidationError, BattleConfigError) as exc:
        LOGGER.error("%s", exc)
        return 2
    return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
