# taskbox/main.py
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from core.settings import APP_NAME, SYNC
from storage.db import init_db


def _build_sync():
    from services.settings_store import SettingsStore
    from services.sync_service import SyncService
    from services.tasks import TaskService

    return SyncService(TaskService(), SettingsStore())


async def _run_desktop(interval: float, delay: float) -> None:
    from services.sync_scheduler import SyncScheduler

    scheduler = SyncScheduler(_build_sync(), interval_sec=interval, startup_delay_sec=delay)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def cmd_desktop(args) -> int:
    init_db()
    try:
        asyncio.run(_run_desktop(args.interval, args.delay))
    except KeyboardInterrupt:
        pass
    return 0


def cmd_relay(args) -> int:
    import uvicorn

    from relay.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def cmd_configure(args) -> int:
    from services.settings_store import SettingsStore

    init_db()
    store = SettingsStore()
    store.set_relay_config(args.url, args.key)
    config = store.relay_config()
    if config is None:
        print("Sync disabled")
    else:
        print(f"Sync relay set to {config.url}")
    return 0


def cmd_sync_once(args) -> int:
    init_db()
    result = _build_sync().run_cycle()
    if not result.configured:
        print("Sync is not configured; run 'configure --url ... --key ...' first")
        return 1
    if not result.ok:
        print(f"Sync failed: {result.error}")
        return 1
    print(
        f"Pulled {len(result.applied)} change(s), {len(result.failed)} failed, "
        f"pushed {result.pushed} task(s)"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME.lower())
    sub = parser.add_subparsers(dest="command", required=True)

    p_desktop = sub.add_parser("desktop", help="run the background sync loop")
    p_desktop.add_argument("--interval", type=float, default=SYNC.interval_sec)
    p_desktop.add_argument("--delay", type=float, default=SYNC.startup_delay_sec)
    p_desktop.set_defaults(func=cmd_desktop)

    p_relay = sub.add_parser("relay", help="serve the relay API")
    p_relay.add_argument("--host", default="127.0.0.1")
    p_relay.add_argument("--port", type=int, default=8787)
    p_relay.set_defaults(func=cmd_relay)

    p_conf = sub.add_parser("configure", help="store relay URL and API key")
    p_conf.add_argument("--url", default=None)
    p_conf.add_argument("--key", default=None)
    p_conf.set_defaults(func=cmd_configure)

    p_once = sub.add_parser("sync-once", help="run a single sync cycle")
    p_once.set_defaults(func=cmd_sync_once)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
