"""Console watcher that joins a game and logs realtime state changes."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import subprocess
import sys
import time
from dataclasses import replace
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from campaignsync.realtime.config import RealtimeSettings, load_settings, resolve_realtime_url
from campaignsync.realtime.refresh import HttpGameRefresher
from campaignsync.realtime.session import GameSession

ROOT_DIR = Path(__file__).resolve().parents[2]

logger = logging.getLogger("campaignsync.watch")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Campaign realtime watcher")
    parser.add_argument("--game-id", required=True)
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--server", default=None, help="HTTP base URL of the campaign server")
    parser.add_argument("--reconnect-delay", type=float, default=None)
    parser.add_argument("--start-server", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: RealtimeSettings | None = None) -> RealtimeSettings:
    settings = base if base is not None else load_settings()
    if args.server:
        settings = replace(settings, api_base_url=args.server.rstrip("/"), realtime_url=None)
    if args.reconnect_delay is not None:
        settings = replace(settings, reconnect_delay=args.reconnect_delay)
    return settings


def wait_for_server(server_url: str, timeout_s: float = 8.0, client: httpx.Client | None = None) -> bool:
    """Poll the relay's docs page until it answers below 500 or the timeout passes."""
    http = client if client is not None else httpx.Client(timeout=0.5)
    deadline = time.monotonic() + timeout_s
    try:
        while time.monotonic() < deadline:
            try:
                response = http.get(f"{server_url}/docs")
            except httpx.TransportError as exc:
                logger.debug("Relay at %s not ready: %s", server_url, exc)
            else:
                if response.status_code < 500:
                    return True
            time.sleep(0.2)
        return False
    finally:
        if client is None:
            http.close()


def maybe_start_server(server_url: str) -> subprocess.Popen[str] | None:
    parts = urlsplit(server_url)
    command = [
        sys.executable,
        "-m",
        "uvicorn",
        "campaignsync.backend.relay:app",
        "--host",
        parts.hostname or "127.0.0.1",
        "--port",
        str(parts.port or 8000),
    ]
    process = subprocess.Popen(command, cwd=str(ROOT_DIR), env=os.environ.copy())
    if wait_for_server(server_url):
        return process
    process.terminate()
    return None


async def watch(settings: RealtimeSettings, game_id: str, user_id: str) -> None:
    async with httpx.AsyncClient(base_url=settings.api_base_url, timeout=10.0) as http:
        refresher = HttpGameRefresher(
            http,
            game_id,
            on_loaded=lambda game: logger.info("Game reloaded: %s", json.dumps(game)),
        )
        session = GameSession(
            game_id,
            url=resolve_realtime_url(settings, user_id=user_id),
            settings=settings,
            refresh_game=refresher,
            on_game_deleted=lambda frame: logger.warning("Game %s was deleted", frame.get("gameId")),
        )

        def log_snapshot(_: object) -> None:
            logger.info("State: %s", json.dumps(session.snapshot(), default=str))

        session.transport.status_changes.subscribe(lambda status: logger.info("Connection %s", status))
        session.story.subscribe(lambda snapshot: logger.info("Story: %s", json.dumps(snapshot, default=str)))
        session.story.subscribe_battle_log(lambda entry: logger.info("Battle log: %s", json.dumps(entry, default=str)))
        for channel in (session.presence, session.trades, session.alerts, session.music, session.impersonation):
            channel.subscribe(log_snapshot)

        async with session:
            await asyncio.Event().wait()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = build_settings(args)

    server_process: subprocess.Popen[str] | None = None
    if args.start_server:
        server_process = maybe_start_server(settings.api_base_url)
        if server_process is None:
            logger.error("Relay server could not be started at %s", settings.api_base_url)
            return 1

    try:
        asyncio.run(watch(settings, game_id=args.game_id, user_id=args.user_id))
    except KeyboardInterrupt:
        logger.info("Stopped watching %s", args.game_id)
    finally:
        if server_process is not None:
            server_process.terminate()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
