"""Terminal client: `python -m tickstream.client [--url URL] [--mode MODE]`."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace

from tickstream.client.console import stdin_lines, watch
from tickstream.core.config import ClientSettings
from tickstream.infra.observability.logger import setup_logging
from tickstream.protocol.events import STREAM_MODES


def main(argv: list[str] | None = None) -> None:
    settings = ClientSettings.from_env()
    parser = argparse.ArgumentParser(description="Watch a tickstream SSE endpoint.")
    parser.add_argument("--url", default=settings.events_url, help="events endpoint")
    parser.add_argument("--mode", choices=STREAM_MODES, default=None, help="stream mode to request")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    settings = replace(settings, events_url=args.url)
    try:
        print(f"Type one of {', '.join(STREAM_MODES)} and press Enter to switch mode.", flush=True)
        asyncio.run(watch(settings, mode=args.mode, commands=stdin_lines()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
