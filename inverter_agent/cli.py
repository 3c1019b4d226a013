#!/usr/bin/env python3
"""Print inverter telemetry to the console until interrupted."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from inverter_agent.config import SimulationProfile, TransportConfig, get_settings
from inverter_agent.hardware import StreamTelemetrySource, TelemetrySource, TransportError
from inverter_agent.services.formatter import SnapshotFormatter
from inverter_agent.services.simulator import SimulatedSource
from inverter_agent.utils.select import Selector

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inverter console reporter")
    parser.add_argument("--tcp", action="store_true", help="Read from a TCP bridge instead of a serial device")
    parser.add_argument("--ip", default="localhost:8139", help="host:port of the TCP bridge")
    parser.add_argument("--dev", default="/dev/ttyUSB0", help="Serial device of the interface")
    parser.add_argument("--baudrate", type=int, default=2400, help="Serial bit rate")
    parser.add_argument("--simulate", action="store_true", help="Report synthetic telemetry (dev builds only)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def build_source(args: argparse.Namespace) -> TelemetrySource:
    if args.simulate:
        profile: SimulationProfile = get_settings().simulation.model_copy(update={"enabled": True})
        return SimulatedSource(profile, seed_hint="cli")
    transport = TransportConfig(
        kind="tcp" if args.tcp else "serial",
        device=args.dev,
        address=args.ip,
        baudrate=args.baudrate,
    )
    return StreamTelemetrySource(transport)


async def run_reporter(source: TelemetrySource, formatter: SnapshotFormatter, stop: asyncio.Event) -> None:
    """Log every valid snapshot from ``source`` until ``stop`` is set, then close it."""

    selector: Selector[str] = Selector({"snapshot": source.queue.get, "stop": stop.wait})
    try:
        while True:
            key, snapshot = await selector.select()
            if key == "stop":
                break
            if snapshot.valid:  # type: ignore[union-attr]
                logger.info("System Info: \n%s", formatter.console_report(snapshot))  # type: ignore[arg-type]
    finally:
        await selector.aclose()
        await source.close()
        logger.info("Closing connection")


async def run_command(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        source = build_source(args)
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 2
    try:
        await source.open()
    except TransportError as exc:
        logger.error("Could not open inverter link: %s", exc)
        return 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    source.start()
    await run_reporter(source, SnapshotFormatter(settings.led_names, settings.state_names), stop)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(message)s",
        stream=sys.stdout,
    )
    return asyncio.run(run_command(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
