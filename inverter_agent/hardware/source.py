"""Telemetry sources: an infinite, non-restartable stream of snapshots.

Every source hands snapshots over one at a time through ``source.queue`` (an
``asyncio.Queue`` of capacity one), so a producer waits for its consumer
instead of buffering stale frames. Undecodable frames are delivered as
``Snapshot.invalid`` rather than raised.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Mapping, Optional

from inverter_agent.config import TransportConfig
from inverter_agent.hardware.snapshot import DeviceError, Snapshot
from inverter_agent.hardware.transport import FrameTooLarge, Transport, TransportError, open_transport

logger = logging.getLogger(__name__)

# Bridge frame key -> Snapshot attribute.
SNAPSHOT_FIELD_MAP: Dict[str, str] = {
    "bat_voltage": "bat_voltage",
    "bat_current": "bat_current",
    "in_voltage": "in_voltage",
    "in_current": "in_current",
    "in_frequency": "in_frequency",
    "out_voltage": "out_voltage",
    "out_current": "out_current",
    "out_frequency": "out_frequency",
    "charge_state": "charge_state",
}


class FrameDecodeError(ValueError):
    pass


def _coerce_float(value: object, key: str) -> float:
    if isinstance(value, bool) or value is None:
        raise FrameDecodeError(f"{key}: expected a number, got {value!r}")
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise FrameDecodeError(f"{key}: expected a number, got {value!r}") from exc
    if not math.isfinite(parsed):
        raise FrameDecodeError(f"{key}: not finite")
    return parsed


def _parse_timestamp(raw: object, fallback: datetime) -> datetime:
    if raw is None:
        return fallback
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        try:
            return datetime.fromtimestamp(float(raw), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise FrameDecodeError(f"timestamp: {raw!r} out of range") from exc
    if isinstance(raw, str) and raw:
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise FrameDecodeError(f"timestamp: {raw!r}") from exc
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts
    raise FrameDecodeError(f"timestamp: {raw!r}")


def decode_payload(payload: Mapping[str, object], *, received_at: Optional[datetime] = None) -> Snapshot:
    """Map one bridge frame onto a :class:`Snapshot`.

    Raises :class:`FrameDecodeError` when a required field is missing or
    malformed. A frame the bridge itself flags with ``"valid": false`` decodes
    to an invalid snapshot.
    """

    now = received_at or datetime.now(timezone.utc)
    if not isinstance(payload, Mapping):
        raise FrameDecodeError("frame is not an object")
    if payload.get("valid", True) is False:
        return Snapshot.invalid(now)

    fields: Dict[str, object] = {}
    for source_key, attr in SNAPSHOT_FIELD_MAP.items():
        if source_key not in payload:
            raise FrameDecodeError(f"{source_key}: missing")
        fields[attr] = _coerce_float(payload[source_key], source_key)

    raw_leds = payload.get("leds") or {}
    if not isinstance(raw_leds, Mapping):
        raise FrameDecodeError("leds: expected an object")
    try:
        leds = {int(k): int(v) for k, v in raw_leds.items()}  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError) as exc:
        raise FrameDecodeError(f"leds: {exc}") from exc

    raw_on = payload.get("leds_on")
    if raw_on is None:
        leds_on = tuple(sorted(led for led, state in leds.items() if state != 0))
    elif isinstance(raw_on, list):
        try:
            leds_on = tuple(int(led) for led in raw_on)
        except (TypeError, ValueError, OverflowError) as exc:
            raise FrameDecodeError(f"leds_on: {exc}") from exc
    else:
        raise FrameDecodeError("leds_on: expected a list")

    raw_errors = payload.get("errors") or []
    if not isinstance(raw_errors, list):
        raise FrameDecodeError("errors: expected a list")

    version = payload.get("version", 0)
    try:
        version = int(version)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError) as exc:
        raise FrameDecodeError(f"version: {version!r}") from exc

    return Snapshot(
        valid=True,
        version=version,
        leds=leds,
        leds_on=leds_on,
        errors=tuple(DeviceError(str(item)) for item in raw_errors),
        timestamp=_parse_timestamp(payload.get("timestamp"), now),
        **fields,  # type: ignore[arg-type]
    )


def decode_frame(frame: bytes) -> Snapshot:
    """Decode one newline-delimited JSON frame; failures become invalid snapshots."""

    received_at = datetime.now(timezone.utc)
    try:
        payload = json.loads(frame.decode("utf-8"))
        return decode_payload(payload, received_at=received_at)
    except (ValueError, OverflowError, RecursionError) as exc:
        logger.debug("Dropping undecodable frame: %s", exc)
        return Snapshot.invalid(received_at)


class TelemetrySource:
    """Base class driving an async snapshot generator into the handoff queue."""

    name = "telemetry-source"

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def queue(self) -> asyncio.Queue[Snapshot]:
        return self._queue

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Acquire the underlying device link; failures are fatal to the caller."""

    def start(self) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name} cannot be restarted after close")
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def close(self) -> None:
        self._closed = True
        task, self._task = self._task, None
        try:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.warning("%s: producer failed before close", self.name, exc_info=True)
        finally:
            await self._release()

    async def _release(self) -> None:
        """Release the device link once the producer task has stopped."""

    async def _run(self) -> None:
        try:
            async for snapshot in self.snapshots():
                await self._queue.put(snapshot)
        except Exception:
            logger.exception("%s: telemetry producer stopped", self.name)
            raise

    def snapshots(self) -> AsyncIterator[Snapshot]:
        raise NotImplementedError


class StreamTelemetrySource(TelemetrySource):
    """Reads decoded frames from the protocol bridge over serial or TCP."""

    name = "stream-telemetry-source"

    def __init__(self, config: TransportConfig) -> None:
        super().__init__()
        self.config = config
        self._transport: Transport | None = None

    async def open(self) -> None:
        if self._transport is None:
            self._transport = await open_transport(self.config)
            logger.info("Connected to inverter bridge at %s", self.config.describe())

    async def _release(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    async def _reconnect(self) -> None:
        delay = self.config.reconnect_delay_seconds
        while True:
            await asyncio.sleep(delay)
            try:
                self._transport = await open_transport(self.config)
            except TransportError as exc:
                delay = min(delay * 2, self.config.reconnect_max_delay_seconds)
                logger.warning("Reconnect to %s failed: %s; retrying in %.0fs", self.config.describe(), exc, delay)
                continue
            logger.info("Reconnected to inverter bridge at %s", self.config.describe())
            return

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        if self._transport is None:
            await self.open()
        while True:
            transport = self._transport
            assert transport is not None
            try:
                frame = await transport.readline()
            except FrameTooLarge as exc:
                logger.warning("Skipping frame: %s", exc)
                yield Snapshot.invalid()
                continue
            except TransportError as exc:
                logger.warning("Telemetry link lost: %s", exc)
                frame = b""
            if not frame:
                await self._release()
                await self._reconnect()
                continue
            if not frame.strip():
                continue
            yield decode_frame(frame)
