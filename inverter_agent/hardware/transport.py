"""Byte-stream transports to the device protocol bridge."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import serial

from inverter_agent.config import TransportConfig

logger = logging.getLogger(__name__)

MAX_FRAME_BYTES = 64 * 1024


class TransportError(RuntimeError):
    """The device link could not be opened or was lost."""


class FrameTooLarge(ValueError):
    """A frame exceeded MAX_FRAME_BYTES; it was skipped up to the next newline."""


class Transport(Protocol):
    """Line-oriented link to the bridge that emits decoded frames."""

    async def readline(self) -> bytes:
        """Return the next frame including its newline, or ``b""`` at EOF."""
        ...

    async def close(self) -> None:
        ...


class TcpTransport:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, *, label: str) -> None:
        self._reader = reader
        self._writer = writer
        self.label = label

    @classmethod
    async def connect(cls, host: str, port: int, *, timeout: float) -> "TcpTransport":
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, limit=MAX_FRAME_BYTES),
                timeout=timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Unable to connect to {host}:{port}: {exc or 'timed out'}") from exc
        return cls(reader, writer, label=f"tcp://{host}:{port}")

    async def readline(self) -> bytes:
        try:
            return await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            await self._skip_line(exc.consumed)
            raise FrameTooLarge(f"{self.label}: frame longer than {MAX_FRAME_BYTES} bytes") from exc
        except OSError as exc:
            raise TransportError(f"{self.label}: read failed: {exc}") from exc

    async def _skip_line(self, consumed: int) -> None:
        try:
            while True:
                await self._reader.readexactly(consumed)
                try:
                    await self._reader.readuntil(b"\n")
                    return
                except asyncio.LimitOverrunError as exc:
                    consumed = exc.consumed
        except asyncio.IncompleteReadError:
            return
        except OSError as exc:
            raise TransportError(f"{self.label}: read failed: {exc}") from exc

    async def close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            logger.debug("%s: close raised", self.label, exc_info=True)


class SerialTransport:
    """pyserial port whose blocking reads run on a worker thread."""

    def __init__(self, port: serial.Serial, *, label: str) -> None:
        self._port = port
        self.label = label

    @classmethod
    def open(cls, device: str, *, baudrate: int, timeout: float) -> "SerialTransport":
        try:
            port = serial.Serial(port=device, baudrate=baudrate, timeout=timeout)
        except (serial.SerialException, ValueError) as exc:
            raise TransportError(f"Unable to open {device}: {exc}") from exc
        return cls(port, label=f"{device}@{baudrate}")

    def _read_frame(self) -> Optional[bytes]:
        # readline() returns a partial line on timeout; keep reading until the
        # newline shows up so callers always get whole frames.
        buf = bytearray()
        oversized = False
        while self._port.is_open:
            chunk = self._port.readline(MAX_FRAME_BYTES + 1)
            if chunk:
                if not oversized:
                    buf.extend(chunk)
                    if len(buf) > MAX_FRAME_BYTES:
                        oversized = True
                        buf.clear()
                if chunk.endswith(b"\n"):
                    if oversized:
                        raise FrameTooLarge(f"{self.label}: frame longer than {MAX_FRAME_BYTES} bytes")
                    return bytes(buf)
            elif buf or oversized:
                continue
            else:
                return None
        return bytes(buf)

    async def readline(self) -> bytes:
        while True:
            try:
                frame = await asyncio.to_thread(self._read_frame)
            except (serial.SerialException, OSError, TypeError) as exc:
                raise TransportError(f"{self.label}: read failed: {exc}") from exc
            if frame is None:
                # Read timed out with nothing buffered; poll again.
                continue
            return frame

    async def close(self) -> None:
        try:
            self._port.close()
        except serial.SerialException:
            logger.debug("%s: close raised", self.label, exc_info=True)


async def open_transport(config: TransportConfig) -> Transport:
    """Open the configured transport or raise :class:`TransportError`."""

    if config.kind == "tcp":
        return await TcpTransport.connect(config.host, config.port, timeout=config.connect_timeout_seconds)
    return await asyncio.to_thread(
        SerialTransport.open,
        config.device,
        baudrate=config.baudrate,
        timeout=config.read_timeout_seconds,
    )
