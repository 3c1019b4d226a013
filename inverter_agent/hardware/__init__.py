"""Device-facing layer: snapshot model, transports and telemetry sources."""
from __future__ import annotations

from .snapshot import DeviceError, Led, LedState, Snapshot
from .source import StreamTelemetrySource, TelemetrySource, decode_frame, decode_payload
from .transport import FrameTooLarge, SerialTransport, TcpTransport, Transport, TransportError, open_transport

__all__ = [
    "DeviceError",
    "Led",
    "LedState",
    "Snapshot",
    "StreamTelemetrySource",
    "TelemetrySource",
    "decode_frame",
    "decode_payload",
    "FrameTooLarge",
    "SerialTransport",
    "TcpTransport",
    "Transport",
    "TransportError",
    "open_transport",
]
