"""Turn snapshots into display strings for the status page and the console."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping

from inverter_agent.config import DEFAULT_LED_NAMES, DEFAULT_STATE_NAMES
from inverter_agent.hardware.snapshot import Snapshot

UNKNOWN_LED = "Unknown led"
UNKNOWN_STATE = "unknown"
RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"
PAGE_PRECISION = 3
CONSOLE_PRECISION = 2


@dataclass
class DisplayRecord:
    valid: bool
    date: str
    out_current: str
    out_voltage: str
    out_power: str
    in_current: str
    in_voltage: str
    in_power: str
    in_minus_out: str
    bat_voltage: str
    bat_current: str
    bat_power: str
    bat_charge: str
    in_freq: str
    out_freq: str
    leds: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


class SnapshotFormatter:
    def __init__(
        self,
        led_names: Mapping[int, str] | None = None,
        state_names: Mapping[int, str] | None = None,
    ) -> None:
        self.led_names = MappingProxyType(dict(led_names if led_names is not None else DEFAULT_LED_NAMES))
        self.state_names = MappingProxyType(dict(state_names if state_names is not None else DEFAULT_STATE_NAMES))

    def led_name(self, led: int) -> str:
        return self.led_names.get(int(led), UNKNOWN_LED)

    def state_name(self, state: int) -> str:
        return self.state_names.get(int(state), UNKNOWN_STATE)

    def display_record(self, snapshot: Snapshot, precision: int = PAGE_PRECISION) -> DisplayRecord:
        def fmt(value: float) -> str:
            return f"{value:.{precision}f}"

        return DisplayRecord(
            valid=snapshot.valid,
            date=snapshot.timestamp.strftime(RFC1123Z),
            out_current=fmt(snapshot.out_current),
            out_voltage=fmt(snapshot.out_voltage),
            out_power=fmt(snapshot.out_power),
            in_current=fmt(snapshot.in_current),
            in_voltage=fmt(snapshot.in_voltage),
            in_power=fmt(snapshot.in_power),
            in_minus_out=fmt(snapshot.in_minus_out),
            bat_voltage=fmt(snapshot.bat_voltage),
            bat_current=fmt(snapshot.bat_current),
            bat_power=fmt(snapshot.bat_power),
            bat_charge=fmt(snapshot.charge_percent),
            in_freq=fmt(snapshot.in_frequency),
            out_freq=fmt(snapshot.out_frequency),
            leds=[self.led_name(led) for led in snapshot.leds_on],
            errors=[err.description for err in snapshot.errors],
        )

    def console_report(self, snapshot: Snapshot) -> str:
        p = CONSOLE_PRECISION
        lines = [
            f"Version: {snapshot.version}",
            f"Bat Volt: {snapshot.bat_voltage:.{p}f}V Bat Cur: {snapshot.bat_current:.{p}f}A",
            f"In Volt: {snapshot.in_voltage:.{p}f}V In Cur: {snapshot.in_current:.{p}f}A "
            f"In Freq {snapshot.in_frequency:.{p}f}Hz",
            f"Out Volt: {snapshot.out_voltage:.{p}f}V Out Cur: {snapshot.out_current:.{p}f}A "
            f"Out Freq {snapshot.out_frequency:.{p}f}Hz",
            f"In Power {snapshot.in_power:.{p}f}W Out Power {snapshot.out_power:.{p}f}W",
            f"Charge State: {snapshot.charge_percent:.{p}f}%",
        ]
        led_states = "".join(
            f" {self.led_name(led)} {self.state_name(state)}" for led, state in sorted(snapshot.leds.items())
        )
        lines.append(f"LEDs state:{led_states}")
        lines.append("Errors:" + "".join(f" {err.description}" for err in snapshot.errors))
        return "\n".join(lines) + "\n"
