"""Telemetry snapshot produced once per device poll cycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Led(IntEnum):
    MAINS = 0
    ABSORPTION = 1
    BULK = 2
    FLOAT = 3
    INVERTER = 4
    OVERLOAD = 5
    LOW_BATTERY = 6
    TEMPERATURE = 7


class LedState(IntEnum):
    OFF = 0
    ON = 1
    BLINK = 2


class DeviceError(Exception):
    """Error condition reported by the device inside an otherwise valid frame."""

    @property
    def description(self) -> str:
        return str(self)


def _frozen_leds(leds: Optional[Mapping[int, int]]) -> Mapping[int, LedState]:
    resolved = {}
    for led_id, state in (leds or {}).items():
        try:
            resolved[int(led_id)] = LedState(int(state))
        except ValueError:
            continue
    return MappingProxyType(resolved)


@dataclass(frozen=True)
class Snapshot:
    valid: bool = False
    version: int = 0
    bat_voltage: float = 0.0
    bat_current: float = 0.0
    in_voltage: float = 0.0
    in_current: float = 0.0
    in_frequency: float = 0.0
    out_voltage: float = 0.0
    out_current: float = 0.0
    out_frequency: float = 0.0
    charge_state: float = 0.0
    leds: Mapping[int, LedState] = field(default_factory=lambda: MappingProxyType({}))
    leds_on: Tuple[int, ...] = ()
    errors: Tuple[DeviceError, ...] = ()
    timestamp: datetime = EPOCH

    def __post_init__(self) -> None:
        # Callers may hand in plain dicts/lists; readers must never share them.
        object.__setattr__(self, "leds", _frozen_leds(self.leds))
        object.__setattr__(self, "leds_on", tuple(int(led) for led in self.leds_on))
        object.__setattr__(self, "errors", tuple(self.errors))

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @classmethod
    def invalid(cls, timestamp: Optional[datetime] = None) -> "Snapshot":
        return cls(valid=False, timestamp=timestamp or datetime.now(timezone.utc))

    @classmethod
    def from_leds(
        cls,
        leds: Mapping[int, int],
        **fields,
    ) -> "Snapshot":
        """Build a snapshot deriving ``leds_on`` from the LED state map."""

        leds_on: Iterable[int] = sorted(int(k) for k, v in leds.items() if int(v) != LedState.OFF)
        return cls(leds=leds, leds_on=tuple(leds_on), **fields)

    @property
    def out_power(self) -> float:
        return self.out_voltage * self.out_current

    @property
    def in_power(self) -> float:
        return self.in_voltage * self.in_current

    @property
    def in_minus_out(self) -> float:
        return self.in_power - self.out_power

    @property
    def bat_power(self) -> float:
        return self.bat_voltage * self.bat_current

    @property
    def charge_percent(self) -> float:
        return self.charge_state * 100
