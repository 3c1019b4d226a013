"""Synthetic telemetry source used for development without a device."""
from __future__ import annotations

import asyncio
import math
import random
import zlib
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional

from inverter_agent import build_info
from inverter_agent.config import SimulationProfile
from inverter_agent.hardware.snapshot import DeviceError, Led, LedState, Snapshot
from inverter_agent.hardware.source import TelemetrySource

# field -> (base, amplitude, period seconds, clamp min, clamp max)
SNAPSHOT_METRIC_PROFILE = {
    "bat_voltage": (26.4, 0.8, 90.0, 22.0, 29.0),
    "bat_current": (4.0, 6.0, 45.0, -40.0, 40.0),
    "in_voltage": (232.0, 3.0, 30.0, 0.0, None),
    "in_current": (2.2, 0.8, 20.0, 0.0, None),
    "in_frequency": (50.0, 0.05, 15.0, 45.0, 55.0),
    "out_voltage": (230.0, 1.0, 25.0, 0.0, None),
    "out_current": (1.8, 0.9, 18.0, 0.0, None),
    "out_frequency": (50.0, 0.02, 12.0, 45.0, 55.0),
    "charge_state": (0.78, 0.15, 300.0, 0.0, 1.0),
}


class SimulatedSource(TelemetrySource):
    """Generate repeatable inverter snapshots at a fixed cadence."""

    name = "simulated-telemetry-source"

    def __init__(self, profile: SimulationProfile, *, seed_hint: str | None = None) -> None:
        if build_info.BUILD_FLAVOR == "prod":
            raise RuntimeError("Simulation is not allowed in production builds")
        super().__init__()
        self.profile = profile
        seed = profile.seed if profile.seed is not None else zlib.crc32((seed_hint or "inverter").encode("utf-8"))
        self.random = random.Random(seed)
        self._tick = 0

    def snapshot_at(self, now: float, *, timestamp: Optional[datetime] = None) -> Snapshot:
        """Return the snapshot for simulated time ``now`` (seconds since start)."""

        self._tick += 1
        ts = timestamp or datetime.now(timezone.utc)
        every = self.profile.invalid_every
        if every and self._tick % every == 0:
            return Snapshot.invalid(ts)

        fields: Dict[str, float] = {}
        overrides = self.profile.base_overrides or {}
        for key, (base, amplitude, period, clamp_min, clamp_max) in SNAPSHOT_METRIC_PROFILE.items():
            if key in overrides:
                fields[key] = float(overrides[key])
                continue
            phase = (sum(key.encode("utf-8")) % 10) / 10.0
            value = base + amplitude * math.sin((now / period) + phase)
            value += self.random.gauss(0, amplitude * 0.02)
            if clamp_min is not None:
                value = max(value, clamp_min)
            if clamp_max is not None:
                value = min(value, clamp_max)
            fields[key] = round(value, 4)

        charging = fields["bat_current"] > 0
        leds = {
            Led.MAINS: LedState.ON if fields["in_voltage"] > 180 else LedState.OFF,
            Led.BULK: LedState.ON if charging and fields["charge_state"] < 0.8 else LedState.OFF,
            Led.ABSORPTION: LedState.BLINK if charging and 0.8 <= fields["charge_state"] < 0.95 else LedState.OFF,
            Led.FLOAT: LedState.ON if charging and fields["charge_state"] >= 0.95 else LedState.OFF,
            Led.INVERTER: LedState.ON if fields["out_voltage"] > 180 else LedState.OFF,
            Led.LOW_BATTERY: LedState.ON if fields["charge_state"] < 0.2 else LedState.OFF,
        }
        errors = (DeviceError("Low battery"),) if fields["charge_state"] < 0.2 else ()
        return Snapshot.from_leds(leds, valid=True, version=2_629_492, errors=errors, timestamp=ts, **fields)

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        loop = asyncio.get_running_loop()
        started = loop.time()
        interval = self.profile.interval_seconds
        while True:
            yield self.snapshot_at(loop.time() - started)
            await asyncio.sleep(interval)


def simulated_series(profile: SimulationProfile, count: int, *, start: datetime) -> list[Snapshot]:
    """Deterministic series of ``count`` snapshots spaced by the profile interval."""

    source = SimulatedSource(profile, seed_hint="series")
    step = profile.interval_seconds
    return [
        source.snapshot_at(i * step, timestamp=start + timedelta(seconds=i * step))
        for i in range(count)
    ]
