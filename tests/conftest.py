from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Iterable

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from inverter_agent import build_info  # noqa: E402
from inverter_agent.config import get_settings  # noqa: E402
from inverter_agent.hardware import TelemetrySource  # noqa: E402
from inverter_agent.hardware.snapshot import Led, LedState, Snapshot  # noqa: E402

build_info.BUILD_FLAVOR = os.environ.get("INVERTER_TEST_BUILD_FLAVOR", "test")

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_snapshot(seconds: float = 0.0, **overrides) -> Snapshot:
    """Valid snapshot matching the reference readings used across the tests."""

    fields = dict(
        valid=True,
        version=2_629_492,
        bat_voltage=26.0,
        bat_current=5.0,
        in_voltage=235.0,
        in_current=2.1,
        in_frequency=50.0,
        out_voltage=230.0,
        out_current=2.0,
        out_frequency=50.0,
        charge_state=0.8,
        timestamp=T0 + timedelta(seconds=seconds),
    )
    fields.update(overrides)
    leds = fields.pop("leds", {Led.MAINS: LedState.ON, Led.FLOAT: LedState.BLINK})
    return Snapshot.from_leds(leds, **fields)


class PreloadedSource(TelemetrySource):
    """Emits a fixed list of snapshots, then stays silent until closed."""

    name = "preloaded-source"

    def __init__(self, snapshots: Iterable[Snapshot]) -> None:
        super().__init__()
        self._snapshots = list(snapshots)
        self.released = False

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        for snapshot in self._snapshots:
            yield snapshot
        await asyncio.Event().wait()

    async def _release(self) -> None:
        self.released = True


@pytest.fixture(autouse=True)
def reset_settings_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("INVERTER_") and key != "INVERTER_TEST_BUILD_FLAVOR":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("INVERTER_LOG_JSON", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
