"""Running totals accumulated between two reads of the rate report.

Energy is integrated with the trapezoid rule between consecutive valid
snapshots, in watt-hours. The first valid snapshot after a reset only seeds the
reference point.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from inverter_agent.hardware.snapshot import Snapshot

AVERAGED_FIELDS = (
    "bat_voltage",
    "bat_current",
    "bat_power",
    "charge_percent",
    "in_voltage",
    "in_current",
    "in_frequency",
    "in_power",
    "out_voltage",
    "out_current",
    "out_frequency",
    "out_power",
)

SECONDS_PER_HOUR = 3600.0


@dataclass
class RunningTotals:
    samples: int = 0
    sums: Dict[str, float] = field(default_factory=lambda: {name: 0.0 for name in AVERAGED_FIELDS})
    in_energy_wh: float = 0.0
    out_energy_wh: float = 0.0
    bat_energy_wh: float = 0.0
    last_timestamp: Optional[datetime] = None
    last_in_power: float = 0.0
    last_out_power: float = 0.0
    last_bat_power: float = 0.0

    def averages(self) -> Dict[str, float]:
        if self.samples == 0:
            return {}
        return {name: total / self.samples for name, total in self.sums.items()}

    def copy(self) -> "RunningTotals":
        return copy.deepcopy(self)

    def as_dict(self) -> Dict[str, object]:
        return {
            "samples": self.samples,
            "averages": self.averages(),
            "in_energy_wh": self.in_energy_wh,
            "out_energy_wh": self.out_energy_wh,
            "bat_energy_wh": self.bat_energy_wh,
        }


def update_totals(totals: RunningTotals, snapshot: Snapshot) -> None:
    if not snapshot.valid:
        return
    totals.samples += 1
    for name in AVERAGED_FIELDS:
        totals.sums[name] = totals.sums.get(name, 0.0) + float(getattr(snapshot, name))

    in_power = snapshot.in_power
    out_power = snapshot.out_power
    bat_power = snapshot.bat_power
    if totals.last_timestamp is not None:
        hours = (snapshot.timestamp - totals.last_timestamp).total_seconds() / SECONDS_PER_HOUR
        if hours > 0:
            totals.in_energy_wh += (totals.last_in_power + in_power) / 2 * hours
            totals.out_energy_wh += (totals.last_out_power + out_power) / 2 * hours
            totals.bat_energy_wh += (totals.last_bat_power + bat_power) / 2 * hours
    totals.last_timestamp = snapshot.timestamp
    totals.last_in_power = in_power
    totals.last_out_power = out_power
    totals.last_bat_power = bat_power


def reset_totals(totals: RunningTotals) -> None:
    totals.samples = 0
    totals.sums = {name: 0.0 for name in AVERAGED_FIELDS}
    totals.in_energy_wh = 0.0
    totals.out_energy_wh = 0.0
    totals.bat_energy_wh = 0.0
    totals.last_timestamp = None
    totals.last_in_power = 0.0
    totals.last_out_power = 0.0
    totals.last_bat_power = 0.0
