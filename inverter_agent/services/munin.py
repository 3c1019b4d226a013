"""Munin multigraph plugin output built from accumulated running totals."""
from __future__ import annotations

from typing import Dict, List, Tuple

from inverter_agent.services.totals import RunningTotals

NO_DATA = "No data to return.\n"

# graph -> (title, vertical label, [(munin field, totals key, label)])
MUNIN_GRAPHS: Dict[str, Tuple[str, str, List[Tuple[str, str, str]]]] = {
    "in_batvolt": ("Battery voltage", "Volt", [("volt", "bat_voltage", "Voltage of battery")]),
    "in_batcharge": ("Battery charge", "%", [("charge", "charge_percent", "Battery charge")]),
    "in_batcurrent": ("Battery current", "Amp", [("current", "bat_current", "Battery current")]),
    "in_batpower": ("Battery power", "Watt", [("power", "bat_power", "Battery power")]),
    "in_mainscurrent": (
        "Mains current",
        "Amp",
        [("currentin", "in_current", "Input current"), ("currentout", "out_current", "Output current")],
    ),
    "in_mainsvoltage": (
        "Mains voltage",
        "Volt",
        [("voltagein", "in_voltage", "Input voltage"), ("voltageout", "out_voltage", "Output voltage")],
    ),
    "in_mainspower": (
        "Mains power",
        "VA",
        [("powerin", "in_power", "Input power"), ("powerout", "out_power", "Output power")],
    ),
    "in_mainsfreq": (
        "Mains frequency",
        "Hz",
        [("freqin", "in_frequency", "In frequency"), ("freqout", "out_frequency", "Out frequency")],
    ),
    "in_energy": (
        "Energy since last read",
        "Wh",
        [
            ("energyin", "in_energy_wh", "Input energy"),
            ("energyout", "out_energy_wh", "Output energy"),
            ("energybat", "bat_energy_wh", "Battery energy"),
        ],
    ),
}


def _totals_values(totals: RunningTotals) -> Dict[str, float]:
    values = dict(totals.averages())
    values["in_energy_wh"] = totals.in_energy_wh
    values["out_energy_wh"] = totals.out_energy_wh
    values["bat_energy_wh"] = totals.bat_energy_wh
    return values


def render_values(totals: RunningTotals) -> str:
    """Plugin ``fetch`` output; raises ``ValueError`` when no samples were taken."""

    if totals.samples == 0:
        raise ValueError("no samples accumulated since the previous read")
    values = _totals_values(totals)
    lines: List[str] = []
    for graph, (_title, _vlabel, fields) in MUNIN_GRAPHS.items():
        lines.append(f"multigraph {graph}")
        for name, key, _label in fields:
            lines.append(f"{name}.value {values[key]:.3f}")
    return "\n".join(lines) + "\n"


def render_config() -> str:
    lines: List[str] = []
    for graph, (title, vlabel, fields) in MUNIN_GRAPHS.items():
        lines.append(f"multigraph {graph}")
        lines.append(f"graph_title {title}")
        lines.append(f"graph_vlabel {vlabel}")
        lines.append("graph_category inverter")
        for name, _key, label in fields:
            lines.append(f"{name}.label {label}")
    return "\n".join(lines) + "\n"
