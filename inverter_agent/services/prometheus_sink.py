"""Prometheus gauges fed with every valid snapshot."""
from __future__ import annotations

from typing import Mapping

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from inverter_agent.config import DEFAULT_LED_NAMES
from inverter_agent.hardware.snapshot import Snapshot


class PrometheusSink:
    """Gauges for the latest valid snapshot, kept in a registry of their own."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        *,
        namespace: str = "inverter",
        registry: CollectorRegistry | None = None,
        led_names: Mapping[int, str] | None = None,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._led_names = dict(led_names if led_names is not None else DEFAULT_LED_NAMES)

        def gauge(name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
            return Gauge(name, doc, labels, namespace=namespace, registry=self.registry)

        self.battery_voltage = gauge("battery_voltage_v", "Voltage of the battery.")
        self.battery_current = gauge("battery_current_a", "Battery current; positive while charging.")
        self.battery_power = gauge("battery_power_w", "Battery power; positive while charging.")
        self.battery_charge = gauge("battery_charge_percentage", "Remaining battery charge.")
        self.mains_voltage_in = gauge("mains_voltage_in_v", "Mains input voltage.")
        self.mains_current_in = gauge("mains_current_in_a", "Mains input current.")
        self.mains_freq_in = gauge("mains_freq_in_hz", "Mains input frequency.")
        self.mains_power_in = gauge("mains_power_in_va", "Mains input apparent power.")
        self.mains_voltage_out = gauge("mains_voltage_out_v", "Inverter output voltage.")
        self.mains_current_out = gauge("mains_current_out_a", "Inverter output current.")
        self.mains_freq_out = gauge("mains_freq_out_hz", "Inverter output frequency.")
        self.mains_power_out = gauge("mains_power_out_va", "Inverter output apparent power.")
        self.led_state = gauge("led_state", "Indicator state (0 off, 1 on, 2 blink).", ("led",))
        self.device_errors = gauge("device_errors", "Error conditions reported in the last snapshot.")
        self.last_update = gauge("last_update_timestamp_seconds", "Capture time of the last valid snapshot.")

    def publish(self, snapshot: Snapshot) -> None:
        if not snapshot.valid:
            return
        self.battery_voltage.set(snapshot.bat_voltage)
        self.battery_current.set(snapshot.bat_current)
        self.battery_power.set(snapshot.bat_power)
        self.battery_charge.set(snapshot.charge_percent)
        self.mains_voltage_in.set(snapshot.in_voltage)
        self.mains_current_in.set(snapshot.in_current)
        self.mains_freq_in.set(snapshot.in_frequency)
        self.mains_power_in.set(snapshot.in_power)
        self.mains_voltage_out.set(snapshot.out_voltage)
        self.mains_current_out.set(snapshot.out_current)
        self.mains_freq_out.set(snapshot.out_frequency)
        self.mains_power_out.set(snapshot.out_power)
        for led_id, name in self._led_names.items():
            self.led_state.labels(led=name).set(int(snapshot.leds.get(led_id, 0)))
        self.device_errors.set(len(snapshot.errors))
        self.last_update.set(snapshot.timestamp.timestamp())

    def render(self) -> bytes:
        return generate_latest(self.registry)
