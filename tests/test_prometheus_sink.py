from __future__ import annotations

from prometheus_client import CollectorRegistry

from conftest import make_snapshot
from inverter_agent.hardware.snapshot import DeviceError, Snapshot
from inverter_agent.services.prometheus_sink import PrometheusSink


def _value(sink: PrometheusSink, name: str, labels: dict | None = None) -> float | None:
    return sink.registry.get_sample_value(name, labels or {})


def test_publish_sets_gauges():
    sink = PrometheusSink()
    snapshot = make_snapshot(errors=(DeviceError("Overload"),))
    sink.publish(snapshot)

    assert _value(sink, "inverter_battery_voltage_v") == 26.0
    assert _value(sink, "inverter_battery_power_w") == 130.0
    assert _value(sink, "inverter_battery_charge_percentage") == 80.0
    assert _value(sink, "inverter_mains_power_out_va") == 460.0
    assert _value(sink, "inverter_mains_freq_in_hz") == 50.0
    assert _value(sink, "inverter_led_state", {"led": "Mains"}) == 1.0
    assert _value(sink, "inverter_led_state", {"led": "Float"}) == 2.0
    assert _value(sink, "inverter_led_state", {"led": "Overload"}) == 0.0
    assert _value(sink, "inverter_device_errors") == 1.0
    assert _value(sink, "inverter_last_update_timestamp_seconds") == snapshot.timestamp.timestamp()


def test_invalid_snapshot_leaves_gauges_untouched():
    sink = PrometheusSink()
    sink.publish(make_snapshot(bat_voltage=25.0))
    sink.publish(Snapshot.invalid())

    assert _value(sink, "inverter_battery_voltage_v") == 25.0


def test_instances_do_not_share_a_registry():
    first = PrometheusSink(namespace="victron")
    second = PrometheusSink(namespace="victron")
    first.publish(make_snapshot(bat_voltage=24.0))

    assert first.registry is not second.registry
    assert _value(second, "victron_battery_voltage_v") == 0.0


def test_render_exposition_text():
    registry = CollectorRegistry()
    sink = PrometheusSink(registry=registry)
    sink.publish(make_snapshot())

    body = sink.render().decode("utf-8")
    assert "# HELP inverter_battery_voltage_v Voltage of the battery." in body
    assert 'inverter_led_state{led="Mains"} 1.0' in body
    assert sink.content_type.startswith("text/plain")
