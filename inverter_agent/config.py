"""Runtime configuration for the inverter agent."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from inverter_agent import build_info

DEFAULT_LED_NAMES: Dict[int, str] = {
    0: "Mains",
    1: "Absorption",
    2: "Bulk",
    3: "Float",
    4: "Inverter",
    5: "Overload",
    6: "Low battery",
    7: "Temperature",
}

DEFAULT_STATE_NAMES: Dict[int, str] = {
    0: "off",
    1: "on",
    2: "blink",
}


def split_address(value: str, *, default_port: int = 8139) -> tuple[str, int]:
    """Split ``host:port`` into its parts; a bare host uses ``default_port``."""

    raw = str(value or "").strip()
    if not raw:
        raise ValueError("address must not be empty")
    if raw.startswith("["):
        host, sep, rest = raw[1:].partition("]")
        port_raw = rest[1:] if rest.startswith(":") else ""
        if not sep:
            raise ValueError(f"Invalid address {value!r}")
    elif raw.count(":") == 1:
        host, _, port_raw = raw.partition(":")
    else:
        host, port_raw = raw, ""
    host = host.strip() or "localhost"
    if not port_raw:
        return host, default_port
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise ValueError(f"Invalid port in address {value!r}") from exc
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in address {value!r}")
    return host, port


class TransportConfig(BaseModel):
    """Where decoded telemetry frames are read from."""

    kind: Literal["serial", "tcp"] = Field(default="serial", description="Transport used to reach the device bridge")
    device: str = Field(default="/dev/ttyUSB0", description="TTY device for the serial transport")
    address: str = Field(default="localhost:8139", description="host:port for the TCP transport")
    baudrate: int = Field(default=2400, ge=300, description="Serial bit rate")
    connect_timeout_seconds: float = Field(default=10.0, gt=0, description="TCP connect timeout")
    read_timeout_seconds: float = Field(default=1.0, gt=0, description="Serial read poll timeout")
    reconnect_delay_seconds: float = Field(default=5.0, ge=0.1, description="Initial reconnect backoff")
    reconnect_max_delay_seconds: float = Field(default=60.0, ge=0.1, description="Backoff ceiling")

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        split_address(value)
        return value.strip()

    @property
    def host(self) -> str:
        return split_address(self.address)[0]

    @property
    def port(self) -> int:
        return split_address(self.address)[1]

    def describe(self) -> str:
        if self.kind == "tcp":
            return f"tcp://{self.host}:{self.port}"
        return f"{self.device}@{self.baudrate}"


class WebConfig(BaseModel):
    listen_host: str = "0.0.0.0"
    listen_port: int = Field(default=8080, gt=0, lt=65536)
    page_refresh_seconds: int = Field(default=10, ge=1, le=3600, description="Status page auto-refresh")


class MetricsConfig(BaseModel):
    namespace: str = Field(default="inverter", description="Prometheus metric name prefix")
    sink_timeout_seconds: Optional[float] = Field(
        default=1.0,
        gt=0,
        description="Upper bound for one metrics sink update; None runs the sink inline",
    )


class SimulationProfile(BaseModel):
    """Synthetic telemetry used for development without a device attached."""

    enabled: bool = False
    seed: Optional[int] = None
    interval_seconds: float = Field(default=1.0, gt=0)
    invalid_every: int = Field(default=0, ge=0, description="Emit an undecodable frame every N ticks (0 = never)")
    base_overrides: Dict[str, float] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Environment driven settings for the agent and its CLI."""

    service_name: str = "inverter-agent"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = True
    transport: TransportConfig = Field(default_factory=TransportConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    simulation: SimulationProfile = Field(default_factory=SimulationProfile)
    led_names: Dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_LED_NAMES))
    state_names: Dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_STATE_NAMES))

    model_config = SettingsConfigDict(
        env_prefix="INVERTER_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _check_simulation(self):
        if build_info.BUILD_FLAVOR == "prod" and self.simulation.enabled:
            raise ValueError("Simulation is not allowed in production builds")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
