"""
Gateway configuration.

Environment Variables:
    GATEWAY_TEAM_QUOTA: Team bandwidth quota in bytes/s (default: 1000 MiB)
    GATEWAY_TEAM_SIZE: Players per team (default: 4)
    GATEWAY_BUDGET_MS: Step time budget before diagnostics are logged (default: 1.0)
    GATEWAY_BENCHMARK_LEVEL: 0 silent, 1 over budget only, 2 step time, 3 phases (default: 1)
    GATEWAY_MAX_MESSAGE_BYTES: Largest inbound frame / unsent backlog (default: 64 MiB)
    GATEWAY_QUOTA_BACKEND: "file" or "mqtt" (default: file)
    GATEWAY_QUOTA_DIR: Directory of the quota files (default: .)
    MQTT_HOST: MQTT broker host (default: localhost)
    MQTT_PORT: MQTT broker port (default: 1883)
    GATEWAY_MONITOR_PORT: Port of the HTTP monitoring endpoint (default: disabled)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import GatewaySetupError
from .quota import DEFAULT_TEAM_QUOTA

QUOTA_BACKENDS = ("file", "mqtt")


@dataclass
class GatewayConfig:
    team_quota: int = DEFAULT_TEAM_QUOTA
    team_size: int = 4
    budget_ms: float = 1.0
    benchmark_level: int = 1
    max_message_bytes: int = 64 * 1024 * 1024
    quota_backend: str = "file"
    quota_dir: str = "."
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    monitor_port: Optional[int] = None

    def __post_init__(self):
        if self.quota_backend not in QUOTA_BACKENDS:
            raise GatewaySetupError(
                f"Unknown quota backend {self.quota_backend!r}, expected one of {QUOTA_BACKENDS}"
            )
        if self.team_size < 1:
            raise GatewaySetupError(f"Team size must be positive, got {self.team_size}")
        if self.max_message_bytes < 1:
            raise GatewaySetupError(f"Maximum message size must be positive, got {self.max_message_bytes}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'GatewayConfig':
        """Load configuration from environment variables."""
        env = os.environ if environ is None else environ
        monitor_port = env.get("GATEWAY_MONITOR_PORT")
        try:
            return cls(
                team_quota=int(env.get("GATEWAY_TEAM_QUOTA", str(DEFAULT_TEAM_QUOTA))),
                team_size=int(env.get("GATEWAY_TEAM_SIZE", "4")),
                budget_ms=float(env.get("GATEWAY_BUDGET_MS", "1.0")),
                benchmark_level=int(env.get("GATEWAY_BENCHMARK_LEVEL", "1")),
                max_message_bytes=int(env.get("GATEWAY_MAX_MESSAGE_BYTES", str(64 * 1024 * 1024))),
                quota_backend=env.get("GATEWAY_QUOTA_BACKEND", "file"),
                quota_dir=env.get("GATEWAY_QUOTA_DIR", "."),
                mqtt_host=env.get("MQTT_HOST", "localhost"),
                mqtt_port=int(env.get("MQTT_PORT", "1883")),
                monitor_port=int(monitor_port) if monitor_port else None,
            )
        except ValueError as e:
            raise GatewaySetupError(f"Invalid configuration: {e}") from e
