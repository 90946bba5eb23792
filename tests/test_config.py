import pytest

from player_gateway.config import GatewayConfig
from player_gateway.errors import GatewaySetupError
from player_gateway.identity import Team, parse_robot_name
from player_gateway.main import parse_args, run
from player_gateway.quota import DEFAULT_TEAM_QUOTA


def test_defaults():
    config = GatewayConfig.from_env({})
    assert config.team_quota == DEFAULT_TEAM_QUOTA
    assert config.team_size == 4
    assert config.benchmark_level == 1
    assert config.quota_backend == "file"
    assert config.monitor_port is None


def test_from_env():
    config = GatewayConfig.from_env({
        "GATEWAY_TEAM_QUOTA": "5000",
        "GATEWAY_TEAM_SIZE": "5",
        "GATEWAY_BUDGET_MS": "2.5",
        "GATEWAY_BENCHMARK_LEVEL": "3",
        "GATEWAY_QUOTA_BACKEND": "mqtt",
        "MQTT_HOST": "broker.local",
        "MQTT_PORT": "1884",
        "GATEWAY_MONITOR_PORT": "8080",
    })
    assert config.team_quota == 5000
    assert config.team_size == 5
    assert config.budget_ms == 2.5
    assert config.benchmark_level == 3
    assert (config.quota_backend, config.mqtt_host, config.mqtt_port) == ("mqtt", "broker.local", 1884)
    assert config.monitor_port == 8080


@pytest.mark.parametrize("environ", [
    {"GATEWAY_TEAM_QUOTA": "lots"},
    {"GATEWAY_TEAM_SIZE": "0"},
    {"GATEWAY_QUOTA_BACKEND": "redis"},
    {"GATEWAY_MAX_MESSAGE_BYTES": "0"},
    {"MQTT_PORT": ""},
])
def test_invalid_environment_is_setup_error(environ):
    with pytest.raises(GatewaySetupError):
        GatewayConfig.from_env(environ)


@pytest.mark.parametrize("name,expected", [
    ("red player 1", (1, Team.RED)),
    ("red player 4", (4, Team.RED)),
    ("blue player 2", (2, Team.BLUE)),
    ("Red player 3", (3, Team.BLUE)),
])
def test_parse_robot_name(name, expected):
    assert parse_robot_name(name) == expected


@pytest.mark.parametrize("name", ["red player", "goalkeeper", ""])
def test_robot_name_without_number(name):
    with pytest.raises(GatewaySetupError):
        parse_robot_name(name)


def test_parse_args():
    args = parse_args(["10001", "127.0.0.1", "controller.local", "--monitor-port", "8080"])
    assert args.port == 10001
    assert args.allowed_hosts == ["127.0.0.1", "controller.local"]
    assert args.monitor_port == 8080
    assert not args.debug


def test_parse_args_requires_port():
    with pytest.raises(SystemExit):
        parse_args([])


def test_run_steps_until_simulation_ends():
    class Host:
        def __init__(self):
            self.remaining = 3

        def step(self):
            self.remaining -= 1
            return -1 if self.remaining < 0 else 32

    class Gateway:
        steps = 0

        def step(self):
            self.steps += 1

    gateway = Gateway()
    run(gateway, Host())
    assert gateway.steps == 3
