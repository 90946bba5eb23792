import logging

import pytest

from player_gateway.client import ConnectionRefusedByGateway, GatewayClient
from player_gateway.config import GatewayConfig
from player_gateway.errors import GatewaySetupError
from player_gateway.gateway import PlayerGateway
from player_gateway.message import (
    ActuatorCommandBatch,
    MessageType,
    MotorPosition,
    SensorTimeStep,
)

from conftest import FakeHost, connect_client, step_with_input, wait_until


def subscribe(client, gateway, name, period):
    client.send_batch(ActuatorCommandBatch(sensor_time_steps=[SensorTimeStep(name, period)]))
    step_with_input(gateway)
    return client.receive_snapshot()


def test_server_starts_listening(gateway):
    assert gateway.port > 0
    assert not gateway.connected
    assert (gateway.player_id, gateway.team.value) == (1, "red")


def test_invalid_robot_name_is_setup_error(config, store):
    with pytest.raises(GatewaySetupError):
        PlayerGateway(FakeHost(name="referee"), 0, [], config=config, store=store)


def test_steps_without_controller_only_poll(gateway, host):
    for _ in range(3):
        gateway.step()
    assert not gateway.connected
    assert gateway.get_stats()["controller_time"] is None


def test_snapshot_sent_every_step_without_input(gateway, client):
    times = []
    for _ in range(3):
        gateway.step()
        times.append(client.receive_snapshot().time)
    assert times == [32, 64, 96]


def test_sensor_enabled_in_a_step_is_reported_from_the_next(gateway, client):
    first = subscribe(client, gateway, "accelerometer", 32)
    assert first.time == 32
    assert first.accelerometers == []
    assert first.messages == []

    gateway.step()
    second = client.receive_snapshot()
    assert second.time == 64
    assert [m.name for m in second.accelerometers] == ["accelerometer"]


def test_disable_is_effective_in_the_same_step(gateway, client, host):
    subscribe(client, gateway, "gyro", 32)
    gateway.step()
    assert client.receive_snapshot().gyros

    snapshot = subscribe(client, gateway, "gyro", 0)
    assert snapshot.gyros == []
    assert host.handle("gyro").sampling_period == 0
    assert gateway.subscription.active_names == []


def test_motor_command_and_sensor_at_twice_the_step(gateway, client, host):
    client.send_batch(ActuatorCommandBatch(
        motor_positions=[MotorPosition("head_motor", 0.75)],
        sensor_time_steps=[SensorTimeStep("accelerometer", 64)],
    ))
    step_with_input(gateway)
    first = client.receive_snapshot()
    assert host.handle("head_motor").position == 0.75
    assert first.time == 32
    assert first.accelerometers == []

    gateway.step()
    second = client.receive_snapshot()
    assert second.time == 64
    assert second.accelerometers[0].value == (0.1, 0.2, 9.81)

    gateway.step()
    assert client.receive_snapshot().accelerometers == []
    gateway.step()
    assert client.receive_snapshot().accelerometers


def test_warnings_reach_the_controller_in_the_same_step(gateway, client):
    client.send_batch(ActuatorCommandBatch(motor_positions=[MotorPosition("ghost", 1.0)]))
    step_with_input(gateway)
    snapshot = client.receive_snapshot()
    assert snapshot.warnings == ['Motor "ghost" not found, position command ignored.']

    gateway.step()
    assert client.receive_snapshot().messages == []


def test_malformed_message_does_not_stop_the_gateway(gateway, client, host):
    client.send_payload(b"definitely not json")
    step_with_input(gateway)
    snapshot = client.receive_snapshot()
    assert len(snapshot.warnings) == 1
    assert gateway.connected

    client.send_batch(ActuatorCommandBatch(motor_positions=[MotorPosition("head_motor", -0.5)]))
    step_with_input(gateway)
    assert client.receive_snapshot().warnings == []
    assert host.handle("head_motor").position == -0.5


@pytest.mark.parametrize("payload", [
    b'{"sensor_time_steps":[{"name":"accelerometer","timestep":1e400}]}',
    b'{"motor_positions":[{"name":"head_motor","position":1' + b"0" * 400 + b'}]}',
])
def test_out_of_range_message_becomes_a_warning(gateway, client, host, payload):
    client.send_payload(payload)
    step_with_input(gateway)
    snapshot = client.receive_snapshot()
    assert len(snapshot.warnings) == 1
    assert snapshot.warnings[0].startswith("Malformed actuator request ignored")
    assert gateway.connected
    assert gateway.subscription.pending_names == []
    assert host.handle("head_motor").position is None

    gateway.step()
    assert client.receive_snapshot().time == 64


def test_waiting_for_controller_is_timed_against_budget(host, store, caplog):
    caplog.set_level(logging.INFO, logger="player_gateway.gateway")
    gateway = PlayerGateway(
        host, 0, ["127.0.0.1"],
        config=GatewayConfig(budget_ms=-1.0, benchmark_level=1),
        store=store,
        resolver=lambda a: a,
    )
    gateway.start()
    try:
        gateway.step()
    finally:
        gateway.stop()
    assert gateway.get_stats()["over_budget_steps"] == 1
    assert "Accept time" in caplog.text
    assert "Step time" in caplog.text


def test_disconnect_releases_sensors_and_listens_again(gateway, client, host):
    subscribe(client, gateway, "gyro", 32)
    gateway.step()
    client.receive_snapshot()
    assert host.handle("gyro").sampling_period == 32

    client.close()
    assert wait_until(lambda: gateway.step() or not gateway.connected)
    assert gateway.subscription.active_names == []
    assert host.handle("gyro").sampling_period == 0

    second = connect_client(gateway)
    try:
        gateway.step()
        # A new controller starts again from time zero.
        assert second.receive_snapshot().time == 32
    finally:
        second.close()


def test_refused_host_gets_refusal_token(host, config, store):
    gateway = PlayerGateway(host, 0, ["controller.example"], config=config, store=store, resolver=lambda a: a)
    gateway.start()
    client = GatewayClient("127.0.0.1", gateway.port)
    try:
        client.open()
        assert wait_until(lambda: gateway.get_stats()["access"]["refused"] == 1 or gateway.step())
        with pytest.raises(ConnectionRefusedByGateway):
            client.handshake()
        assert not gateway.connected
    finally:
        client.close()
        gateway.stop()


@pytest.fixture
def tight_gateway(host, store):
    gw = PlayerGateway(
        host, 0, ["127.0.0.1"],
        config=GatewayConfig(team_quota=2000, benchmark_level=0),
        store=store,
        resolver=lambda a: a,
    )
    gw.start()
    yield gw
    gw.stop()


def test_quota_overrun_replaces_snapshot(tight_gateway, host, store):
    client = connect_client(tight_gateway)
    try:
        subscribe(client, tight_gateway, "camera", 32)
        host.handle("camera").image = bytes(4 * 32 * 32)
        host.handle("camera").width = host.handle("camera").height = 32

        tight_gateway.step()
        snapshot = client.receive_snapshot()
        assert snapshot.time == 64
        assert snapshot.real_time > 0
        assert snapshot.cameras == []
        assert [(m.message_type, m.text) for m in snapshot.messages] == [
            (MessageType.ERROR_MESSAGE, "2000 bytes/s team quota exceeded.")
        ]
        # The full-size snapshot is what counts against the quota.
        assert max(tight_gateway.window.slots) > 4 * 32 * 32
        assert len(snapshot.to_bytes()) < max(tight_gateway.window.slots)
        assert tight_gateway.get_stats()["quota"]["overruns"] == 1
    finally:
        client.close()


def test_teammate_usage_counts_against_quota(tight_gateway, store):
    store.publish(3, [1990])
    client = connect_client(tight_gateway)
    try:
        tight_gateway.step()
        snapshot = client.receive_snapshot()
        assert [m.message_type for m in snapshot.messages] == [MessageType.ERROR_MESSAGE]
        assert store.read(1)
    finally:
        client.close()


def test_stats_describe_the_session(gateway, client):
    gateway.step()
    client.receive_snapshot()
    stats = gateway.get_stats()
    assert stats["player_id"] == 1
    assert stats["team"] == "red"
    assert stats["controller_time"] == 32
    assert stats["transport"]["connected"] is True
    assert stats["access"]["accepted"] == 1
    assert stats["quota"]["team_usage"] > 0


def test_benchmark_level_three_logs_every_phase(host, store, caplog):
    caplog.set_level(logging.INFO, logger="player_gateway.gateway")
    gateway = PlayerGateway(
        host, 0, ["127.0.0.1"],
        config=GatewayConfig(benchmark_level=3),
        store=store,
        resolver=lambda a: a,
    )
    gateway.start()
    try:
        client = connect_client(gateway)
        gateway.step()
        client.receive_snapshot()
        client.close()
    finally:
        gateway.stop()
    assert "RED 1: server started on port" in caplog.text
    for phase in ("Receive", "Prepare", "Update", "Send"):
        assert f"{phase} time" in caplog.text
    assert "Step time" in caplog.text
