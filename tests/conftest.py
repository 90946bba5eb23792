"""pytest configuration and fakes for player gateway tests."""

import select
import time

import pytest

from player_gateway.client import GatewayClient
from player_gateway.config import GatewayConfig
from player_gateway.devices import DeviceKind, DeviceRef, TouchType
from player_gateway.gateway import PlayerGateway
from player_gateway.identity import Team
from player_gateway.quota import FileWindowStore

BASIC_TIME_STEP = 32


class FakeMotor:
    def __init__(self):
        self.position = None
        self.velocity = None
        self.force = None
        self.torque = None
        self.pid = None

    def set_position(self, position):
        self.position = position

    def set_velocity(self, velocity):
        self.velocity = velocity

    def set_force(self, force):
        self.force = force

    def set_torque(self, torque):
        self.torque = torque

    def set_control_pid(self, p, i, d):
        self.pid = (p, i, d)

    def state(self):
        return (self.position, self.velocity, self.force, self.torque, self.pid)


class FakeSensor:
    def __init__(self, values=(0.0, 0.0, 0.0)):
        self.values = list(values)
        self.sampling_period = 0
        self.enable_calls = []

    def enable(self, sampling_period):
        self.enable_calls.append(sampling_period)
        self.sampling_period = sampling_period

    def disable(self):
        self.sampling_period = 0

    def get_sampling_period(self):
        return self.sampling_period

    def get_value(self):
        return self.values[0]

    def get_values(self):
        return self.values


class FakeCamera(FakeSensor):
    def __init__(self, width=2, height=2):
        super().__init__()
        self.width = width
        self.height = height
        self.exposure = None
        # BGRA pixels: (b, g, r, 255) with distinct values per pixel
        self.image = bytes(
            v for i in range(width * height) for v in (i, i + 10, i + 20, 255)
        )

    def set_exposure(self, exposure):
        self.exposure = exposure

    def get_width(self):
        return self.width

    def get_height(self):
        return self.height

    def get_image(self):
        return self.image


class FakeHost:
    """DeviceHost with a small humanoid-like device set."""

    def __init__(self, name="red player 1", basic_time_step=BASIC_TIME_STEP):
        self.name = name
        self.basic_time_step = basic_time_step
        self.devices = {}
        self.lookups = []
        self.add("head_motor", DeviceKind.MOTOR, FakeMotor())
        self.add("accelerometer", DeviceKind.ACCELEROMETER, FakeSensor((0.1, 0.2, 9.81)))
        self.add("gyro", DeviceKind.GYRO, FakeSensor((0.0, 0.5, -0.5)))
        self.add("neck_sensor", DeviceKind.POSITION_SENSOR, FakeSensor((1.25,)))
        self.add("left_bumper", DeviceKind.TOUCH_SENSOR, FakeSensor((1.0,)), TouchType.BUMPER)
        self.add("foot_force", DeviceKind.TOUCH_SENSOR, FakeSensor((12.5,)), TouchType.FORCE)
        self.add("foot_force3d", DeviceKind.TOUCH_SENSOR, FakeSensor((1.0, 2.0, 3.0)), TouchType.FORCE3D)
        self.add("camera", DeviceKind.CAMERA, FakeCamera())
        self.add("led", DeviceKind.UNSUPPORTED, object())

    def add(self, name, kind, handle, touch_type=None):
        self.devices[name] = DeviceRef(name=name, kind=kind, handle=handle, touch_type=touch_type)

    def handle(self, name):
        return self.devices[name].handle

    def get_basic_time_step(self):
        return self.basic_time_step

    def get_name(self):
        return self.name

    def get_device(self, name):
        self.lookups.append(name)
        return self.devices.get(name)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def wait_readable(sock, timeout=2.0):
    readable, _, _ = select.select([sock], [], [], timeout)
    return bool(readable)


def connect_client(gateway):
    """Connect a client and step the gateway until it accepted it."""
    client = GatewayClient("127.0.0.1", gateway.port)
    client.open()
    assert wait_until(lambda: (gateway.step() or gateway.connected))
    client.handshake()
    return client


def step_with_input(gateway):
    """Step once, after the controller's data reached the gateway socket."""
    assert wait_readable(gateway.transport.session.sock)
    gateway.step()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def config():
    return GatewayConfig(benchmark_level=0)


@pytest.fixture
def store(tmp_path):
    return FileWindowStore(Team.RED, tmp_path)


@pytest.fixture
def gateway(host, config, store):
    gw = PlayerGateway(host, 0, ["127.0.0.1"], config=config, store=store, resolver=lambda address: address)
    gw.start()
    yield gw
    gw.stop()


@pytest.fixture
def client(gateway):
    c = connect_client(gateway)
    yield c
    c.close()
