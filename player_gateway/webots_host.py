"""
Webots host adapter.

Wraps the Webots ``controller`` module, available to robot controllers
started by the simulator, into the ``DeviceHost`` interface.
"""

from typing import Dict, Optional

from controller import Node, Robot, TouchSensor

from .devices import DeviceKind, DeviceRef, TouchType

NODE_KINDS = {
    Node.ROTATIONAL_MOTOR: DeviceKind.MOTOR,
    Node.LINEAR_MOTOR: DeviceKind.MOTOR,
    Node.ACCELEROMETER: DeviceKind.ACCELEROMETER,
    Node.CAMERA: DeviceKind.CAMERA,
    Node.GYRO: DeviceKind.GYRO,
    Node.POSITION_SENSOR: DeviceKind.POSITION_SENSOR,
    Node.TOUCH_SENSOR: DeviceKind.TOUCH_SENSOR,
}

TOUCH_TYPES = {
    TouchSensor.BUMPER: TouchType.BUMPER,
    TouchSensor.FORCE: TouchType.FORCE,
    TouchSensor.FORCE3D: TouchType.FORCE3D,
}


class WebotsDevice:
    """snake_case view of a Webots device."""

    def __init__(self, device):
        self._device = device

    # Motors
    def set_position(self, position: float) -> None:
        self._device.setPosition(position)

    def set_velocity(self, velocity: float) -> None:
        self._device.setVelocity(velocity)

    def set_force(self, force: float) -> None:
        self._device.setForce(force)

    def set_torque(self, torque: float) -> None:
        self._device.setTorque(torque)

    def set_control_pid(self, p: float, i: float, d: float) -> None:
        self._device.setControlPID(p, i, d)

    # Sensors
    def enable(self, sampling_period: int) -> None:
        self._device.enable(sampling_period)

    def disable(self) -> None:
        self._device.disable()

    def get_sampling_period(self) -> int:
        return self._device.getSamplingPeriod()

    def get_value(self) -> float:
        return self._device.getValue()

    def get_values(self):
        return self._device.getValues()

    # Cameras
    def set_exposure(self, exposure: float) -> None:
        self._device.setExposure(exposure)

    def get_width(self) -> int:
        return self._device.getWidth()

    def get_height(self) -> int:
        return self._device.getHeight()

    def get_image(self) -> bytes:
        return self._device.getImage()


class WebotsHost:
    """DeviceHost backed by a Webots ``Robot``."""

    def __init__(self, robot: Optional[Robot] = None):
        self.robot = robot or Robot()
        self._devices: Dict[str, Optional[DeviceRef]] = {}

    def get_basic_time_step(self) -> int:
        return int(self.robot.getBasicTimeStep())

    def get_name(self) -> str:
        return self.robot.getName()

    def get_device(self, name: str) -> Optional[DeviceRef]:
        if name not in self._devices:
            self._devices[name] = self._lookup(name)
        return self._devices[name]

    def _lookup(self, name: str) -> Optional[DeviceRef]:
        device = self.robot.getDevice(name)
        if device is None:
            return None
        kind = NODE_KINDS.get(device.getNodeType(), DeviceKind.UNSUPPORTED)
        touch_type = TOUCH_TYPES.get(device.getType()) if kind is DeviceKind.TOUCH_SENSOR else None
        return DeviceRef(name=name, kind=kind, handle=WebotsDevice(device), touch_type=touch_type)

    def step(self) -> int:
        """Advance the simulation by one basic time step, -1 when it ends."""
        return self.robot.step(self.get_basic_time_step())
