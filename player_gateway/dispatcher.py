"""
Command Dispatcher - applies controller requests to the robot's devices.

Every command naming a missing device, or a device of the wrong kind, is
skipped with a warning for the controller; the rest of the batch is still
applied. Sampling period requests are validated against the basic time step
and only staged in the subscription state, see ``SensorSubscription``.
"""

import logging
from typing import List, Optional

from .devices import DeviceHost, DeviceKind, DeviceRef, SENSOR_KINDS
from .errors import ProtocolError
from .message import ActuatorCommandBatch, SensorTimeStep
from .subscription import SensorSubscription

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Decodes controller payloads and applies their commands."""

    def __init__(self, host: DeviceHost, subscription: SensorSubscription):
        """
        Initialize dispatcher.

        Args:
            host: Simulation host used to resolve devices by name
            subscription: Sensor subscription state updated by time step commands
        """
        self.host = host
        self.subscription = subscription
        self.basic_time_step = host.get_basic_time_step()

        # Statistics
        self._batches_applied = 0
        self._malformed_messages = 0
        self._warnings = 0

    def handle_payload(self, payload: bytes) -> List[str]:
        """
        Decode and apply one controller message.

        Returns:
            Warnings to report to the controller
        """
        try:
            batch = ActuatorCommandBatch.from_json(payload)
        except ProtocolError as e:
            self._malformed_messages += 1
            self._warnings += 1
            logger.warning(f"Ignoring message of {len(payload)} bytes: {e}")
            return [f"Malformed actuator request ignored: {e}"]
        return self.apply(batch)

    def apply(self, batch: ActuatorCommandBatch) -> List[str]:
        """
        Apply every command of a batch.

        Returns:
            Warnings to report to the controller
        """
        warnings: List[str] = []

        for command in batch.motor_positions:
            motor = self._motor(command.name, "position", warnings)
            if motor:
                motor.handle.set_position(command.position)
        for command in batch.motor_velocities:
            motor = self._motor(command.name, "velocity", warnings)
            if motor:
                motor.handle.set_velocity(command.velocity)
        for command in batch.motor_forces:
            motor = self._motor(command.name, "force", warnings)
            if motor:
                motor.handle.set_force(command.force)
        for command in batch.motor_torques:
            motor = self._motor(command.name, "torque", warnings)
            if motor:
                motor.handle.set_torque(command.torque)
        for command in batch.motor_pids:
            motor = self._motor(command.name, "PID", warnings)
            if motor:
                motor.handle.set_control_pid(*command.pid)

        for command in batch.camera_qualities:
            if self._camera(command.name, "quality", warnings):
                warnings.append("CameraQuality is not yet implemented, ignored.")
        for command in batch.camera_exposures:
            camera = self._camera(command.name, "exposure", warnings)
            if camera:
                camera.handle.set_exposure(command.exposure)

        # Sensors are only staged here: the snapshot built for this step must
        # not contain values of sensors enabled by this very message.
        for command in batch.sensor_time_steps:
            self._apply_time_step(command, warnings)

        self._batches_applied += 1
        self._warnings += len(warnings)
        return warnings

    def _resolve(self, name: str, kind: DeviceKind) -> Optional[DeviceRef]:
        device = self.host.get_device(name)
        if device is None or device.kind is not kind:
            return None
        return device

    def _motor(self, name: str, command: str, warnings: List[str]) -> Optional[DeviceRef]:
        motor = self._resolve(name, DeviceKind.MOTOR)
        if motor is None:
            warnings.append(f'Motor "{name}" not found, {command} command ignored.')
        return motor

    def _camera(self, name: str, command: str, warnings: List[str]) -> Optional[DeviceRef]:
        camera = self._resolve(name, DeviceKind.CAMERA)
        if camera is None:
            warnings.append(f'Camera "{name}" not found, {command} command ignored.')
        return camera

    def _apply_time_step(self, command: SensorTimeStep, warnings: List[str]) -> None:
        name = command.name
        timestep = command.timestep
        device = self.host.get_device(name)
        if device is None:
            warnings.append(f'Device "{name}" not found, time step command ignored.')
            return
        if device.kind not in SENSOR_KINDS:
            warnings.append(f'Device "{name}" is not supported, time step command ignored.')
            return

        if timestep == 0:
            if self.subscription.is_active(name) or self.subscription.is_pending(name):
                device.handle.disable()
            self.subscription.unsubscribe(device)
            return
        if timestep < self.basic_time_step:
            warnings.append(
                f'Time step for "{name}" should be greater or equal to {self.basic_time_step}, '
                f'ignoring {timestep} value.'
            )
            return
        if timestep % self.basic_time_step != 0:
            warnings.append(
                f'Time step for "{name}" should be a multiple of {self.basic_time_step}, '
                f'ignoring {timestep} value.'
            )
            return

        device.handle.enable(timestep)
        self.subscription.subscribe(device)

    def get_stats(self) -> dict:
        return {
            "batches_applied": self._batches_applied,
            "malformed_messages": self._malformed_messages,
            "warnings": self._warnings,
        }
