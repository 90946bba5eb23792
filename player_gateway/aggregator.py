"""
Measurement Aggregator - samples active sensors into the step snapshot.

A sensor with sampling period P is reported when the controller time is a
multiple of P. Periods are validated as multiples of the basic time step
before a sensor can become active, so the check is exact.
"""

import logging
import time

from .devices import DeviceKind, DeviceRef, TouchType, bgra_to_bgr
from .errors import SubscriptionInvariantError
from .message import (
    BumperMeasurement,
    CameraMeasurement,
    OutboundSnapshot,
    ScalarMeasurement,
    Vector3Measurement,
)
from .subscription import SensorSubscription

logger = logging.getLogger(__name__)

# Cameras always send raw images, compression is not supported yet.
RAW_IMAGE_QUALITY = -1


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class MeasurementAggregator:
    """Builds the sensor part of the outbound snapshot."""

    def __init__(self, subscription: SensorSubscription):
        self.subscription = subscription

    def build(self, snapshot: OutboundSnapshot, controller_time: int) -> int:
        """
        Stamp the snapshot and add a measurement per due active sensor.

        Args:
            snapshot: Snapshot of the current step, may already hold warnings
            controller_time: Milliseconds since the controller connected

        Returns:
            Number of measurements added
        """
        snapshot.time = controller_time
        snapshot.real_time = wall_clock_ms()
        sampled = 0
        for device in self.subscription.active():
            period = device.handle.get_sampling_period()
            if period <= 0 or controller_time % period:
                continue
            self._sample(snapshot, device)
            sampled += 1
        return sampled

    def _sample(self, snapshot: OutboundSnapshot, device: DeviceRef) -> None:
        handle = device.handle
        kind = device.kind
        if kind is DeviceKind.ACCELEROMETER:
            snapshot.accelerometers.append(Vector3Measurement(device.name, _vector3(handle.get_values())))
        elif kind is DeviceKind.GYRO:
            snapshot.gyros.append(Vector3Measurement(device.name, _vector3(handle.get_values())))
        elif kind is DeviceKind.POSITION_SENSOR:
            snapshot.position_sensors.append(ScalarMeasurement(device.name, float(handle.get_value())))
        elif kind is DeviceKind.CAMERA:
            snapshot.cameras.append(self._capture(device))
        elif kind is DeviceKind.TOUCH_SENSOR:
            self._sample_touch(snapshot, device)
        else:
            raise SubscriptionInvariantError(
                f'Device "{device.name}" of kind {kind.value} cannot be sampled'
            )

    def _sample_touch(self, snapshot: OutboundSnapshot, device: DeviceRef) -> None:
        handle = device.handle
        if device.touch_type is TouchType.BUMPER:
            snapshot.bumpers.append(BumperMeasurement(device.name, handle.get_value() == 1.0))
        elif device.touch_type is TouchType.FORCE:
            snapshot.forces.append(ScalarMeasurement(device.name, float(handle.get_value())))
        elif device.touch_type is TouchType.FORCE3D:
            snapshot.force3ds.append(Vector3Measurement(device.name, _vector3(handle.get_values())))
        else:
            raise SubscriptionInvariantError(
                f'Touch sensor "{device.name}" has unknown type {device.touch_type}'
            )

    def _capture(self, device: DeviceRef) -> CameraMeasurement:
        handle = device.handle
        width = handle.get_width()
        height = handle.get_height()
        start = time.perf_counter()
        image = bgra_to_bgr(handle.get_image(), width, height)
        logger.debug(
            f"Camera {device.name}: {len(image)} bytes converted in "
            f"{(time.perf_counter() - start) * 1000:.3f} ms"
        )
        return CameraMeasurement(
            name=device.name,
            width=width,
            height=height,
            quality=RAW_IMAGE_QUALITY,
            image=image,
        )


def _vector3(values) -> tuple:
    return float(values[0]), float(values[1]), float(values[2])
