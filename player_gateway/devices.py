"""
Device model shared by the dispatcher and the measurement aggregator.

The simulation host hands out devices as ``DeviceRef`` values tagged with a
``DeviceKind`` so that both sides can match on the kind instead of probing
the handle type at runtime.
"""

import enum
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import cv2
import numpy as np


class DeviceKind(enum.Enum):
    """Kind of a robot device, as reported by the host."""
    MOTOR = "motor"
    ACCELEROMETER = "accelerometer"
    CAMERA = "camera"
    GYRO = "gyro"
    POSITION_SENSOR = "position_sensor"
    TOUCH_SENSOR = "touch_sensor"
    UNSUPPORTED = "unsupported"


class TouchType(enum.Enum):
    """Flavour of a touch sensor, which decides the measurement record."""
    BUMPER = "bumper"
    FORCE = "force"
    FORCE3D = "force3d"


# Kinds that can be enabled with a sampling period and reported.
SENSOR_KINDS = frozenset({
    DeviceKind.ACCELEROMETER,
    DeviceKind.CAMERA,
    DeviceKind.GYRO,
    DeviceKind.POSITION_SENSOR,
    DeviceKind.TOUCH_SENSOR,
})


@dataclass(frozen=True)
class DeviceRef:
    """
    A device resolved by name on the host.

    Attributes:
        name: Device name as used in the wire protocol
        kind: Kind tag used for dispatch
        handle: Host object implementing the operations of that kind
        touch_type: Touch sensor flavour (touch sensors only)
    """
    name: str
    kind: DeviceKind
    handle: Any
    touch_type: Optional[TouchType] = None


class DeviceHost(Protocol):
    """Capabilities the gateway needs from the simulation host."""

    def get_basic_time_step(self) -> int:
        """Duration of one simulation step in milliseconds."""
        ...

    def get_name(self) -> str:
        """Name of the simulated robot."""
        ...

    def get_device(self, name: str) -> Optional[DeviceRef]:
        """Resolve a device by name, or None if the robot has none."""
        ...


def bgra_to_bgr(image: bytes, width: int, height: int) -> bytes:
    """
    Drop the alpha channel of a raw BGRA camera image.

    Args:
        image: Raw image, ``width * height * 4`` bytes
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        Raw BGR image, ``width * height * 3`` bytes
    """
    bgra = np.frombuffer(image, dtype=np.uint8, count=width * height * 4)
    bgr = cv2.cvtColor(bgra.reshape(height, width, 4), cv2.COLOR_BGRA2BGR)
    return bgr.tobytes()
