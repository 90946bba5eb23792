"""
Message Schema for controller/gateway communication.

Defines the JSON payloads carried inside length-prefixed frames:
- ActuatorCommandBatch: controller -> gateway, commands for motors, cameras
  and sensor sampling periods
- OutboundSnapshot: gateway -> controller, sensor measurements and
  warning/error messages for one simulation step
"""

import base64
import enum
import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Tuple

from .errors import ProtocolError


# ============================================================================
# Controller -> Gateway
# ============================================================================

@dataclass
class MotorPosition:
    name: str
    position: float


@dataclass
class MotorVelocity:
    name: str
    velocity: float


@dataclass
class MotorForce:
    name: str
    force: float


@dataclass
class MotorTorque:
    name: str
    torque: float


@dataclass
class MotorPID:
    name: str
    pid: Tuple[float, float, float]


@dataclass
class CameraQuality:
    name: str
    quality: int


@dataclass
class CameraExposure:
    name: str
    exposure: float


@dataclass
class SensorTimeStep:
    """Sampling period request for a sensor, 0 disables it."""
    name: str
    timestep: int


@dataclass
class ActuatorCommandBatch:
    """
    All commands decoded from one controller message.

    Attributes:
        motor_positions: Position targets (rad or m)
        motor_velocities: Velocity limits
        motor_forces: Forces for linear motors in force control
        motor_torques: Torques for rotational motors in torque control
        motor_pids: PID gains (p, i, d)
        camera_qualities: JPEG quality requests (not supported yet)
        camera_exposures: Camera exposure values
        sensor_time_steps: Sampling period requests
    """
    motor_positions: List[MotorPosition] = field(default_factory=list)
    motor_velocities: List[MotorVelocity] = field(default_factory=list)
    motor_forces: List[MotorForce] = field(default_factory=list)
    motor_torques: List[MotorTorque] = field(default_factory=list)
    motor_pids: List[MotorPID] = field(default_factory=list)
    camera_qualities: List[CameraQuality] = field(default_factory=list)
    camera_exposures: List[CameraExposure] = field(default_factory=list)
    sensor_time_steps: List[SensorTimeStep] = field(default_factory=list)

    def to_json(self) -> str:
        """Serialize to JSON string, omitting empty command lists."""
        payload = {key: value for key, value in asdict(self).items() if value}
        if "motor_pids" in payload:
            payload["motor_pids"] = [
                {"name": p["name"], "pid": list(p["pid"])} for p in payload["motor_pids"]
            ]
        return json.dumps(payload)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ActuatorCommandBatch':
        """Build a batch from a decoded JSON object."""
        if not isinstance(d, dict):
            raise TypeError(f"expected a JSON object, got {type(d).__name__}")
        return cls(
            motor_positions=[
                MotorPosition(name=str(c['name']), position=float(c['position']))
                for c in d.get('motor_positions', [])
            ],
            motor_velocities=[
                MotorVelocity(name=str(c['name']), velocity=float(c['velocity']))
                for c in d.get('motor_velocities', [])
            ],
            motor_forces=[
                MotorForce(name=str(c['name']), force=float(c['force']))
                for c in d.get('motor_forces', [])
            ],
            motor_torques=[
                MotorTorque(name=str(c['name']), torque=float(c['torque']))
                for c in d.get('motor_torques', [])
            ],
            motor_pids=[
                MotorPID(name=str(c['name']), pid=_pid_triplet(c['pid']))
                for c in d.get('motor_pids', [])
            ],
            camera_qualities=[
                CameraQuality(name=str(c['name']), quality=int(c['quality']))
                for c in d.get('camera_qualities', [])
            ],
            camera_exposures=[
                CameraExposure(name=str(c['name']), exposure=float(c['exposure']))
                for c in d.get('camera_exposures', [])
            ],
            sensor_time_steps=[
                SensorTimeStep(name=str(c['name']), timestep=int(c['timestep']))
                for c in d.get('sensor_time_steps', [])
            ],
        )

    @classmethod
    def from_json(cls, data: bytes) -> 'ActuatorCommandBatch':
        """
        Decode a controller message payload.

        Raises:
            ProtocolError: If the payload is not a valid command batch
        """
        try:
            return cls.from_dict(json.loads(data))
        except (
            json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, ValueError,
            OverflowError, RecursionError,
        ) as e:
            raise ProtocolError(f"malformed actuator request: {e}") from e


def _pid_triplet(value: Any) -> Tuple[float, float, float]:
    p, i, d = value
    return float(p), float(i), float(d)


# ============================================================================
# Gateway -> Controller
# ============================================================================

class MessageType(str, enum.Enum):
    WARNING_MESSAGE = "WARNING_MESSAGE"
    ERROR_MESSAGE = "ERROR_MESSAGE"


@dataclass
class Message:
    """A diagnostic entry reported to the controller."""
    message_type: MessageType
    text: str


@dataclass
class Vector3Measurement:
    name: str
    value: Tuple[float, float, float]


@dataclass
class ScalarMeasurement:
    name: str
    value: float


@dataclass
class BumperMeasurement:
    name: str
    value: bool


@dataclass
class CameraMeasurement:
    """
    Camera frame.

    ``quality`` is -1 for raw BGR images (the only format produced so far).
    """
    name: str
    width: int
    height: int
    quality: int
    image: bytes


@dataclass
class OutboundSnapshot:
    """Measurements and messages sent to the controller for one step."""
    time: int = 0
    real_time: int = 0
    accelerometers: List[Vector3Measurement] = field(default_factory=list)
    gyros: List[Vector3Measurement] = field(default_factory=list)
    force3ds: List[Vector3Measurement] = field(default_factory=list)
    forces: List[ScalarMeasurement] = field(default_factory=list)
    position_sensors: List[ScalarMeasurement] = field(default_factory=list)
    bumpers: List[BumperMeasurement] = field(default_factory=list)
    cameras: List[CameraMeasurement] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)

    def warn(self, text: str) -> None:
        self.messages.append(Message(MessageType.WARNING_MESSAGE, text))

    def error(self, text: str) -> None:
        self.messages.append(Message(MessageType.ERROR_MESSAGE, text))

    @property
    def warnings(self) -> List[str]:
        return [m.text for m in self.messages if m.message_type is MessageType.WARNING_MESSAGE]

    def clear(self) -> None:
        """Drop every measurement and message, keeping nothing from this step."""
        self.time = 0
        self.real_time = 0
        for name in _LIST_FIELDS:
            getattr(self, name).clear()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"time": self.time, "real_time": self.real_time}
        for name in _LIST_FIELDS:
            records = getattr(self, name)
            if not records:
                continue
            if name == "cameras":
                payload[name] = [
                    {
                        "name": c.name,
                        "width": c.width,
                        "height": c.height,
                        "quality": c.quality,
                        "image": base64.b64encode(c.image).decode("ascii"),
                    }
                    for c in records
                ]
            elif name == "messages":
                payload[name] = [
                    {"message_type": m.message_type.value, "text": m.text} for m in records
                ]
            else:
                payload[name] = [
                    {"name": r.name, "value": list(r.value) if isinstance(r.value, tuple) else r.value}
                    for r in records
                ]
        return payload

    def to_bytes(self) -> bytes:
        """Serialize to the compact UTF-8 JSON payload sent on the wire."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> 'OutboundSnapshot':
        """Deserialize a snapshot payload (controller side)."""
        d = json.loads(data)
        return cls(
            time=int(d['time']),
            real_time=int(d['real_time']),
            accelerometers=[_vector3(r) for r in d.get('accelerometers', [])],
            gyros=[_vector3(r) for r in d.get('gyros', [])],
            force3ds=[_vector3(r) for r in d.get('force3ds', [])],
            forces=[ScalarMeasurement(r['name'], float(r['value'])) for r in d.get('forces', [])],
            position_sensors=[
                ScalarMeasurement(r['name'], float(r['value'])) for r in d.get('position_sensors', [])
            ],
            bumpers=[BumperMeasurement(r['name'], bool(r['value'])) for r in d.get('bumpers', [])],
            cameras=[
                CameraMeasurement(
                    name=r['name'],
                    width=int(r['width']),
                    height=int(r['height']),
                    quality=int(r['quality']),
                    image=base64.b64decode(r['image']),
                )
                for r in d.get('cameras', [])
            ],
            messages=[
                Message(MessageType(m['message_type']), m['text']) for m in d.get('messages', [])
            ],
        )

    def measurement_names(self) -> List[str]:
        """Names of every device reported in this snapshot."""
        names: List[str] = []
        for name in _LIST_FIELDS:
            if name != "messages":
                names.extend(r.name for r in getattr(self, name))
        return names


_LIST_FIELDS = (
    "accelerometers",
    "gyros",
    "force3ds",
    "forces",
    "position_sensors",
    "bumpers",
    "cameras",
    "messages",
)


def _vector3(r: Dict[str, Any]) -> Vector3Measurement:
    x, y, z = r['value']
    return Vector3Measurement(r['name'], (float(x), float(y), float(z)))

