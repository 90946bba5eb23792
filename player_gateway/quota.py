"""
Team bandwidth quota shared between player processes.

Each player keeps the number of bytes it sent during every step of the last
simulated second, publishes that window to a team store and sums its
teammates' published windows to estimate the team's bandwidth. Stores are
not locked: a teammate's window may be read while it is being rewritten, so
the total is an approximation.

Two stores are provided:
- FileWindowStore: one ``quota-<team>-<player>.txt`` file per player
- MqttWindowStore: one retained MQTT topic per player
"""

import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

import paho.mqtt.client as mqtt

from .identity import Team

logger = logging.getLogger(__name__)

# Teams are limited to 1000 MiB per floating window of one second.
DEFAULT_TEAM_QUOTA = 1000 * 1024 * 1024
WINDOW_MS = 1000


class BandwidthWindow:
    """Bytes sent per step over the last second of simulated time."""

    def __init__(self, basic_time_step: int):
        self.basic_time_step = basic_time_step
        self.length = max(1, WINDOW_MS // basic_time_step)
        self._slots = [0] * self.length

    def index(self, controller_time: int) -> int:
        return (controller_time // self.basic_time_step) % self.length

    def record(self, controller_time: int, size: int) -> None:
        self._slots[self.index(controller_time)] = size

    def total(self) -> int:
        return sum(self._slots)

    def reset(self) -> None:
        self._slots = [0] * self.length

    @property
    def slots(self) -> List[int]:
        return list(self._slots)


class WindowStore(Protocol):
    """Where players publish their window and read their teammates'."""

    def publish(self, player_id: int, slots: List[int]) -> None:
        ...

    def read(self, player_id: int) -> List[int]:
        """Return the last window published by a player, empty if unknown."""
        ...


class FileWindowStore:
    """Windows stored as text files, one integer per line."""

    def __init__(self, team: Team, directory: Union[str, Path] = "."):
        self.team = team
        self.directory = Path(directory)

    def path_for(self, player_id: int) -> Path:
        return self.directory / f"quota-{self.team.value}-{player_id}.txt"

    def publish(self, player_id: int, slots: List[int]) -> None:
        try:
            with open(self.path_for(player_id), "w") as f:
                f.write("".join(f"{v}\n" for v in slots))
        except OSError as e:
            logger.warning(f"Cannot publish bandwidth window: {e}")

    def read(self, player_id: int) -> List[int]:
        values: List[int] = []
        try:
            with open(self.path_for(player_id)) as f:
                for line in f:
                    try:
                        values.append(int(line))
                    except ValueError:
                        # Partially written by the teammate, use what we have.
                        break
        except OSError:
            return []
        return values


class MqttWindowStore:
    """
    Windows published as retained MQTT messages.

    Topic layout: ``<prefix>/<team>/<player>``, payload is a JSON list of
    byte counts. Teammates' windows are cached from the paho network thread.
    """

    def __init__(
        self,
        team: Team,
        host: str = "localhost",
        port: int = 1883,
        topic_prefix: str = "player_gateway/quota",
    ):
        """
        Initialize MQTT window store.

        Args:
            team: Team whose windows are exchanged
            host: MQTT broker host
            port: MQTT broker port
            topic_prefix: Root of the quota topics
        """
        self.team = team
        self.host = host
        self.port = port
        self.topic_prefix = topic_prefix

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._windows: Dict[int, List[int]] = {}

        # Statistics
        self._messages_sent = 0
        self._messages_received = 0

    def topic_for(self, player_id: int) -> str:
        return f"{self.topic_prefix}/{self.team.value}/{player_id}"

    def start(self, timeout: float = 5.0) -> bool:
        """
        Connect to the broker and subscribe to the team's windows.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            client_id = f"player_gateway_{self.team.value}_{int(time.time() * 1000)}"
            self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            logger.info(f"Connecting to MQTT broker at {self.host}:{self.port}")
            self._client.connect(self.host, self.port, keepalive=60)
            self._client.loop_start()
        except OSError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

        deadline = time.monotonic() + timeout
        while not self._connected and time.monotonic() < deadline:
            time.sleep(0.1)
        if not self._connected:
            logger.warning("MQTT connection timeout, teammates' usage unknown until connected")
        return self._connected

    def stop(self) -> None:
        if self._client:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None
        self._connected = False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected = True
            topic = f"{self.topic_prefix}/{self.team.value}/+"
            client.subscribe(topic)
            logger.info(f"Subscribed to {topic}")
        else:
            logger.error(f"MQTT connection failed with code: {reason_code}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        if reason_code != 0:
            logger.warning(f"Unexpected MQTT disconnection, code: {reason_code}")

    def _on_message(self, client, userdata, msg):
        self._messages_received += 1
        try:
            player_id = int(msg.topic.rsplit("/", 1)[-1])
            slots = [int(v) for v in json.loads(msg.payload.decode())]
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid bandwidth window on {msg.topic}: {e}")
            return
        self._windows[player_id] = slots

    def publish(self, player_id: int, slots: List[int]) -> None:
        if not self._connected or not self._client:
            return
        self._client.publish(self.topic_for(player_id), json.dumps(slots), qos=0, retain=True)
        self._messages_sent += 1

    def read(self, player_id: int) -> List[int]:
        return self._windows.get(player_id, [])

    @property
    def connected(self) -> bool:
        return self._connected

    def get_stats(self) -> dict:
        return {
            "connected": self._connected,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
        }


class BandwidthQuotaTracker:
    """Estimates team bandwidth and tells when the quota is exceeded."""

    def __init__(
        self,
        window: BandwidthWindow,
        store: WindowStore,
        player_id: int,
        team_size: int = 4,
        quota: int = DEFAULT_TEAM_QUOTA,
    ):
        """
        Initialize tracker.

        Args:
            window: This player's window, owned by the gateway
            store: Team store shared with the teammates
            player_id: This player's number (1-based)
            team_size: Players per team, numbered 1..team_size
            quota: Team quota in bytes per second
        """
        self.window = window
        self.store = store
        self.player_id = player_id
        self.team_size = team_size
        self.quota = quota

        self._last_usage = 0
        self._overruns = 0

    def check(self, payload_size: int, controller_time: int) -> int:
        """
        Record this step's payload and return the team usage over the window.

        Args:
            payload_size: Size of the payload about to be sent
            controller_time: Current controller time, selects the window slot

        Returns:
            Bytes sent by the whole team during the last second
        """
        self.window.record(controller_time, payload_size)
        self.store.publish(self.player_id, self.window.slots)
        total = self.window.total()
        for teammate in range(1, self.team_size + 1):
            if teammate == self.player_id:
                continue
            total += sum(self.store.read(teammate))
        self._last_usage = total
        return total

    def exceeded(self, usage: int) -> bool:
        if usage > self.quota:
            self._overruns += 1
            return True
        return False

    def quota_message(self) -> str:
        return f"{self.quota} bytes/s team quota exceeded."

    def get_stats(self) -> dict:
        return {
            "quota": self.quota,
            "team_usage": self._last_usage,
            "overruns": self._overruns,
            "window_length": self.window.length,
        }
