"""
Player Gateway - Step Orchestrator

Runs once per simulation step inside the robot controller:

    listening --accept--> connected --disconnect--> listening

While connected, every step:
1. advances the controller time by one basic time step
2. drains and applies every complete controller message
3. builds the sensor snapshot from the active sensors
4. activates the sensors enabled during this step
5. checks the team bandwidth quota and sends the snapshot

A snapshot is sent every step, whether a message arrived or not.
"""

import logging
import time
from typing import Iterable, List, Optional, Tuple

from .access import AccessControl, resolve_peer_hostname
from .aggregator import MeasurementAggregator
from .config import GatewayConfig
from .devices import DeviceHost
from .dispatcher import CommandDispatcher
from .identity import parse_robot_name
from .message import OutboundSnapshot
from .quota import (
    BandwidthQuotaTracker,
    BandwidthWindow,
    FileWindowStore,
    MqttWindowStore,
    WindowStore,
)
from .subscription import SensorSubscription
from .transport import FramedTransport, Session

logger = logging.getLogger(__name__)


class PlayerLogger(logging.LoggerAdapter):
    """Prefixes messages with the team and player number, e.g. ``RED 1: ...``."""

    def process(self, msg, kwargs):
        return f"{self.extra['team'].name} {self.extra['player_id']}: {msg}", kwargs


class StepTimer:
    """Wall-clock timestamps of the phases of one step."""

    def __init__(self):
        self._start = time.perf_counter()
        self._marks: List[Tuple[str, float]] = []

    def mark(self, phase: str) -> None:
        self._marks.append((phase, time.perf_counter()))

    def phases(self) -> List[Tuple[str, float]]:
        """Duration of each phase in milliseconds, in order."""
        durations = []
        previous = self._start
        for phase, stamp in self._marks:
            durations.append((phase, (stamp - previous) * 1000))
            previous = stamp
        return durations

    @property
    def total_ms(self) -> float:
        if not self._marks:
            return 0.0
        return (self._marks[-1][1] - self._start) * 1000


class PlayerGateway:
    """
    Network gateway of one simulated robot player.

    Architecture:
        Controller -> TCP (framed JSON) -> PlayerGateway -> robot devices
    """

    def __init__(
        self,
        host: DeviceHost,
        port: int,
        allowed_hosts: Iterable[str],
        config: Optional[GatewayConfig] = None,
        store: Optional[WindowStore] = None,
        resolver=resolve_peer_hostname,
    ):
        """
        Initialize gateway.

        Args:
            host: Simulation host providing devices and the basic time step
            port: TCP port the controller connects to
            allowed_hosts: Hostnames allowed to connect
            config: Gateway configuration (defaults when omitted)
            store: Team bandwidth store, built from the configuration when omitted
            resolver: Maps a peer address to the hostname checked by access control
        """
        self.host = host
        self.config = config or GatewayConfig()
        self.basic_time_step = host.get_basic_time_step()
        self.player_id, self.team = parse_robot_name(host.get_name())
        self.log = PlayerLogger(logger, {"team": self.team, "player_id": self.player_id})

        self.access_control = AccessControl(allowed_hosts, resolver=resolver)
        self.transport = FramedTransport(
            port,
            self.access_control,
            max_message_bytes=self.config.max_message_bytes,
            on_session_closed=self._on_session_closed,
        )
        self.subscription = SensorSubscription()
        self.dispatcher = CommandDispatcher(host, self.subscription)
        self.aggregator = MeasurementAggregator(self.subscription)

        self.store = store if store is not None else self._create_store()
        self.window = BandwidthWindow(self.basic_time_step)
        self.tracker = BandwidthQuotaTracker(
            self.window,
            self.store,
            self.player_id,
            team_size=self.config.team_size,
            quota=self.config.team_quota,
        )

        self._snapshot = OutboundSnapshot()

        # Statistics
        self._steps = 0
        self._last_step_ms = 0.0
        self._over_budget_steps = 0

    def _create_store(self) -> WindowStore:
        if self.config.quota_backend == "mqtt":
            return MqttWindowStore(self.team, host=self.config.mqtt_host, port=self.config.mqtt_port)
        return FileWindowStore(self.team, self.config.quota_dir)

    @property
    def port(self) -> int:
        return self.transport.port

    @property
    def connected(self) -> bool:
        return self.transport.connected

    def start(self) -> None:
        """Open the listening socket and connect the team store."""
        self.transport.open()
        if isinstance(self.store, MqttWindowStore):
            self.store.start()
        self.log.info(f"server started on port {self.port}")

    def stop(self) -> None:
        self.transport.shutdown()
        if isinstance(self.store, MqttWindowStore):
            self.store.stop()
        self.log.info("server stopped")

    def step(self) -> None:
        """Run the gateway for one simulation step."""
        self._steps += 1
        timer = StepTimer()

        session = self.transport.session
        if session is None:
            if self.transport.accept() is not None:
                self.log.info(f"Controller connected from {self.transport.session.peer[0]}")
            timer.mark("Accept")
            self._report_timing(timer)
            return

        session.time += self.basic_time_step
        self.transport.receive(self._on_message)
        timer.mark("Receive")

        if self.transport.session is not session:
            # Disconnected while receiving, nothing to answer.
            return

        self.aggregator.build(self._snapshot, session.time)
        timer.mark("Prepare")
        self.subscription.commit()
        timer.mark("Update")
        self._send_snapshot(session)
        timer.mark("Send")

        self._report_timing(timer)

    def _on_message(self, payload: bytes) -> None:
        for warning in self.dispatcher.handle_payload(payload):
            self._snapshot.warn(warning)

    def _send_snapshot(self, session: Session) -> None:
        payload = self._snapshot.to_bytes()
        usage = self.tracker.check(len(payload), session.time)
        if self.tracker.exceeded(usage):
            replacement = OutboundSnapshot(time=self._snapshot.time, real_time=self._snapshot.real_time)
            replacement.error(self.tracker.quota_message())
            payload = replacement.to_bytes()
            self.log.warning(f"Quota exceeded: team used {usage} bytes during the last second")
        self.log.debug(f"Sending a message of size: {len(payload)}")
        self.transport.send(payload)
        self._snapshot.clear()

    def _on_session_closed(self, session: Session) -> None:
        """Release every sensor enabled by the controller that just left."""
        for device in self.subscription.clear():
            device.handle.disable()
        self._snapshot.clear()
        self.log.info(f"Controller {session.peer[0]} disconnected after {session.time} ms")

    def _report_timing(self, timer: StepTimer) -> None:
        step_ms = timer.total_ms
        self._last_step_ms = step_ms
        diagnose = step_ms > self.config.budget_ms
        if diagnose:
            self._over_budget_steps += 1
        level = self.config.benchmark_level
        if level >= 3 or (diagnose and level >= 1):
            for phase, elapsed in timer.phases():
                self.log.info(f"\t{phase} time {elapsed:.3f} ms")
        if level >= 2 or (diagnose and level >= 1):
            log = self.log.warning if diagnose else self.log.info
            log(f"Step time: {step_ms:.3f} ms")

    def get_stats(self) -> dict:
        """Get gateway statistics."""
        session = self.transport.session
        return {
            "player_id": self.player_id,
            "team": self.team.value,
            "steps": self._steps,
            "controller_time": session.time if session else None,
            "last_step_ms": self._last_step_ms,
            "over_budget_steps": self._over_budget_steps,
            "active_sensors": self.subscription.active_names,
            "pending_sensors": self.subscription.pending_names,
            "transport": self.transport.get_stats(),
            "access": self.access_control.get_stats(),
            "dispatcher": self.dispatcher.get_stats(),
            "quota": self.tracker.get_stats(),
        }
