"""
Blocking reference client for the player gateway.

Connects to a gateway, checks the welcome token, sends actuator request
batches and reads the per-step sensor snapshots.

Usage:
    with GatewayClient("127.0.0.1", 10001) as client:
        client.send_batch(ActuatorCommandBatch(
            sensor_time_steps=[SensorTimeStep("accelerometer", 16)],
        ))
        snapshot = client.receive_snapshot()
"""

import logging
import socket
from typing import Optional

from .access import REFUSED_TOKEN, WELCOME_TOKEN
from .message import ActuatorCommandBatch, OutboundSnapshot
from .transport import HEADER

logger = logging.getLogger(__name__)


class ConnectionRefusedByGateway(ConnectionError):
    """The gateway answered with the refusal token."""


class GatewayClient:
    """Synchronous controller-side connection to one robot's gateway."""

    def __init__(self, host: str, port: int, timeout: float = 5.0):
        """
        Initialize client.

        Args:
            host: Gateway host
            port: Gateway port
            timeout: Socket timeout in seconds for every blocking operation
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """
        Connect and read the handshake token.

        Raises:
            ConnectionRefusedByGateway: If this host is not allowed
            ConnectionError: If the token is missing or unknown
        """
        self.open()
        self.handshake()

    def open(self) -> None:
        """Open the TCP connection; the gateway answers once it polls for controllers."""
        self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)

    def handshake(self) -> None:
        """Read the token the gateway sends right after accepting the connection."""
        try:
            token = self._recv_exactly(len(WELCOME_TOKEN))
        except OSError:
            self.close()
            raise
        if token == REFUSED_TOKEN:
            self.close()
            raise ConnectionRefusedByGateway(f"{self.host}:{self.port} refused the connection")
        if token != WELCOME_TOKEN:
            self.close()
            raise ConnectionError(f"Unexpected handshake token {token!r}")
        logger.info(f"Connected to gateway at {self.host}:{self.port}")

    def send_batch(self, batch: ActuatorCommandBatch) -> None:
        self.send_payload(batch.to_json().encode("utf-8"))

    def send_payload(self, payload: bytes) -> None:
        """Send one framed payload."""
        self._require_socket().sendall(HEADER.pack(len(payload)) + payload)

    def receive_payload(self) -> bytes:
        """Read one framed payload."""
        (size,) = HEADER.unpack(self._recv_exactly(HEADER.size))
        return self._recv_exactly(size)

    def receive_snapshot(self) -> OutboundSnapshot:
        return OutboundSnapshot.from_json(self.receive_payload())

    def _recv_exactly(self, size: int) -> bytes:
        sock = self._require_socket()
        chunks = bytearray()
        while len(chunks) < size:
            chunk = sock.recv(size - len(chunks))
            if not chunk:
                raise ConnectionError("Gateway closed the connection")
            chunks += chunk
        return bytes(chunks)

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionError("Not connected")
        return self._sock

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> 'GatewayClient':
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
