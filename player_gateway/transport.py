"""
Framed TCP transport for the single controller session.

Handles:
- Non-blocking listening socket with one pending connection
- Welcome/Refused token exchange on accept
- Length-prefixed framing (uint32 big-endian length || payload)
- Reassembly of frames split across any number of reads and steps
- Sends that resume where a full socket buffer stopped them
"""

import logging
import socket
import struct
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from .access import AccessControl, REFUSED_TOKEN, WELCOME_TOKEN
from .errors import GatewaySetupError, ProtocolError

logger = logging.getLogger(__name__)

HEADER = struct.Struct("!I")


def create_server_socket(port: int, host: str = "") -> socket.socket:
    """
    Create the non-blocking listening socket.

    Raises:
        GatewaySetupError: If the socket cannot be created, bound or listened on
    """
    try:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        raise GatewaySetupError(f"Cannot create socket: {e}") from e
    try:
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((host, port))
    except OSError as e:
        server.close()
        raise GatewaySetupError(f"Cannot bind port {port}: {e}") from e
    try:
        server.listen(1)
    except OSError as e:
        server.close()
        raise GatewaySetupError(f"Cannot listen for connections: {e}") from e
    server.setblocking(False)
    return server


class InboundMessageBuffer:
    """
    Reassembly state for exactly one inbound frame.

    The payload storage is allocated once the 4-byte header is complete and
    dropped as soon as the full payload has been handed out.
    """

    def __init__(self, max_size: int):
        """
        Args:
            max_size: Largest payload accepted, bigger declarations are rejected
        """
        self.max_size = max_size
        self._header = bytearray(HEADER.size)
        self._header_received = 0
        self._payload: Optional[bytearray] = None
        self._received = 0

    @property
    def pending(self) -> bool:
        """True while a declared payload is being received."""
        return self._payload is not None

    @property
    def declared(self) -> int:
        return len(self._payload) if self._payload is not None else 0

    @property
    def received(self) -> int:
        return self._received

    def target(self) -> memoryview:
        """Writable view of the bytes still missing for the current step of reassembly."""
        if self._payload is None:
            return memoryview(self._header)[self._header_received:]
        return memoryview(self._payload)[self._received:]

    def advance(self, count: int) -> Optional[bytes]:
        """
        Account for ``count`` bytes written into the last target.

        Returns:
            The complete payload when the frame is finished, None otherwise

        Raises:
            ProtocolError: If the header declares more than ``max_size`` bytes
        """
        if self._payload is None:
            self._header_received += count
            if self._header_received < HEADER.size:
                return None
            (declared,) = HEADER.unpack(self._header)
            self._header_received = 0
            if declared == 0:
                logger.debug("Skipping empty frame")
                return None
            if declared > self.max_size:
                raise ProtocolError(
                    f"Declared message size {declared} exceeds maximum of {self.max_size} bytes"
                )
            self._payload = bytearray(declared)
            self._received = 0
            return None

        self._received += count
        if self._received < len(self._payload):
            return None
        payload = bytes(self._payload)
        self.reset()
        return payload

    def reset(self) -> None:
        """Forget any partially received header or payload."""
        self._header_received = 0
        self._payload = None
        self._received = 0


@dataclass
class Session:
    """The connected controller and its in-progress I/O state."""
    sock: socket.socket
    peer: Tuple[str, int]
    buffer: InboundMessageBuffer
    time: int = 0
    outbox: bytearray = field(default_factory=bytearray)
    messages_received: int = 0
    bytes_sent: int = 0


class FramedTransport:
    """
    Listening socket plus at most one framed controller session.

    All socket operations are non-blocking so that a slow or silent
    controller never stalls the simulation step.
    """

    def __init__(
        self,
        port: int,
        access_control: AccessControl,
        max_message_bytes: int = 64 * 1024 * 1024,
        host: str = "",
        on_session_closed: Optional[Callable[[Session], None]] = None,
    ):
        """
        Initialize transport.

        Args:
            port: TCP port to listen on (0 picks a free port)
            access_control: Allow-list consulted for every accepted peer
            max_message_bytes: Largest inbound frame and largest unsent backlog
            host: Bind address
            on_session_closed: Callback when the session ends for any reason
        """
        self.port = port
        self.host = host
        self.access_control = access_control
        self.max_message_bytes = max_message_bytes
        self.on_session_closed = on_session_closed

        self._server: Optional[socket.socket] = None
        self._session: Optional[Session] = None

        # Statistics
        self._sessions_opened = 0
        self._messages_received = 0
        self._bytes_sent = 0

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def connected(self) -> bool:
        return self._session is not None

    def open(self) -> None:
        """Create the listening socket."""
        if self._server is not None:
            return
        self._server = create_server_socket(self.port, self.host)
        self.port = self._server.getsockname()[1]
        logger.info(f"Listening on port {self.port}")

    def accept(self) -> Optional[Session]:
        """
        Try once to accept a controller.

        Returns:
            The new session, or None if nobody is waiting or the peer was refused
        """
        if self._session is not None:
            return self._session
        if self._server is None:
            raise GatewaySetupError("Transport is not open")

        try:
            conn, peer = self._server.accept()
        except BlockingIOError:
            return None
        except OSError as e:
            logger.warning(f"Failed to accept connection: {e}")
            return None

        allowed = self.access_control.admit_address(peer[0])
        try:
            conn.setblocking(True)
            conn.sendall(WELCOME_TOKEN if allowed else REFUSED_TOKEN)
        except OSError as e:
            logger.warning(f"Failed to send handshake token to {peer[0]}: {e}")
            conn.close()
            return None

        if not allowed:
            conn.close()
            return None

        conn.setblocking(False)
        self._session = Session(
            sock=conn,
            peer=peer,
            buffer=InboundMessageBuffer(self.max_message_bytes),
        )
        self._sessions_opened += 1
        return self._session

    def receive(self, on_message: Callable[[bytes], None]) -> int:
        """
        Drain every frame currently readable.

        Complete payloads are passed to ``on_message`` in arrival order. Stops
        when the socket has no more data; partial frames are kept for the
        next call.

        Returns:
            Number of complete messages handled
        """
        handled = 0
        while self._session is not None:
            session = self._session
            with session.buffer.target() as target:
                try:
                    count = session.sock.recv_into(target)
                except BlockingIOError:
                    break
                except OSError as e:
                    logger.warning(f"Unexpected failure while receiving data: {e}")
                    self.close()
                    break

            if count == 0:
                logger.info("Client disconnected")
                self.close()
                break

            try:
                payload = session.buffer.advance(count)
            except ProtocolError as e:
                logger.warning(f"{e}, closing connection")
                self.close()
                break

            if payload is not None:
                handled += 1
                session.messages_received += 1
                self._messages_received += 1
                on_message(payload)
        return handled

    def send(self, payload: bytes) -> bool:
        """
        Frame and send a payload.

        Bytes the socket cannot take right now stay queued in front of any
        later frame and are retried on the next send.

        Returns:
            False if the session died while sending
        """
        session = self._session
        if session is None:
            return False
        session.outbox += HEADER.pack(len(payload))
        session.outbox += payload
        return self._flush(session)

    def _flush(self, session: Session) -> bool:
        sent = 0
        with memoryview(session.outbox) as view:
            while sent < len(view):
                try:
                    count = session.sock.send(view[sent:])
                except BlockingIOError:
                    break
                except OSError as e:
                    logger.warning(f"Unexpected failure while sending data: {e}")
                    self.close()
                    return False
                if count < 1:
                    logger.warning("Connection stopped accepting data")
                    self.close()
                    return False
                sent += count
        del session.outbox[:sent]
        session.bytes_sent += sent
        self._bytes_sent += sent

        if len(session.outbox) > self.max_message_bytes:
            logger.warning(
                f"Client is not reading, {len(session.outbox)} bytes pending, closing connection"
            )
            self.close()
            return False
        if session.outbox:
            logger.debug(f"Socket full, {len(session.outbox)} bytes left for next step")
        return True

    def close(self) -> None:
        """Close the current session, if any, and go back to listening."""
        session = self._session
        if session is None:
            return
        self._session = None
        session.buffer.reset()
        try:
            session.sock.close()
        except OSError as e:
            logger.debug(f"Error closing client socket: {e}")
        if self.on_session_closed:
            self.on_session_closed(session)

    def shutdown(self) -> None:
        """Close the session and the listening socket."""
        self.close()
        if self._server is not None:
            self._server.close()
            self._server = None

    def get_stats(self) -> dict:
        return {
            "port": self.port,
            "connected": self.connected,
            "peer": self._session.peer[0] if self._session else None,
            "sessions_opened": self._sessions_opened,
            "messages_received": self._messages_received,
            "bytes_sent": self._bytes_sent,
        }
