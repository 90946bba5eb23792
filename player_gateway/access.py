"""
Access control for incoming controller connections.

Only peers whose hostname exactly matches an entry of the allow-list given
on the command line may drive the robot.
"""

import logging
import socket
from typing import Callable, Iterable, List

logger = logging.getLogger(__name__)

WELCOME_TOKEN = b"Welcome\0"
REFUSED_TOKEN = b"Refused\0"


def resolve_peer_hostname(address: str) -> str:
    """
    Resolve the name of a peer from its dotted address.

    Forward resolution of a dotted address returns the address itself unless
    the local resolver maps it to a name, so allow-lists usually hold IPs.
    """
    try:
        return socket.gethostbyname_ex(address)[0]
    except OSError:
        return address


class AccessControl:
    """
    Static hostname allow-list.

    The decision for each connection attempt is logged; refused peers have
    to reconnect, nothing is retried on their behalf.
    """

    def __init__(
        self,
        allowed_hosts: Iterable[str],
        resolver: Callable[[str], str] = resolve_peer_hostname,
    ):
        """
        Initialize access control.

        Args:
            allowed_hosts: Hostnames allowed to connect
            resolver: Maps a peer address to the hostname checked against the list
        """
        self.allowed_hosts: List[str] = list(allowed_hosts)
        self.resolver = resolver
        self._accepted = 0
        self._refused = 0

    def admit(self, peer_hostname: str) -> bool:
        """Return True if the peer may connect."""
        allowed = peer_hostname in self.allowed_hosts
        if allowed:
            self._accepted += 1
            logger.info(f"Accepted connection from {peer_hostname}.")
        else:
            self._refused += 1
            logger.warning(f"Refused connection from {peer_hostname}.")
        return allowed

    def admit_address(self, address: str) -> bool:
        """Resolve a peer address and check the resulting hostname."""
        return self.admit(self.resolver(address))

    def get_stats(self) -> dict:
        return {
            "allowed_hosts": list(self.allowed_hosts),
            "accepted": self._accepted,
            "refused": self._refused,
        }
