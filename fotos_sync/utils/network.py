"""Network helpers: port discovery, LAN address, connectivity probe."""

import errno
import logging
import socket
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def is_port_in_use(port: int, host: str = "0.0.0.0") -> bool:
    """Check whether a TCP port is already bound on this machine."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                return True
            logger.debug("Port %d probe failed: %s", port, e)
            return True
    return False


def find_available_port(start_port: int, max_attempts: int = 100, host: str = "0.0.0.0") -> int:
    """Find a free TCP port, trying sequential ports from ``start_port``.

    Raises:
        OSError: If no free port is found within ``max_attempts`` ports
    """
    for port in range(start_port, start_port + max_attempts):
        if not is_port_in_use(port, host):
            return port
    raise OSError(f"No available ports found after {max_attempts} attempts")


def get_lan_address() -> str:
    """Get the first non-loopback IPv4 address, falling back to localhost."""
    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            address = info[4][0]
            if not address.startswith("127."):
                return address
    except socket.gaierror as e:
        logger.debug("Hostname lookup failed: %s", e)

    # Connecting a UDP socket sends nothing but selects the outbound interface.
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
            if not address.startswith("127.") and address != "0.0.0.0":
                return address
    except OSError as e:
        logger.debug("Outbound interface lookup failed: %s", e)

    return "localhost"


class ConnectivityProbe:
    """Answers "are we online?" by opening a TCP connection to the backend."""

    def __init__(self, server_url: str, timeout: float = 3.0):
        parsed = urlparse(server_url)
        self.host = parsed.hostname or server_url
        self.port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self.timeout = timeout
        self._forced: Optional[bool] = None

    def force(self, online: Optional[bool]) -> None:
        """Pin the answer (``None`` restores probing)."""
        self._forced = online

    def __call__(self) -> bool:
        if self._forced is not None:
            return self._forced
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.info("Backend unreachable, treating as offline: %s", e)
            return False
