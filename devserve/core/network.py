"""Network address helpers."""
from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def get_ip_address() -> str:
    """Return the LAN-visible IPv4 address of this machine.

    Connecting a UDP socket sends no packets; it only asks the OS which
    interface would route to a public address. Falls back to loopback
    when the machine has no route (offline laptops, CI sandboxes).
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            s.connect(("10.255.255.255", 1))
            return s.getsockname()[0]
        except OSError as e:
            logger.debug("Could not resolve LAN address, using loopback: %s", e)
            return LOOPBACK_ADDRESS
