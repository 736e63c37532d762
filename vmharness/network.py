"""User-mode network arguments and forwarded-port probing."""

from __future__ import annotations

import socket
import time
from typing import Callable, List, Optional

from vmharness.constants import NETDEV_ID, NIC_MODEL, SSH_BANNER_PREFIX
from vmharness.exceptions import ManagerError
from vmharness.models import PortForward
from vmharness.utils import log


def validate_port_forward(pf: PortForward) -> PortForward:
    for label, port in (("host", pf.host_port), ("guest", pf.guest_port)):
        if not (1 <= port <= 65535):
            raise ManagerError(
                f"Invalid port forward {pf.host_port}:{pf.guest_port}: {label} port out of range (1-65535)"
            )
    return pf


def render_netdev(forwards: List[PortForward], netdev_id: str = NETDEV_ID) -> str:
    """Render a ``-netdev user`` value with one hostfwd rule per forward."""
    parts = [f"user,id={netdev_id}"]
    for pf in forwards:
        validate_port_forward(pf)
        parts.append(f"hostfwd=tcp::{pf.host_port}-:{pf.guest_port}")
    return ",".join(parts)


def render_network_args(
    forwards: List[PortForward],
    model: str = NIC_MODEL,
    netdev_id: str = NETDEV_ID,
) -> List[str]:
    return [
        "-device",
        f"{model},netdev={netdev_id}",
        "-netdev",
        render_netdev(forwards, netdev_id),
    ]


def read_ssh_banner(host: str, port: int, timeout: float = 5.0) -> Optional[bytes]:
    """Return the first bytes sent by the server on ``host:port``, or None if nothing answers."""
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            data = sock.recv(64)
    except OSError:
        return None
    return data or None


def wait_for_ssh_banner(
    host: str,
    port: int,
    alive: Callable[[], bool],
    interval: float = 3.0,
    reader: Callable[[str, int], Optional[bytes]] = read_ssh_banner,
) -> bool:
    """Poll the forwarded port until the guest's SSH server greets us.

    QEMU's user networking accepts connections on the host port as soon as it
    starts, so only an ``SSH-`` banner proves the guest is listening. Polling
    stops when ``alive()`` reports the VM is gone.
    """
    log("INFO", f"Waiting for guest SSH on {host}:{port}...")
    while alive():
        banner = reader(host, port)
        if banner and banner.startswith(SSH_BANNER_PREFIX):
            log("SUCCESS", f"Guest SSH is ready ({banner.decode('ascii', errors='replace').strip()})")
            return True
        time.sleep(interval)
    log("WARN", "VM exited before guest SSH became reachable")
    return False
