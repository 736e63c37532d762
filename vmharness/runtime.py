"""Host capability detection for the compositor VM harness."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from vmharness.constants import KVM_DEVICE, QEMU_BINARY, QEMU_IMG
from vmharness.utils import log, which


@dataclass
class HostInfo:
    kvm: bool
    kvm_path: Path
    qemu_binary: Optional[str]
    qemu_img: Optional[str]


def kvm_available(kvm_path: Path = KVM_DEVICE) -> bool:
    """Return True if the KVM device exists and can be opened."""
    if not kvm_path.exists():
        return False
    try:
        fd = os.open(kvm_path, os.O_RDONLY)
    except OSError:
        return False
    else:
        os.close(fd)
        return True


def probe_host(
    kvm_path: Path = KVM_DEVICE,
    qemu_binary: str = QEMU_BINARY,
    lookup: Callable[[str], Optional[str]] = which,
) -> HostInfo:
    """Detect hardware acceleration and the QEMU tooling on PATH."""
    kvm = kvm_available(kvm_path)
    if kvm:
        log("SUCCESS", f"KVM acceleration available ({kvm_path})")
    else:
        log("WARN", f"KVM not available ({kvm_path}); using slower software emulation (TCG)")

    info = HostInfo(
        kvm=kvm,
        kvm_path=kvm_path,
        qemu_binary=lookup(qemu_binary),
        qemu_img=lookup(QEMU_IMG),
    )
    log("DEBUG", f"Host probe: {info}")
    return info
