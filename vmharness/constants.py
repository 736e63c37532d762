"""Global constants and defaults for the compositor VM harness."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "distros.yaml"

DEFAULT_BUILD_DESCRIPTOR = "Cargo.toml"
DEFAULT_ARTIFACT = "target/release/codeverse-compositor"
DEFAULT_BUILD_CMD = "cargo build --release"
DEFAULT_WORK_DIR_NAME = "qemu-test"
SHARED_DIR_NAME = "shared"
DEFAULT_DISK_IMAGE = "compositor-test.qcow2"
DEFAULT_VM_NAME = "CodeVerse Compositor Test VM"
DEFAULT_VM_DEST = "/tmp/codeverse-compositor"

KVM_DEVICE = Path("/dev/kvm")
QEMU_BINARY = "qemu-system-x86_64"
QEMU_IMG = "qemu-img"
# CPU model used when KVM is unavailable and TCG emulates the guest
TCG_FALLBACK_CPU = "qemu64"
GPU_DEVICE = "virtio-vga-gl"
DISPLAY_MODE = "gtk,gl=on"
NIC_MODEL = "virtio-net-pci"
NETDEV_ID = "net0"

# Transfer tools in order of preference; both resume from a partial file
TRANSFER_TOOLS = ("wget", "curl")

SSH_OPTIONS = (
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    "UserKnownHostsFile=/dev/null",
    "-o",
    "LogLevel=ERROR",
)
SSH_BANNER_PREFIX = b"SSH-"

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

DISK_SIZE_RE = re.compile(r"^\d+[KMGTkmgt]?$")
