"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from vmharness.models import HarnessConfig, ImageSource

SOURCE_URLS = [
    "https://primary.example.com/iso/test.iso",
    "https://mirror1.example.com/iso/test.iso",
    "https://mirror2.example.com/iso/test.iso",
]


class FakeRunner:
    """Stand-in for ``utils.run`` that records commands and replays exit codes.

    ``codes`` maps the program name (``cmd[0]``) to a list of exit codes
    consumed in order; ``writes`` maps a program name to bytes appended to the
    file named by the command's ``-O``/``-o`` option when that call succeeds,
    ``partial_writes`` to bytes appended when it fails.
    """

    def __init__(
        self,
        codes: Optional[Dict[str, List[int]]] = None,
        writes: Optional[Dict[str, bytes]] = None,
        partial_writes: Optional[Dict[str, bytes]] = None,
    ):
        self.codes = {k: list(v) for k, v in (codes or {}).items()}
        self.writes = writes or {}
        self.partial_writes = partial_writes or {}
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []

    def __call__(self, cmd, check=True, **kwargs):
        self.calls.append(list(cmd))
        self.kwargs.append(kwargs)
        queue = self.codes.get(cmd[0], [])
        code = queue.pop(0) if queue else 0
        payload = (self.writes if code == 0 else self.partial_writes).get(cmd[0])
        if payload is not None:
            for flag in ("-O", "-o"):
                if flag in cmd:
                    with open(Path(cmd[cmd.index(flag) + 1]), "ab") as f:
                        f.write(payload)
        return subprocess.CompletedProcess(cmd, code, stdout="", stderr="boom" if code else "")

    def programs(self) -> List[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def image_source() -> ImageSource:
    return ImageSource(key="test", name="Test Linux", filename="test.iso", urls=list(SOURCE_URLS))


@pytest.fixture
def default_config(tmp_path, image_source) -> HarnessConfig:
    """Return a HarnessConfig rooted in a temporary project directory."""
    root = tmp_path / "project"
    root.mkdir()
    work_dir = root / "qemu-test"
    return HarnessConfig(
        project_root=root,
        build_descriptor=root / "Cargo.toml",
        artifact_path=root / "target" / "release" / "codeverse-compositor",
        build_command=["cargo", "build", "--release"],
        work_dir=work_dir,
        distro="test",
        distro_name="Test Linux",
        image_source=image_source,
        login_user="liveuser",
        memory_mb=4096,
        cpus=4,
        disk_size="20G",
        disk_image=work_dir / "compositor-test.qcow2",
        ssh_port=2222,
        guest_ssh_port=22,
        vm_host="localhost",
        vm_user="liveuser",
        vm_dest="/tmp/codeverse-compositor",
        vm_name="CodeVerse Compositor Test VM",
        qemu_binary="qemu-system-x86_64",
        display="gtk,gl=on",
        gpu_device="virtio-vga-gl",
        extra_args=[],
        share_virtfs=False,
        kvm_device=tmp_path / "kvm",
    )


# All environment variables that parse_env() reads, used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "PROJECT_ROOT",
    "BUILD_DESCRIPTOR",
    "ARTIFACT",
    "BUILD_CMD",
    "WORK_DIR",
    "DISTRO",
    "DISTRO_CONFIG",
    "MEMORY",
    "CPUS",
    "DISK_SIZE",
    "DISK_IMAGE",
    "SSH_PORT",
    "GUEST_SSH_PORT",
    "SSH_CONNECT_TIMEOUT",
    "VM_HOST",
    "VM_USER",
    "VM_DEST",
    "VM_NAME",
    "QEMU_BINARY",
    "DISPLAY_MODE",
    "GPU_DEVICE",
    "EXTRA_ARGS",
    "SHARE_VIRTFS",
    "KVM_DEVICE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear all environment variables that parse_env() reads and root the project in tmp_path."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PROJECT_ROOT", str(tmp_path))
