"""Data models for the compositor VM harness."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional

from vmharness.constants import SHARED_DIR_NAME


class PortForward(NamedTuple):
    host_port: int
    guest_port: int


class Freshness(Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISSING = "missing"

    @property
    def needs_rebuild(self) -> bool:
        return self is not Freshness.FRESH


@dataclass
class Artifact:
    path: Path

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    @property
    def mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None


@dataclass
class ImageSource:
    """Ordered candidate locations for one boot image, primary first."""

    key: str
    name: str
    filename: str
    urls: List[str]


@dataclass
class DownloadState:
    """Partial or complete bytes of a fetch at a fixed local path."""

    path: Path

    @property
    def offset(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0


@dataclass
class FetchAttempt:
    url: str
    offset: int
    returncode: int


@dataclass
class FetchResult:
    path: Path
    url: Optional[str] = None
    cached: bool = False
    attempts: List[FetchAttempt] = field(default_factory=list)


@dataclass(frozen=True)
class LaunchProfile:
    """Everything one QEMU session is started with. Immutable once spawned."""

    distro: str
    distro_name: str
    accelerated: bool
    memory_mb: int
    cpus: int
    boot_iso: Path
    disk_image: Path
    shared_dir: Path
    ssh_forward: PortForward
    vm_name: str
    display: str
    gpu_device: str
    extra_args: tuple = ()
    share_virtfs: bool = False


@dataclass
class DeploymentTarget:
    host: str
    port: int
    user: str
    dest: str
    connect_timeout: Optional[int] = None

    @property
    def login(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def destination(self) -> str:
        return f"{self.login}:{self.dest}"


class DeployStatus(Enum):
    SUCCESS = "success"
    PARTIAL = "partial success"
    FAILED = "failed"


@dataclass
class DeployResult:
    status: DeployStatus
    transferred: bool
    executable: bool


@dataclass
class HarnessConfig:
    project_root: Path
    build_descriptor: Path
    artifact_path: Path
    build_command: List[str]
    work_dir: Path
    distro: str
    distro_name: str
    image_source: ImageSource
    login_user: str
    memory_mb: int
    cpus: int
    disk_size: str
    disk_image: Path
    ssh_port: int
    guest_ssh_port: int
    vm_host: str
    vm_user: str
    vm_dest: str
    vm_name: str
    qemu_binary: str
    display: str
    gpu_device: str
    extra_args: List[str]
    share_virtfs: bool
    kvm_device: Path
    ssh_connect_timeout: Optional[int] = None

    @property
    def shared_dir(self) -> Path:
        return self.work_dir / SHARED_DIR_NAME

    @property
    def boot_iso(self) -> Path:
        return self.work_dir / self.image_source.filename

    def deployment_target(self) -> DeploymentTarget:
        return DeploymentTarget(
            host=self.vm_host,
            port=self.ssh_port,
            user=self.vm_user,
            dest=self.vm_dest,
            connect_timeout=self.ssh_connect_timeout,
        )
