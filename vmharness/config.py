"""Configuration loading and environment variable parsing for the compositor VM harness."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Callable, Dict, List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmharness.constants import (
    DEFAULT_ARTIFACT,
    DEFAULT_BUILD_CMD,
    DEFAULT_BUILD_DESCRIPTOR,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DISK_IMAGE,
    DEFAULT_VM_DEST,
    DEFAULT_VM_NAME,
    DEFAULT_WORK_DIR_NAME,
    DISPLAY_MODE,
    GPU_DEVICE,
    KVM_DEVICE,
    QEMU_BINARY,
)
from vmharness.exceptions import ManagerError
from vmharness.models import HarnessConfig, ImageSource
from vmharness.utils import (
    get_env,
    get_env_bool,
    log,
    parse_int_env,
    validate_disk_size,
)


def _config_path(config_path: Optional[Path]) -> Path:
    if config_path is not None:
        return config_path
    override = get_env("DISTRO_CONFIG")
    return Path(override) if override else DEFAULT_CONFIG_PATH


def load_catalogue(config_path: Optional[Path] = None) -> Dict[str, Dict]:
    """Return the distribution profiles in their declared order."""
    path = _config_path(config_path)
    if not path.exists():
        raise ManagerError(f"Distribution config missing: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ManagerError(f"Distribution config {path} contains invalid YAML: {exc}")
    distros = data.get("distributions") or {}
    if not distros:
        raise ManagerError(f"No distributions defined in {path}")
    return distros


def load_distro_config(distro: str, config_path: Optional[Path] = None) -> Dict:
    distros = load_catalogue(config_path)
    if distro not in distros:
        available_list = "\n    ".join(distros.keys())
        raise ManagerError(
            f"Unknown distro '{distro}'.\n"
            f"  Available distributions:\n"
            f"    {available_list}\n"
            f"  Use --list-distros to see details."
        )
    return distros[distro]


def image_source(distro: str, info: Dict) -> ImageSource:
    """Build the ordered source list (primary URL, then mirrors) for a profile."""
    for required in ("name", "iso", "url"):
        if not info.get(required):
            raise ManagerError(f"Distribution '{distro}' is missing required field '{required}'")
    urls = [info["url"]] + [str(m) for m in info.get("mirrors") or []]
    return ImageSource(key=distro, name=info["name"], filename=info["iso"], urls=urls)


def choose_distro(
    keys: List[str],
    catalogue: Dict[str, Dict],
    prompt: Callable[[str], str] = input,
) -> str:
    """Ask which profile to boot. Empty input selects the first one."""
    print("Choose Linux distribution for testing:")
    for idx, key in enumerate(keys, start=1):
        print(f"{idx}) {catalogue[key].get('name', key)}")
    while True:
        try:
            answer = prompt(f"Enter choice [1-{len(keys)}] (default: 1): ").strip()
        except EOFError:
            answer = ""
        if not answer:
            return keys[0]
        if answer in keys:
            return answer
        if answer.isdigit() and 1 <= int(answer) <= len(keys):
            return keys[int(answer) - 1]
        log("WARN", f"Invalid choice '{answer}'")


def resolve_distro(
    explicit: Optional[str],
    catalogue: Dict[str, Dict],
    interactive: bool = False,
    prompt: Callable[[str], str] = input,
) -> str:
    """Pick the profile: explicit value, then DISTRO, then a prompt, then the first entry."""
    keys = list(catalogue.keys())
    chosen = explicit or get_env("DISTRO")
    if chosen:
        return chosen.strip()
    if interactive:
        return choose_distro(keys, catalogue, prompt)
    return keys[0]


def _resolve_path(raw: str, base: Path) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def parse_env(
    distro: Optional[str] = None,
    extra_args: Optional[List[str]] = None,
    interactive: bool = False,
    config_path: Optional[Path] = None,
    prompt: Callable[[str], str] = input,
) -> HarnessConfig:
    project_root = Path(get_env("PROJECT_ROOT") or Path.cwd()).expanduser().resolve()
    build_descriptor = _resolve_path(get_env("BUILD_DESCRIPTOR", DEFAULT_BUILD_DESCRIPTOR) or "", project_root)
    artifact_path = _resolve_path(get_env("ARTIFACT", DEFAULT_ARTIFACT) or "", project_root)
    build_command = shlex.split(get_env("BUILD_CMD", DEFAULT_BUILD_CMD) or "")
    if not build_command:
        raise ManagerError("BUILD_CMD must not be empty")
    work_dir = _resolve_path(get_env("WORK_DIR", DEFAULT_WORK_DIR_NAME) or "", project_root)

    catalogue = load_catalogue(config_path)
    distro_key = resolve_distro(distro, catalogue, interactive=interactive, prompt=prompt)
    distro_info = load_distro_config(distro_key, config_path)
    source = image_source(distro_key, distro_info)
    login_user = str(distro_info.get("user") or "liveuser")

    memory_mb = parse_int_env("MEMORY", "4096")
    cpus = parse_int_env("CPUS", "4")
    disk_size = validate_disk_size(get_env("DISK_SIZE", "20G") or "20G")
    disk_image = _resolve_path(get_env("DISK_IMAGE", DEFAULT_DISK_IMAGE) or DEFAULT_DISK_IMAGE, work_dir)

    ssh_port = parse_int_env("SSH_PORT", "2222", min_val=1, max_val=65535)
    guest_ssh_port = parse_int_env("GUEST_SSH_PORT", "22", min_val=1, max_val=65535)
    connect_timeout_raw = get_env("SSH_CONNECT_TIMEOUT")
    ssh_connect_timeout = None
    if connect_timeout_raw is not None and connect_timeout_raw.strip():
        ssh_connect_timeout = parse_int_env("SSH_CONNECT_TIMEOUT", connect_timeout_raw)

    if extra_args is None:
        extra_args = shlex.split(get_env("EXTRA_ARGS", "") or "")

    return HarnessConfig(
        project_root=project_root,
        build_descriptor=build_descriptor,
        artifact_path=artifact_path,
        build_command=build_command,
        work_dir=work_dir,
        distro=distro_key,
        distro_name=source.name,
        image_source=source,
        login_user=login_user,
        memory_mb=memory_mb,
        cpus=cpus,
        disk_size=disk_size,
        disk_image=disk_image,
        ssh_port=ssh_port,
        guest_ssh_port=guest_ssh_port,
        vm_host=(get_env("VM_HOST", "localhost") or "localhost").strip(),
        vm_user=(get_env("VM_USER") or login_user).strip(),
        vm_dest=(get_env("VM_DEST", DEFAULT_VM_DEST) or DEFAULT_VM_DEST).strip(),
        vm_name=(get_env("VM_NAME", DEFAULT_VM_NAME) or DEFAULT_VM_NAME).strip(),
        qemu_binary=(get_env("QEMU_BINARY", QEMU_BINARY) or QEMU_BINARY).strip(),
        display=(get_env("DISPLAY_MODE", DISPLAY_MODE) or DISPLAY_MODE).strip(),
        gpu_device=(get_env("GPU_DEVICE", GPU_DEVICE) or GPU_DEVICE).strip(),
        extra_args=list(extra_args),
        share_virtfs=get_env_bool("SHARE_VIRTFS", False),
        kvm_device=Path(get_env("KVM_DEVICE") or KVM_DEVICE),
        ssh_connect_timeout=ssh_connect_timeout,
    )
