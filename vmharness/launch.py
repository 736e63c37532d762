"""QEMU launch composition and foreground session handling."""

from __future__ import annotations

import shutil
import signal
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from vmharness.constants import QEMU_IMG, TCG_FALLBACK_CPU
from vmharness.exceptions import ManagerError
from vmharness.models import HarnessConfig, LaunchProfile, PortForward
from vmharness.network import render_network_args
from vmharness.utils import ensure_directory, log, run


def build_profile(cfg: HarnessConfig, accelerated: bool) -> LaunchProfile:
    return LaunchProfile(
        distro=cfg.distro,
        distro_name=cfg.distro_name,
        accelerated=accelerated,
        memory_mb=cfg.memory_mb,
        cpus=cfg.cpus,
        boot_iso=cfg.boot_iso,
        disk_image=cfg.disk_image,
        shared_dir=cfg.shared_dir,
        ssh_forward=PortForward(cfg.ssh_port, cfg.guest_ssh_port),
        vm_name=cfg.vm_name,
        display=cfg.display,
        gpu_device=cfg.gpu_device,
        extra_args=tuple(cfg.extra_args),
        share_virtfs=cfg.share_virtfs,
    )


def compose_qemu_args(profile: LaunchProfile, qemu_binary: str) -> List[str]:
    """Return the full QEMU command line for ``profile``. Same input, same output."""
    args = [qemu_binary]
    if profile.accelerated:
        args.extend(["-enable-kvm", "-cpu", "host"])
    else:
        args.extend(["-cpu", TCG_FALLBACK_CPU])
    args.extend(
        [
            "-m",
            f"{profile.memory_mb}M",
            "-smp",
            str(profile.cpus),
            "-cdrom",
            str(profile.boot_iso),
            "-boot",
            "d",
            "-drive",
            f"file={profile.disk_image},format=qcow2,if=ide",
            "-device",
            profile.gpu_device,
            "-display",
            profile.display,
        ]
    )
    args.extend(render_network_args([profile.ssh_forward]))
    args.extend(["-usb", "-device", "usb-tablet", "-name", profile.vm_name])
    if profile.share_virtfs:
        args.extend(
            [
                "-virtfs",
                f"local,path={profile.shared_dir},mount_tag=shared,security_model=mapped-xattr,readonly=on",
            ]
        )
    args.extend(profile.extra_args)
    return args


def ensure_disk_image(path: Path, size: str, runner: Callable = run) -> bool:
    """Create the persistent qcow2 disk once. Returns True if it was created."""
    if path.exists():
        log("INFO", f"Reusing persistent disk {path}")
        return False
    ensure_directory(path.parent)
    log("INFO", f"Creating virtual disk {path.name} ({size})...")
    cmd = [QEMU_IMG, "create", "-f", "qcow2", str(path), size]
    try:
        result = runner(cmd, check=False, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as exc:
        raise ManagerError(f"Could not run {QEMU_IMG}: {exc}", "Install qemu-img (part of the QEMU tools package)")
    if result.returncode != 0:
        detail = (result.stderr or "").strip()
        raise ManagerError(f"Failed to create {path}: {detail or f'exit status {result.returncode}'}")
    log("SUCCESS", "Virtual disk created")
    return True


def stage_shared_artifact(artifact: Path, shared_dir: Path) -> Path:
    """Mirror the build artifact into the shared folder for retrieval inside the guest."""
    ensure_directory(shared_dir)
    staged = shared_dir / artifact.name
    shutil.copy2(artifact, staged)
    log("SUCCESS", f"Compositor binary copied to {shared_dir}")
    return staged


def print_launch_summary(profile: LaunchProfile) -> None:
    """Print a visually distinct summary of the VM about to start."""
    lines: List[str] = [
        f"  VM: {profile.vm_name} ({profile.distro_name})",
        f"  RAM: {profile.memory_mb} MiB | CPUs: {profile.cpus} | "
        f"Accel: {'KVM' if profile.accelerated else 'TCG'}",
        f"  Graphics: {profile.gpu_device} | Display: {profile.display}",
        f"  ISO: {profile.boot_iso.name}",
        f"  Disk: {profile.disk_image}",
        f"  Shared folder: {profile.shared_dir}",
        f"  SSH:  ssh -p {profile.ssh_forward.host_port} <user>@localhost "
        f"(-> guest:{profile.ssh_forward.guest_port})",
    ]
    max_len = max(len(line) for line in lines)
    border_len = max_len + 2
    banner_colour = "\033[0;36m"
    reset = "\033[0m"
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)
    for line in lines:
        print(f"{banner_colour}{line}{reset}", flush=True)
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)


def launch_vm(
    args: List[str],
    popen: Callable = subprocess.Popen,
    on_started: Optional[Callable[[subprocess.Popen], None]] = None,
) -> int:
    """Run QEMU in the foreground and return its exit status.

    Ctrl+C is forwarded to QEMU and SIGTERM terminates it; either way the
    call returns once QEMU has exited.
    """
    log("INFO", "Starting QEMU virtual machine")
    log("DEBUG", f"Running: {' '.join(args)}")
    try:
        proc = popen(args)
    except OSError as exc:
        raise ManagerError(f"Could not start {args[0]}: {exc}", "Install QEMU or set QEMU_BINARY")

    def _terminate_vm(signum, frame):
        proc.terminate()

    prev_sigterm = signal.signal(signal.SIGTERM, _terminate_vm)
    try:
        if on_started is not None:
            on_started(proc)
        retcode = proc.wait()
    except KeyboardInterrupt:
        log("INFO", "Interrupted; stopping VM")
        proc.send_signal(signal.SIGINT)
        retcode = proc.wait()
    finally:
        signal.signal(signal.SIGTERM, prev_sigterm)

    if retcode == 0:
        log("SUCCESS", "QEMU session ended")
    else:
        log("WARN", f"QEMU exited with status {retcode}")
    return retcode
