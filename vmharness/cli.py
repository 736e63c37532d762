"""CLI entry points for the compositor VM harness."""

from __future__ import annotations

import argparse
import dataclasses
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional

from vmharness.build import check_freshness, ensure_fresh_build
from vmharness.config import load_catalogue, parse_env
from vmharness.deploy import deploy_artifact
from vmharness.exceptions import ManagerError
from vmharness.fetch import fetch_image
from vmharness.launch import (
    build_profile,
    compose_qemu_args,
    ensure_disk_image,
    launch_vm,
    print_launch_summary,
    stage_shared_artifact,
)
from vmharness.models import HarnessConfig
from vmharness.network import wait_for_ssh_banner
from vmharness.runtime import probe_host
from vmharness.status import RunReport, WarningKind
from vmharness.utils import has_controlling_tty, log


def list_distros(config_path: Optional[Path] = None) -> None:
    """Print available distribution profiles, default first."""
    try:
        distros = load_catalogue(config_path)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return
    max_key = max(len(k) for k in distros)
    for idx, (key, info) in enumerate(distros.items()):
        name = info.get("name", key)
        mirrors = len(info.get("mirrors") or [])
        default = "  [default]" if idx == 0 else ""
        print(f"  {key:<{max_key}}  {name}  (iso={info.get('iso', '?')}, mirrors={mirrors}){default}")


def show_config(cfg: HarnessConfig) -> None:
    """Print the resolved configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if dataclasses.is_dataclass(value):
            print(f"  {field.name}:")
            for sub_field in dataclasses.fields(value):
                print(f"    {sub_field.name}: {getattr(value, sub_field.name)}")
        else:
            print(f"  {field.name}: {value}")


def run_deploy(cfg: HarnessConfig, report: RunReport) -> int:
    ensure_fresh_build(cfg)
    deploy_artifact(cfg.deployment_target(), cfg.artifact_path, report, shared_dir=cfg.shared_dir)
    report.render()
    return 0


def _deploy_when_ready(cfg: HarnessConfig, report: RunReport):
    target = cfg.deployment_target()

    def _hook(proc: subprocess.Popen) -> None:
        if wait_for_ssh_banner(target.host, target.port, alive=lambda: proc.poll() is None):
            deploy_artifact(target, cfg.artifact_path, report, shared_dir=cfg.shared_dir)
        else:
            report.add(
                WarningKind.DEPLOY_UNREACHABLE,
                "Guest SSH never became reachable; binary was not deployed",
                [
                    f"Start sshd in the guest, then run: vmharness deploy (port {target.port})",
                    f"Or copy the binary from the shared folder ({cfg.shared_dir})",
                ],
            )

    return _hook


def run_provision(cfg: HarnessConfig, report: RunReport, deploy_after: bool = False, dry_run: bool = False) -> int:
    if dry_run:
        freshness = check_freshness(cfg.build_descriptor, cfg.artifact_path)
        log("INFO", f"Artifact:    {cfg.artifact_path} ({freshness.value})")
    else:
        ensure_fresh_build(cfg)

    host = probe_host(cfg.kvm_device, cfg.qemu_binary)
    if not host.kvm:
        report.add(
            WarningKind.ACCELERATION_UNAVAILABLE,
            "KVM not available, using slower emulation",
            [
                f"Check that {cfg.kvm_device} exists and is readable (load kvm_intel/kvm_amd)",
                "Add your user to the 'kvm' group: sudo usermod -aG kvm $USER",
            ],
        )
    profile = build_profile(cfg, accelerated=host.kvm)
    args = compose_qemu_args(profile, cfg.qemu_binary)

    if dry_run:
        boot_iso_state = "found" if cfg.boot_iso.exists() else "will download"
        log("INFO", f"Boot ISO:    {cfg.boot_iso} ({boot_iso_state})")
        if host.qemu_binary is None:
            log("WARN", f"QEMU:        {cfg.qemu_binary} NOT found on PATH")
        print(" ".join(shlex.quote(arg) for arg in args), flush=True)
        log("INFO", "=== Dry-run complete (no VM started) ===")
        report.render()
        return 0

    if host.qemu_binary is None or host.qemu_img is None:
        missing = cfg.qemu_binary if host.qemu_binary is None else "qemu-img"
        raise ManagerError(
            f"QEMU not found: {missing} is not on PATH",
            "Install QEMU (e.g. 'sudo dnf install qemu-kvm qemu-img' or "
            "'sudo apt install qemu-system-x86 qemu-utils')",
        )

    fetch_image(cfg.image_source, cfg.boot_iso)
    ensure_disk_image(cfg.disk_image, cfg.disk_size)
    stage_shared_artifact(cfg.artifact_path, cfg.shared_dir)

    print_launch_summary(profile)
    on_started = _deploy_when_ready(cfg, report) if deploy_after else None
    launch_vm(args, on_started=on_started)
    report.render()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision a QEMU guest and deploy the compositor into it")
    parser.add_argument("--list-distros", action="store_true", help="List available distributions and exit")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    parser.add_argument("--distro", help="Distribution profile (default: DISTRO env, prompt, or first profile)")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("deploy", help="Rebuild if needed and copy the binary into the running VM")

    provision = subparsers.add_parser(
        "provision",
        aliases=["provision-and-test"],
        help="Rebuild if needed, fetch the ISO and boot the test VM",
    )
    provision.add_argument("--deploy", action="store_true", help="Deploy the binary once guest SSH is reachable")
    provision.add_argument("--dry-run", action="store_true", help="Print the QEMU command line and exit")
    provision.add_argument(
        "qemu_args",
        nargs=argparse.REMAINDER,
        help="Extra arguments passed to QEMU verbatim (after --)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_distros:
        list_distros()
        return 0
    if args.command is None and not args.show_config:
        parser.print_help()
        return 2

    provisioning = args.command in ("provision", "provision-and-test")
    extra_args = None
    if provisioning and args.qemu_args:
        extra_args = [a for a in args.qemu_args if a != "--"] or None

    report = RunReport()
    try:
        cfg = parse_env(
            distro=args.distro,
            extra_args=extra_args,
            interactive=provisioning and not args.dry_run and has_controlling_tty(),
        )
        if args.show_config:
            show_config(cfg)
            return 0
        if provisioning:
            return run_provision(cfg, report, deploy_after=args.deploy, dry_run=args.dry_run)
        return run_deploy(cfg, report)
    except ManagerError as exc:
        log("ERROR", str(exc))
        if exc.remediation:
            log("INFO", exc.remediation)
        report.render()
        return 1
    except KeyboardInterrupt:
        log("WARN", "Interrupted; partial downloads are kept and resume on the next run")
        return 130
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
