"""Copy the compositor binary into a running guest over the forwarded SSH port."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from vmharness.constants import SSH_OPTIONS
from vmharness.models import DeploymentTarget, DeployResult, DeployStatus
from vmharness.status import RunReport, WarningKind
from vmharness.utils import log, run


def _ssh_options(target: DeploymentTarget) -> List[str]:
    options = list(SSH_OPTIONS)
    if target.connect_timeout:
        options.extend(["-o", f"ConnectTimeout={target.connect_timeout}"])
    return options


def scp_command(target: DeploymentTarget, artifact: Path) -> List[str]:
    return ["scp", "-P", str(target.port), *_ssh_options(target), str(artifact), target.destination]


def chmod_command(target: DeploymentTarget) -> List[str]:
    return ["ssh", "-p", str(target.port), *_ssh_options(target), target.login, f"chmod +x {target.dest}"]


def _invoke(runner: Callable, cmd: List[str]) -> Optional[subprocess.CompletedProcess]:
    # stdin stays attached so a password prompt from the live system still works
    try:
        result = runner(cmd, check=False, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as exc:
        log("DEBUG", f"{cmd[0]} could not be started: {exc}")
        return None
    if result.returncode != 0 and result.stderr:
        log("DEBUG", f"{cmd[0]} stderr: {result.stderr.strip()}")
    return result


def unreachable_remediation(target: DeploymentTarget, shared_dir: Optional[Path] = None) -> List[str]:
    lines = [
        "Possible reasons:",
        "  - VM is not running (start it with: vmharness provision)",
        "  - SSH not configured in the live system (start sshd in the guest)",
        f"  - Port {target.port} is blocked by a firewall or not forwarded to guest port 22",
        "Alternative: copy manually",
        "  1. In the VM, open a terminal",
    ]
    if shared_dir is not None:
        lines.append(f"  2. Copy the binary from the shared folder ({shared_dir}) or rebuild from source")
    else:
        lines.append("  2. Copy the binary from the shared folder or rebuild from source")
    return lines


def deploy_artifact(
    target: DeploymentTarget,
    artifact: Path,
    report: RunReport,
    runner: Callable = run,
    shared_dir: Optional[Path] = None,
) -> DeployResult:
    """Transfer ``artifact`` to the guest, then mark it executable.

    Each step is attempted once. A failed transfer skips the permission step;
    a failed permission step still counts as a partial success because the
    file is already on the guest.
    """
    log("INFO", "Deploying to VM...")
    log("INFO", f"  Host: {target.host}:{target.port}")
    log("INFO", f"  User: {target.user}")
    log("INFO", f"  Dest: {target.dest}")
    log("INFO", "Copying binary (a live system password is usually empty, just press Enter)...")

    copied = _invoke(runner, scp_command(target, artifact))
    if copied is None or copied.returncode != 0:
        log("ERROR", "Failed to copy binary")
        report.add(
            WarningKind.DEPLOY_UNREACHABLE,
            f"Could not copy {artifact.name} to {target.destination}",
            unreachable_remediation(target, shared_dir),
        )
        return DeployResult(status=DeployStatus.FAILED, transferred=False, executable=False)
    log("SUCCESS", "Binary copied successfully")

    marked = _invoke(runner, chmod_command(target))
    if marked is None or marked.returncode != 0:
        report.add(
            WarningKind.PERMISSION_SET_FAILED,
            f"Deployment partial success: {target.dest} copied but may not be executable",
            [f"In the VM run: chmod +x {target.dest}"],
        )
        return DeployResult(status=DeployStatus.PARTIAL, transferred=True, executable=False)
    log("SUCCESS", "Made executable")
    log("SUCCESS", f"Deployment complete! Run in the VM: {target.dest}")
    return DeployResult(status=DeployStatus.SUCCESS, transferred=True, executable=True)
