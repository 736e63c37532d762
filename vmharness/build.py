"""Artifact freshness check and rebuild trigger."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from vmharness.exceptions import BuildFailed
from vmharness.models import Artifact, Freshness, HarnessConfig
from vmharness.utils import log, run


def check_freshness(descriptor: Path, artifact: Path) -> Freshness:
    """Compare modification times of the build descriptor and the artifact.

    The artifact is stale only when the descriptor is strictly newer; equal
    timestamps count as fresh. A missing descriptor leaves nothing to compare
    against, so an existing artifact is fresh in that case.
    """
    artifact_mtime = Artifact(artifact).mtime
    if artifact_mtime is None:
        return Freshness.MISSING
    descriptor_mtime = Artifact(descriptor).mtime
    if descriptor_mtime is not None and descriptor_mtime > artifact_mtime:
        return Freshness.STALE
    return Freshness.FRESH


def ensure_fresh_build(cfg: HarnessConfig, runner: Callable = run) -> Freshness:
    freshness = check_freshness(cfg.build_descriptor, cfg.artifact_path)
    if freshness is Freshness.FRESH:
        log("SUCCESS", f"Found compositor binary: {cfg.artifact_path}")
        return freshness

    if freshness is Freshness.MISSING:
        log("WARN", f"Compositor not found at {cfg.artifact_path}")
    else:
        log("WARN", f"{cfg.build_descriptor.name} is newer than {cfg.artifact_path.name}; source changed")
    command = " ".join(cfg.build_command)
    log("INFO", f"Building compositor: {command}")

    remediation = f"Fix the build and re-run, or build manually with: cd {cfg.project_root} && {command}"
    try:
        result = runner(cfg.build_command, check=False, cwd=str(cfg.project_root))
    except OSError as exc:
        raise BuildFailed(f"Could not run build command '{command}': {exc}", remediation)
    if result.returncode != 0:
        raise BuildFailed(f"Build command '{command}' exited with status {result.returncode}", remediation)
    if not Artifact(cfg.artifact_path).exists:
        raise BuildFailed(
            f"Build succeeded but {cfg.artifact_path} was not produced",
            "Set ARTIFACT to the path the build actually writes",
        )
    log("SUCCESS", "Compositor built successfully")
    return freshness
