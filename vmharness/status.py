"""Non-fatal outcomes collected during a run and reported at the end."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from vmharness.utils import log


class WarningKind(Enum):
    ACCELERATION_UNAVAILABLE = "AccelerationUnavailable"
    DEPLOY_UNREACHABLE = "DeployUnreachable"
    PERMISSION_SET_FAILED = "PermissionSetFailed"


@dataclass
class RunWarning:
    kind: WarningKind
    message: str
    remediation: List[str] = field(default_factory=list)


class RunReport:
    """Accumulate warnings without interrupting the pipeline."""

    def __init__(self) -> None:
        self.warnings: List[RunWarning] = []

    def add(self, kind: WarningKind, message: str, remediation: List[str]) -> RunWarning:
        warning = RunWarning(kind=kind, message=message, remediation=list(remediation))
        self.warnings.append(warning)
        log("WARN", message)
        return warning

    def has(self, kind: WarningKind) -> bool:
        return any(w.kind is kind for w in self.warnings)

    def render(self) -> None:
        if not self.warnings:
            return
        log("WARN", f"Completed with {len(self.warnings)} warning(s):")
        for warning in self.warnings:
            log("WARN", f"{warning.kind.value}: {warning.message}")
            for line in warning.remediation:
                print(f"    {line}", flush=True)
