"""Custom exceptions for the compositor VM harness."""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""

    def __init__(self, message: str, remediation: str = "") -> None:
        super().__init__(message)
        self.remediation = remediation


class BuildFailed(ManagerError):
    """The rebuild of a stale or missing artifact did not succeed."""


class AllSourcesExhausted(ManagerError):
    """Every image source failed; the partial download is kept for resumption."""

    def __init__(self, message: str, remediation: str = "", attempts=None) -> None:
        super().__init__(message, remediation)
        self.attempts = list(attempts or [])


class NoTransferCapability(ManagerError):
    """Neither wget nor curl is available on the host."""
