"""compositor-vm-harness package."""

__all__ = [
    "build",
    "cli",
    "config",
    "constants",
    "deploy",
    "exceptions",
    "fetch",
    "launch",
    "models",
    "network",
    "runtime",
    "status",
    "utils",
]
