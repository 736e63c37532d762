"""Boot image acquisition with ordered mirror failover and resumable transfer."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, List, Optional

from vmharness.constants import TRANSFER_TOOLS
from vmharness.exceptions import AllSourcesExhausted, NoTransferCapability
from vmharness.models import DownloadState, FetchAttempt, FetchResult, ImageSource
from vmharness.utils import ensure_directory, log, run, which


def partial_path(destination: Path) -> Path:
    """Where bytes accumulate until a transfer completes."""
    return destination.with_name(destination.name + ".part")


def select_transfer_tool(lookup: Callable[[str], Optional[str]] = which) -> str:
    """Return the first available transfer tool, preferring wget over curl."""
    for tool in TRANSFER_TOOLS:
        if lookup(tool):
            return tool
    raise NoTransferCapability(
        "Neither wget nor curl found; cannot download the boot image",
        "Install wget or curl (e.g. 'sudo dnf install wget' or 'sudo apt install curl')",
    )


def build_transfer_command(tool: str, url: str, destination: Path, offset: int = 0) -> List[str]:
    """Build a resuming download command writing to ``destination``."""
    if tool == "wget":
        return ["wget", "-c", url, "-O", str(destination)]
    if tool == "curl":
        cmd = ["curl", "-L", "--fail"]
        if offset:
            cmd.extend(["-C", str(offset)])
        cmd.extend([url, "-o", str(destination)])
        return cmd
    raise ValueError(f"Unsupported transfer tool: {tool}")


def fetch_image(
    source: ImageSource,
    destination: Path,
    runner: Callable = run,
    lookup: Callable[[str], Optional[str]] = which,
) -> FetchResult:
    """Make sure ``destination`` holds the image, trying each URL of ``source`` in order.

    An existing file is accepted as-is, so a file placed there by hand satisfies
    the next run. Bytes are written to a ``.part`` sibling that is renamed only
    after a transfer succeeds; it is never removed, so an interrupted or failed
    run resumes from its current length.
    """
    if destination.exists():
        log("SUCCESS", f"ISO already downloaded: {destination.name}")
        return FetchResult(path=destination, cached=True)

    tool = select_transfer_tool(lookup)
    ensure_directory(destination.parent)
    partial = partial_path(destination)
    state = DownloadState(partial)
    attempts: List[FetchAttempt] = []

    log("INFO", f"Downloading {source.name} ISO with {tool}")
    log("WARN", "This may take a while (1.5-2GB download)...")
    start_time = time.time()
    for index, url in enumerate(source.urls):
        if index == 1:
            log("WARN", "Primary mirror failed. Trying alternative mirrors...")
        offset = state.offset
        if offset:
            log("INFO", f"Resuming from {offset / (1024 * 1024):.1f} MiB")
            if attempts:
                # Mirrors are assumed to serve identical bytes for the same file name.
                log("DEBUG", f"Partial data came from {attempts[-1].url}; continuing from {url}")
        log("INFO", f"Trying: {url}")
        cmd = build_transfer_command(tool, url, partial, offset)
        try:
            result = runner(cmd, check=False)
            returncode = result.returncode
        except OSError as exc:
            log("WARN", f"Could not run {tool}: {exc}")
            returncode = -1
        attempts.append(FetchAttempt(url=url, offset=offset, returncode=returncode))
        if returncode == 0:
            elapsed = time.time() - start_time
            final_mb = state.offset / (1024 * 1024)
            partial.replace(destination)
            log("SUCCESS", f"ISO downloaded successfully ({final_mb:.1f} MiB in {elapsed:.1f}s)")
            return FetchResult(path=destination, url=url, attempts=attempts)
        log("WARN", f"Download from {url} failed (exit status {returncode})")

    kept = f"; partial file kept at {partial}" if state.offset else ""
    raise AllSourcesExhausted(
        f"All download attempts failed for {source.filename}{kept}",
        f"You can manually download the ISO and place it in: {destination.parent} (as {destination.name})",
        attempts=attempts,
    )
