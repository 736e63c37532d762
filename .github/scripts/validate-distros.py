#!/usr/bin/env python3
"""Validate vmharness/distros.yaml: schema correctness and ISO URL reachability."""

from __future__ import annotations

import re
import sys
from pathlib import Path

import requests
import yaml

DISTROS_PATH = Path(__file__).resolve().parents[2] / "vmharness" / "distros.yaml"
URL_RE = re.compile(r"^https?://")
REQUIRED_FIELDS = ("name", "iso", "url", "user")
REQUEST_TIMEOUT = 30
USER_AGENT = "compositor-vm-harness/distro-validator (GitHub Actions)"


def load_distros(path: Path) -> dict:
    with open(path) as f:
        return yaml.safe_load(f)


# ── Phase 1: Schema validation (fail-fast) ──────────────────────────


def validate_schema(data: dict) -> list[str]:
    errors: list[str] = []

    if not isinstance(data, dict) or "distributions" not in data:
        errors.append("Top-level 'distributions' key is missing")
        return errors

    distros = data["distributions"]
    if not isinstance(distros, dict) or not distros:
        errors.append("'distributions' must be a non-empty mapping")
        return errors

    for key, entry in distros.items():
        if not isinstance(entry, dict):
            errors.append(f"[{key}] entry is not a mapping")
            continue

        for name in REQUIRED_FIELDS:
            if name not in entry:
                errors.append(f"[{key}] missing required field '{name}'")
            elif not isinstance(entry[name], str):
                errors.append(f"[{key}] '{name}' must be a string")

        url = entry.get("url")
        if isinstance(url, str) and not URL_RE.match(url):
            errors.append(f"[{key}] 'url' must start with http:// or https://")

        iso = entry.get("iso")
        if isinstance(iso, str) and isinstance(url, str) and not url.endswith("/" + iso):
            errors.append(f"[{key}] 'url' does not point at '{iso}'")

        mirrors = entry.get("mirrors", [])
        if not isinstance(mirrors, list):
            errors.append(f"[{key}] 'mirrors' must be a list")
            continue
        for idx, mirror in enumerate(mirrors):
            if not isinstance(mirror, str) or not URL_RE.match(mirror):
                errors.append(f"[{key}] mirrors[{idx}] must be an http(s) URL")
            elif isinstance(iso, str) and not mirror.endswith("/" + iso):
                # every source of a profile must serve the same file name
                errors.append(f"[{key}] mirrors[{idx}] does not point at '{iso}'")

    return errors


# ── Phase 2: URL reachability (collect-all) ──────────────────────────


def check_url(key: str, url: str) -> str | None:
    """Return an error string if the URL is unreachable, else None."""
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT

    try:
        resp = session.head(url, timeout=REQUEST_TIMEOUT, allow_redirects=True)
        if resp.status_code < 400:
            return None
        # Some mirrors reject HEAD; fall back to GET with streaming
        if resp.status_code in (403, 405):
            resp = session.get(url, timeout=REQUEST_TIMEOUT, allow_redirects=True, stream=True)
            resp.close()
            if resp.status_code < 400:
                return None
        return f"[{key}] HTTP {resp.status_code} for {url}"
    except requests.RequestException as exc:
        return f"[{key}] {exc.__class__.__name__}: {exc} for {url}"


def validate_urls(data: dict) -> list[str]:
    """Check every source of every profile; a profile fails only if no source answers."""
    errors: list[str] = []

    for key, entry in data["distributions"].items():
        urls = [entry["url"]] + list(entry.get("mirrors", []))
        failures = [err for err in (check_url(key, url) for url in urls) if err]
        if len(failures) == len(urls):
            errors.extend(failures)
        else:
            for err in failures:
                print(f"  WARN: {err}")

    return errors


# ── Main ─────────────────────────────────────────────────────────────


def main() -> int:
    print(f"Loading {DISTROS_PATH}")
    data = load_distros(DISTROS_PATH)

    # Phase 1
    print("\n=== Phase 1: Schema validation ===")
    schema_errors = validate_schema(data)
    if schema_errors:
        for e in schema_errors:
            print(f"  ERROR: {e}")
        print(f"\nSchema validation failed with {len(schema_errors)} error(s)")
        return 1
    distro_count = len(data["distributions"])
    print(f"  OK: {distro_count} distributions, all schemas valid")

    # Phase 2
    print("\n=== Phase 2: URL reachability ===")
    url_errors = validate_urls(data)
    if url_errors:
        for e in url_errors:
            print(f"  ERROR: {e}")
        print("\nURL validation failed: at least one distribution has no reachable source")
        return 1
    print("  OK: every distribution has a reachable source")

    print("\nAll checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
