"""Module entry point: ``python -m vmharness``."""

from vmharness import cli

if __name__ == "__main__":
    raise SystemExit(cli.main())
