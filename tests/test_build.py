"""Tests for vmharness.build module."""

from __future__ import annotations

import os
from datetime import datetime

import pytest

from vmharness.build import check_freshness, ensure_fresh_build
from vmharness.exceptions import BuildFailed
from vmharness.models import Freshness


def _touch(path, when: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    os.utime(path, (when, when))


def _ts(hh: int, mm: int) -> float:
    return datetime(2026, 1, 5, hh, mm).timestamp()


class TestCheckFreshness:
    def test_missing_artifact(self, tmp_path):
        _touch(tmp_path / "Cargo.toml", _ts(10, 0))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin") is Freshness.MISSING

    def test_descriptor_newer_is_stale(self, tmp_path):
        _touch(tmp_path / "Cargo.toml", _ts(10, 5))
        _touch(tmp_path / "bin", _ts(10, 0))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin") is Freshness.STALE

    def test_artifact_newer_is_fresh(self, tmp_path):
        _touch(tmp_path / "Cargo.toml", _ts(10, 0))
        _touch(tmp_path / "bin", _ts(10, 5))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin") is Freshness.FRESH

    def test_equal_timestamps_are_fresh(self, tmp_path):
        _touch(tmp_path / "Cargo.toml", _ts(10, 0))
        _touch(tmp_path / "bin", _ts(10, 0))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin") is Freshness.FRESH

    def test_missing_descriptor_with_artifact_is_fresh(self, tmp_path):
        _touch(tmp_path / "bin", _ts(10, 0))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin") is Freshness.FRESH

    @pytest.mark.parametrize(
        "descriptor_min, artifact_min, expected",
        [
            (0, 1, False),
            (1, 0, True),
            (30, 30, False),
            (59, 0, True),
            (0, 59, False),
        ],
    )
    def test_rebuild_iff_descriptor_strictly_newer(self, tmp_path, descriptor_min, artifact_min, expected):
        _touch(tmp_path / "Cargo.toml", _ts(10, descriptor_min))
        _touch(tmp_path / "bin", _ts(10, artifact_min))
        assert check_freshness(tmp_path / "Cargo.toml", tmp_path / "bin").needs_rebuild is expected


class TestEnsureFreshBuild:
    def test_fresh_runs_nothing(self, default_config, fake_runner):
        _touch(default_config.build_descriptor, _ts(10, 0))
        _touch(default_config.artifact_path, _ts(10, 5))
        runner = fake_runner()
        assert ensure_fresh_build(default_config, runner=runner) is Freshness.FRESH
        assert runner.calls == []

    def test_stale_rebuilds_once_in_project_root(self, default_config, fake_runner, capsys):
        _touch(default_config.build_descriptor, _ts(10, 5))
        _touch(default_config.artifact_path, _ts(10, 0))
        runner = fake_runner(codes={"cargo": [0]})
        assert ensure_fresh_build(default_config, runner=runner) is Freshness.STALE
        assert runner.calls == [["cargo", "build", "--release"]]
        assert runner.kwargs[0]["cwd"] == str(default_config.project_root)
        assert "source changed" in capsys.readouterr().out

    def test_missing_rebuilds_with_distinct_message(self, default_config, fake_runner, capsys):
        _touch(default_config.build_descriptor, _ts(10, 0))

        def runner(cmd, check=True, **kwargs):
            _touch(default_config.artifact_path, _ts(10, 1))
            return fake_runner()(cmd, check, **kwargs)

        assert ensure_fresh_build(default_config, runner=runner) is Freshness.MISSING
        out = capsys.readouterr().out
        assert "Compositor not found" in out
        assert "source changed" not in out

    def test_stale_build_failure_is_fatal(self, default_config, fake_runner):
        _touch(default_config.build_descriptor, _ts(10, 5))
        _touch(default_config.artifact_path, _ts(10, 0))
        runner = fake_runner(codes={"cargo": [101]})
        with pytest.raises(BuildFailed, match="exited with status 101") as exc:
            ensure_fresh_build(default_config, runner=runner)
        assert len(runner.calls) == 1
        assert "cargo build --release" in exc.value.remediation

    def test_missing_build_tool_is_fatal(self, default_config):
        def runner(cmd, check=True, **kwargs):
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

        with pytest.raises(BuildFailed, match="Could not run build command"):
            ensure_fresh_build(default_config, runner=runner)

    def test_build_without_output_is_fatal(self, default_config, fake_runner):
        runner = fake_runner(codes={"cargo": [0]})
        with pytest.raises(BuildFailed, match="was not produced"):
            ensure_fresh_build(default_config, runner=runner)
