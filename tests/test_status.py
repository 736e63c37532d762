"""Tests for vmharness.status module."""

from vmharness.status import RunReport, WarningKind


class TestRunReport:
    def test_empty_report_renders_nothing(self, capsys):
        RunReport().render()
        assert capsys.readouterr().out == ""

    def test_add_logs_immediately(self, capsys):
        report = RunReport()
        report.add(WarningKind.ACCELERATION_UNAVAILABLE, "KVM missing", ["Enable virtualization in firmware"])
        out = capsys.readouterr().out
        assert "[WARN]" in out
        assert "KVM missing" in out
        assert report.has(WarningKind.ACCELERATION_UNAVAILABLE)
        assert not report.has(WarningKind.DEPLOY_UNREACHABLE)

    def test_render_lists_kinds_and_remediation(self, capsys):
        report = RunReport()
        report.add(WarningKind.DEPLOY_UNREACHABLE, "scp failed", ["Possible reasons:", "  - VM is not running"])
        report.add(WarningKind.PERMISSION_SET_FAILED, "chmod failed", [])
        capsys.readouterr()
        report.render()
        out = capsys.readouterr().out
        assert "Completed with 2 warning(s):" in out
        assert "DeployUnreachable: scp failed" in out
        assert "PermissionSetFailed: chmod failed" in out
        assert "    Possible reasons:" in out

    def test_remediation_is_copied(self):
        lines = ["do this"]
        warning = RunReport().add(WarningKind.DEPLOY_UNREACHABLE, "x", lines)
        lines.append("and that")
        assert warning.remediation == ["do this"]
