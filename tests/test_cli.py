"""Tests for the acctl command line."""

from pathlib import Path

from click.testing import CliRunner

from access_controller.cli import cli

GRANT_YAML = """\
kind: Grant
name: sales-readers
dataSource: ds-warehouse
---
kind: GlobalRoleAssignment
role: Admin
user: u-1
"""


class TestValidateCommand:
    """Tests for acctl validate."""

    def test_valid_directory(self, tmp_path: Path) -> None:
        (tmp_path / "access.yaml").write_text(GRANT_YAML)

        result = CliRunner().invoke(cli, ["validate", str(tmp_path)])

        assert result.exit_code == 0
        assert "sales-readers" in result.output
        assert "2 declarations valid (1 GlobalRoleAssignment, 1 Grant)" in result.output

    def test_invalid_directory(self, tmp_path: Path) -> None:
        (tmp_path / "access.yaml").write_text("kind: Policy\nname: x\n")

        result = CliRunner().invoke(cli, ["validate", str(tmp_path)])

        assert result.exit_code == 1
        assert "Unknown kind" in result.output


class TestIdCommands:
    """Tests for acctl id."""

    def test_encode(self) -> None:
        result = CliRunner().invoke(cli, ["id", "encode", "Admin", "u-1"])

        assert result.exit_code == 0
        assert result.output.strip() == "Admin#u-1"

    def test_encode_rejects_separator(self) -> None:
        result = CliRunner().invoke(cli, ["id", "encode", "Ad#min", "u-1"])

        assert result.exit_code == 1
        assert "must not contain" in result.output

    def test_decode(self) -> None:
        result = CliRunner().invoke(cli, ["id", "decode", "Admin#u#1"])

        assert result.exit_code == 0
        assert "role:    Admin" in result.output
        assert "role_id: AdminRole" in result.output
        assert "user:    u#1" in result.output

    def test_decode_invalid(self) -> None:
        result = CliRunner().invoke(cli, ["id", "decode", "Admin"])

        assert result.exit_code == 1
        assert "invalid role assignment id" in result.output
