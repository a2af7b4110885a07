"""Tests for the command-line interface."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from mailtriage.cli import cli
from mailtriage.core.errors import DatabaseError


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run commands from a temp dir so the relative database path lands there."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestValidateConfig:
    def test_valid_file(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(cli, ["validate-config", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "Configuration valid" in result.output

    def test_invalid_file(self, runner: CliRunner, temp_config_dir: Path) -> None:
        path = temp_config_dir / "bad.yaml"
        path.write_text("retry:\n  cooldown_hours: -1\n")

        result = runner.invoke(cli, ["validate-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "Validation error" in result.output

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["validate-config", "-c", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Load error" in result.output


@pytest.mark.usefixtures("workdir", "set_config_env")
class TestJobCommands:
    """Manual job runs against a fresh database."""

    def test_reassess_all_users(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["reassess"])

        assert result.exit_code == 0
        assert '"success": true' in result.output
        assert '"users_processed": 0' in result.output
        assert (workdir / "data" / "test.db").exists()

    def test_reassess_single_user(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["reassess", "--user-id", "user-9"])

        assert result.exit_code == 0
        assert '"user_id": "user-9"' in result.output
        assert '"actions_processed": 0' in result.output

    def test_reassess_user_list_failure_exits_1(self, runner: CliRunner) -> None:
        with patch(
            "mailtriage.db.store.DatabaseStore.get_onboarded_user_ids",
            AsyncMock(side_effect=DatabaseError("database is locked")),
        ):
            result = runner.invoke(cli, ["reassess"])

        assert result.exit_code == 1
        assert '"success": false' in result.output
        assert "Failed to list users: database is locked" in result.output

    def test_retry_failed_with_nothing_to_do(self, runner: CliRunner) -> None:
        with (
            patch("anthropic.AsyncAnthropic", MagicMock()),
            patch("mailtriage.classifier.claude_analyzer.ClaudeAnalyzer") as analyzer_cls,
        ):
            analyzer_cls.return_value.analyze = AsyncMock()
            result = runner.invoke(cli, ["retry-failed"])

        assert result.exit_code == 0
        assert '"emails_found": 0' in result.output
        analyzer_cls.return_value.analyze.assert_not_awaited()


class TestConfigErrors:
    def test_broken_config_exits_1(
        self,
        runner: CliRunner,
        temp_config_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = temp_config_dir / "config.yaml"
        path.write_text("scoring: [not, a, mapping]\n")
        monkeypatch.setenv("MAILTRIAGE_CONFIG_PATH", str(path))

        result = runner.invoke(cli, ["reassess"])

        assert result.exit_code == 1
        assert "Config error" in result.output
