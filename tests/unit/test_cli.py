"""Unit tests for the command line interface (mock mode)."""

import json

from typer.testing import CliRunner

from stepwise import __version__
from stepwise.cli.main import app

runner = CliRunner()


class TestCli:
    """CLI commands without an API key."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_classify(self, mock_settings) -> None:
        result = runner.invoke(app, ["classify", "Write the quarterly report"])

        assert result.exit_code == 0
        assert "180" in result.stdout
        assert "hours" in result.stdout

    def test_breakdown_writes_json(self, mock_settings, tmp_path) -> None:
        output = tmp_path / "breakdown.json"

        result = runner.invoke(app, ["breakdown", "Clean the kitchen", "--deferred", "-o", str(output)])

        assert result.exit_code == 0
        assert "Execute the first main step" in result.stdout
        data = json.loads(output.read_text())
        assert data["mode"] == "deferred"
        assert data["usedFallback"] is True
        assert len(data["steps"]) == 5

    def test_stream(self, mock_settings) -> None:
        result = runner.invoke(app, ["stream", "Clean the kitchen"])

        assert result.exit_code == 0
        assert "Done:" in result.stdout
        assert "5 steps, 45 min" in result.stdout
