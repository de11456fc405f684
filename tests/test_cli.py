"""Tests for the shardmatrix CLI commands."""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from shardmatrix import __version__
from shardmatrix.cli import cli
from tests.conftest import SAMPLE_CONFIG, write_config

if TYPE_CHECKING:
    from pathlib import Path

_CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "CIRCLECI")
_INPUT_ENV_VARS = ("TEST_SHARD", "CHANGED_FILES", "FILTER_SHARDS", "ALL_PLATFORMS")


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner(env=dict.fromkeys(_CI_ENV_VARS + _INPUT_ENV_VARS))


def test_version(runner: CliRunner) -> None:
    """Test --version prints the package version."""
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert f"shardmatrix, version {__version__}" in result.output


class TestResolve:
    def test_shard(self, runner: CliRunner, project: Path) -> None:
        """Test resolving a single shard prints its run config."""
        result = runner.invoke(cli, ["resolve", "--path", str(project), "--shard", "util"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["test_match"] == [
            "<rootDir>/lib/util/**/*.spec.ts",
            "!**/lib/util/git/index.spec.ts",
        ]
        assert data["collect_coverage_from"][:2] == ["lib/util/**/*.ts", "!lib/util/git/index.ts"]
        assert data["coverage_threshold"]["branches"] == 98.0
        assert data["coverage_directory"] == "./coverage/shard/util"

    def test_shard_from_env(self, runner: CliRunner, project: Path) -> None:
        """Test TEST_SHARD selects the shard."""
        result = runner.invoke(
            cli, ["resolve", "--path", str(project)], env={"TEST_SHARD": "git-1"}
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["coverage_threshold"]["functions"] == 97.55

    def test_fallback_prints_defaults(self, runner: CliRunner, project: Path) -> None:
        """Test that no shard prints the configured defaults."""
        result = runner.invoke(cli, ["resolve", "--path", str(project)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["test_match"] == SAMPLE_CONFIG["defaults"]["test_match"]
        assert data["collect_coverage_from"] == SAMPLE_CONFIG["defaults"]["collect_coverage_from"]
        assert data["coverage_directory"] == "./coverage"

    def test_unknown_shard(self, runner: CliRunner, project: Path) -> None:
        """Test an unknown shard exits non-zero and lists valid names."""
        result = runner.invoke(cli, ["resolve", "--path", str(project), "--shard", "nope"])

        assert result.exit_code != 0
        assert "Unknown shard: nope" in result.output
        assert "git-1, util, other" in result.output

    def test_invalid_shard_configuration(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test invalid shard definitions abort before resolving."""
        write_config(tmp_path, {"shards": {"a": {"match_paths": []}}})

        result = runner.invoke(cli, ["resolve", "--path", str(tmp_path), "--shard", "a"])

        assert result.exit_code != 0
        assert "Invalid shard configuration" in result.output


    @pytest.mark.parametrize(
        "threshold", [{"branch": 90}, {"branches": 150}], ids=["misspelled", "out-of-range"]
    )
    def test_invalid_defaults_threshold(
        self, runner: CliRunner, tmp_path: Path, threshold: dict[str, int]
    ) -> None:
        """Test an invalid default threshold aborts with a configuration error."""
        write_config(
            tmp_path,
            {"defaults": {"coverage_threshold": threshold}, "shards": {"a": ["lib"]}},
        )

        result = runner.invoke(cli, ["resolve", "--path", str(tmp_path), "--shard", "a"])

        assert result.exit_code == 1
        assert not isinstance(result.exception, TypeError)
        assert "Invalid defaults configuration" in result.output

class TestSelect:
    def test_files_argument(self, runner: CliRunner, project: Path) -> None:
        """Test changed files given as arguments."""
        result = runner.invoke(
            cli,
            ["select", "--path", str(project), "lib/util/http.ts", "lib/util/git/index.ts"],
        )

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["git-1", "util"]

    def test_changed_files_json(self, runner: CliRunner, project: Path) -> None:
        """Test CHANGED_FILES with JSON output."""
        result = runner.invoke(
            cli,
            ["select", "--path", str(project), "--json-output"],
            env={"CHANGED_FILES": '["lib/config/index.ts", "README.md"]'},
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == ["other"]

    def test_nothing_changed(self, runner: CliRunner, project: Path) -> None:
        """Test that no changed files select nothing."""
        result = runner.invoke(cli, ["select", "--path", str(project), "--json-output"])

        assert result.exit_code == 0
        assert json.loads(result.output) == []

    def test_malformed_changed_files(self, runner: CliRunner, project: Path) -> None:
        """Test malformed changed-file input is rejected."""
        result = runner.invoke(
            cli, ["select", "--path", str(project), "--changed-files", "lib/util/a.ts"]
        )

        assert result.exit_code != 0
        assert "must be a JSON array" in result.output

    def test_explain(self, runner: CliRunner, project: Path) -> None:
        """Test --explain shows the attribution table."""
        result = runner.invoke(
            cli, ["select", "--path", str(project), "--explain", "README.md", "lib/util/a.ts"]
        )

        assert result.exit_code == 0
        assert "Changed Files" in result.output
        assert "<no shard>" in result.output


class TestSchedule:
    def test_all_shards(self, runner: CliRunner, project: Path) -> None:
        """Test scheduling every shard on the primary platform."""
        result = runner.invoke(cli, ["schedule", "--path", str(project)])

        assert result.exit_code == 0, result.output
        matrix_line, coverage_line = result.output.splitlines()
        matrix = json.loads(matrix_line.removeprefix("test-shard-matrix="))
        assert [g["name"] for g in matrix] == ["test (1/2)", "test (2/2)"]
        assert [g["shards"] for g in matrix] == ["git-1 util", "other"]
        assert all(g["os"] == "ubuntu-latest" and g["coverage"] for g in matrix)
        assert coverage_line == (
            "test-coverage-files=./coverage-reports/git-1.json,"
            "./coverage-reports/util.json,./coverage-reports/other.json"
        )

    def test_all_platforms(self, runner: CliRunner, project: Path) -> None:
        """Test ALL_PLATFORMS adds the secondary platforms."""
        result = runner.invoke(
            cli, ["schedule", "--path", str(project)], env={"ALL_PLATFORMS": "true"}
        )

        assert result.exit_code == 0, result.output
        matrix = json.loads(result.output.splitlines()[0].split("=", 1)[1])
        windows = [g for g in matrix if g["os"] == "windows-latest"]
        assert [g["name"] for g in windows] == ["test-windows (1/1)"]
        assert windows[0]["test-timeout-milliseconds"] == 240_000
        assert windows[0]["coverage"] is False

    def test_filtered(self, runner: CliRunner, project: Path) -> None:
        """Test filtering shards by changed files."""
        result = runner.invoke(
            cli,
            ["schedule", "--path", str(project), "--filter-shards"],
            env={"CHANGED_FILES": '["lib/util/git/index.ts"]'},
        )

        assert result.exit_code == 0, result.output
        matrix_line, coverage_line = result.output.splitlines()
        assert json.loads(matrix_line.split("=", 1)[1])[0]["shards"] == "git-1"
        assert coverage_line == "test-coverage-files=./coverage-reports/git-1.json"

    def test_empty_signal(self, runner: CliRunner, project: Path) -> None:
        """Test the empty-matrix signal when nothing matches."""
        result = runner.invoke(
            cli,
            ["schedule", "--path", str(project)],
            env={"FILTER_SHARDS": "true", "CHANGED_FILES": '["README.md"]'},
        )

        assert result.exit_code == 0, result.output
        assert result.output == "test-matrix-empty=true\n"

    def test_changed_files_ignored_without_filter(self, runner: CliRunner, project: Path) -> None:
        """Test that changed files alone do not narrow the matrix."""
        result = runner.invoke(
            cli, ["schedule", "--path", str(project)], env={"CHANGED_FILES": '["README.md"]'}
        )

        assert result.exit_code == 0
        assert result.output.startswith("test-shard-matrix=")

    def test_malformed_changed_files(self, runner: CliRunner, project: Path) -> None:
        """Test malformed changed files abort the schedule."""
        result = runner.invoke(
            cli,
            ["schedule", "--path", str(project), "--filter-shards", "--changed-files", "{"],
        )

        assert result.exit_code != 0
        assert "test-shard-matrix" not in result.output

    def test_output_file(self, runner: CliRunner, project: Path, tmp_path: Path) -> None:
        """Test the output lines are appended to --output-file."""
        output = tmp_path / "github_output"
        output.write_text("existing=1\n", encoding="utf-8")

        result = runner.invoke(
            cli, ["schedule", "--path", str(project), "--output-file", str(output)]
        )

        assert result.exit_code == 0, result.output
        lines = output.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "existing=1"
        assert lines[1].startswith("test-shard-matrix=")
        assert lines[2].startswith("test-coverage-files=")

    def test_preview(self, runner: CliRunner, project: Path) -> None:
        """Test --preview renders a table instead of output lines."""
        result = runner.invoke(cli, ["schedule", "--path", str(project), "--preview"])

        assert result.exit_code == 0
        assert "Runner Matrix" in result.output
        assert "test-shard-matrix=" not in result.output

    def test_invalid_capacity(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test a platform with no instances aborts."""
        write_config(
            tmp_path,
            {"shards": {"a": ["lib"]}, "platforms": {"ubuntu-latest": {"max_instances": 0}}},
        )

        result = runner.invoke(cli, ["schedule", "--path", str(tmp_path)])

        assert result.exit_code != 0
        assert "Invalid platform configuration" in result.output


class TestShards:
    def test_lists_shards(self, runner: CliRunner, project: Path) -> None:
        """Test the shard table lists every shard."""
        result = runner.invoke(cli, ["shards", "--path", str(project)])

        assert result.exit_code == 0
        for name in ("git-1", "util", "other"):
            assert name in result.output

    def test_no_shards(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test a warning is shown when nothing is configured."""
        result = runner.invoke(cli, ["shards", "--path", str(tmp_path)])

        assert result.exit_code == 0
        assert "No shards configured" in result.output

    def test_invalid_defaults_threshold(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test a misspelled default threshold key aborts the shard listing."""
        write_config(
            tmp_path,
            {"defaults": {"coverage_threshold": {"branch": 90}}, "shards": {"a": ["lib"]}},
        )

        result = runner.invoke(cli, ["shards", "--path", str(tmp_path)])

        assert result.exit_code == 1
        assert "defaults.coverage_threshold.branch" in result.output


class TestHost:
    def test_json_ci(self, runner: CliRunner) -> None:
        """Test --ci sizes one worker per CPU."""
        result = runner.invoke(cli, ["--ci", "host", "--json-output"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["workers"]["max_workers"] == data["host"]["cpus"] == (os.cpu_count() or 1)
        assert data["workers"]["worker_idle_memory_limit"] == "1500MB"

    def test_json_local(self, runner: CliRunner) -> None:
        """Test local sizing leaves the worker count unset."""
        result = runner.invoke(cli, ["host", "--json-output"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["workers"]["max_workers"] is None
        assert data["workers"]["worker_idle_memory_limit"] == "500MB"

    def test_detected_ci(self, runner: CliRunner) -> None:
        """Test a detected CI environment counts as CI mode."""
        result = runner.invoke(cli, ["host", "--json-output"], env={"GITHUB_ACTIONS": "true"})

        assert json.loads(result.output)["workers"]["worker_idle_memory_limit"] == "1500MB"

    def test_console(self, runner: CliRunner) -> None:
        """Test the human-readable host block."""
        result = runner.invoke(cli, ["host"])

        assert result.exit_code == 0
        assert "Host stats:" in result.output
        assert "Idle limit:  500MB" in result.output


class TestConfigCommands:
    def test_show_json(self, runner: CliRunner, project: Path) -> None:
        """Test config show --json-output."""
        result = runner.invoke(cli, ["config", "show", "--path", str(project), "--json-output"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert list(data["shards"]) == ["git-1", "util", "other"]
        assert data["shards"]["other"] == {"match_paths": ["lib"], "threshold": {}}
        assert data["platforms"]["windows-latest"]["runner_timeout_minutes"] == 20
        assert data["suffixes"] == {"test": ".spec.ts", "source": ".ts"}

    def test_show_yaml(self, runner: CliRunner, project: Path) -> None:
        """Test config show renders YAML."""
        result = runner.invoke(cli, ["config", "show", "--path", str(project)])

        assert result.exit_code == 0
        assert "Configuration:" in result.output
        assert "git-1:" in result.output

    def test_validate_ok(self, runner: CliRunner, project: Path) -> None:
        """Test a valid configuration passes."""
        result = runner.invoke(cli, ["config", "validate", "--path", str(project)])

        assert result.exit_code == 0
        assert "Configuration is valid!" in result.output

    def test_validate_errors(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test validation errors are listed and exit non-zero."""
        write_config(
            tmp_path,
            {
                "shards": {"a": {"match_paths": ["lib/x.ts"]}},
                "platforms": {"ubuntu-latest": 0},
            },
        )

        result = runner.invoke(cli, ["config", "validate", "--path", str(tmp_path)])

        assert result.exit_code != 0
        assert "Found 2 configuration error(s)" in result.output
        assert "max_instances must be >= 1" in result.output
