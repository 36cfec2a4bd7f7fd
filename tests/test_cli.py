"""Tests for the branchcov CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from branchcov.cli import EXIT_CODES, EXIT_RELEASE_BLOCKED, cli
from branchcov.errors import ConfigurationError, EmptyDimensionError

from .conftest import AUTH_ID, UNAUTH_ID


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BRANCHCOV_LEDGER_PATH", "BRANCHCOV_DEFAULT_STRATEGY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def model_path(checkout_model_path) -> str:
    return str(checkout_model_path)


@pytest.fixture
def ledger_path(tmp_path) -> str:
    return str(tmp_path / "ledger.jsonl")


def _write(path: Path, data) -> str:
    path.write_text(yaml.safe_dump(data) if path.suffix == ".yaml" else json.dumps(data))
    return str(path)


# ============================================================
# CLI Group Tests
# ============================================================


class TestCLIGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("generate", "record", "report", "impact", "replay"):
            assert command in result.output

    def test_exit_code_table(self):
        assert EXIT_CODES[ConfigurationError] == 2
        assert EXIT_CODES[EmptyDimensionError] == 3
        assert EXIT_RELEASE_BLOCKED == 10

    def test_invalid_settings_file(self, runner, tmp_path, model_path):
        config = _write(tmp_path / "settings.yaml", {"default_strategy": "random"})
        result = runner.invoke(cli, ["--config", config, "generate", model_path])
        assert result.exit_code == 2

    def test_settings_file_strategy(self, runner, tmp_path, model_path):
        config = _write(tmp_path / "settings.yaml", {"default_strategy": "pairwise"})
        result = runner.invoke(cli, ["--config", config, "generate", model_path, "-f", "json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["strategy"] == "pairwise"


# ============================================================
# Generate Command Tests
# ============================================================


class TestGenerateCommand:
    def test_json_output(self, runner, model_path):
        result = runner.invoke(cli, ["generate", model_path, "--format", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["strategy"] == "exhaustive"
        assert [s["context_key"] for s in data["scenarios"]][-1] == "auth_unauthenticated_credits_*"
        assert len(data["scenarios"]) == 4

    def test_text_output(self, runner, model_path):
        result = runner.invoke(cli, ["generate", model_path, "-s", "pairwise"])
        assert result.exit_code == 0, result.output
        assert "4 scenario(s)" in result.output

    def test_show_omitted(self, runner, tmp_path):
        path = _write(
            tmp_path / "browsers.yaml",
            {
                "dimensions": {
                    "browser": {"values": ["chrome", "firefox"]},
                    "locale": {"values": ["en", "de"]},
                }
            },
        )
        result = runner.invoke(
            cli, ["generate", path, "-s", "priority-bucketed", "--show-omitted"]
        )
        assert result.exit_code == 0, result.output
        assert "1 combination(s) omitted" in result.output
        assert "browser_firefox_locale_de" in result.output

    def test_partitions(self, runner, tmp_path, checkout_model):
        model = {
            **checkout_model,
            "dimensions": {
                **checkout_model["dimensions"],
                "browser": {"values": ["chrome", "firefox"]},
            },
        }
        path = _write(tmp_path / "model.json", model)
        result = runner.invoke(
            cli,
            ["generate", path, "-f", "json", "--partition", "auth,credits", "--partition", "browser"],
        )
        assert result.exit_code == 0, result.output
        assert len(json.loads(result.output)["scenarios"]) == 6

    def test_empty_dimension_exit_code(self, runner, tmp_path):
        path = _write(
            tmp_path / "empty.yaml",
            {"dimensions": {"auth": {"values": ["user"]}, "upload": {"values": []}}},
        )
        result = runner.invoke(cli, ["generate", path])
        assert result.exit_code == 3
        assert "E301" in result.output

    def test_invalid_model_exit_code(self, runner, tmp_path):
        path = _write(tmp_path / "bad.yaml", {"dimensions": {"auth": {"colour": "blue"}}})
        result = runner.invoke(cli, ["generate", path])
        assert result.exit_code == 2

    def test_missing_model_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["generate", str(tmp_path / "missing.yaml")])
        assert result.exit_code != 0


# ============================================================
# Record / Report Command Tests
# ============================================================


class TestRecordAndReport:
    def test_record_requires_ledger(self, runner, model_path):
        result = runner.invoke(cli, ["record", model_path, "passed", "--id", AUTH_ID])
        assert result.exit_code == 2
        assert "persisted ledger" in result.output

    def test_record_requires_target(self, runner, model_path, ledger_path):
        result = runner.invoke(cli, ["record", model_path, "passed", "--ledger", ledger_path])
        assert result.exit_code == 2

    def test_unknown_scenario_exit_code(self, runner, model_path, ledger_path):
        result = runner.invoke(
            cli,
            ["record", model_path, "passed", "--id", "auth=guest__credits=*", "--ledger", ledger_path],
        )
        assert result.exit_code == 4

    def test_invalid_status_rejected(self, runner, model_path, ledger_path):
        result = runner.invoke(
            cli, ["record", model_path, "flaky", "--id", AUTH_ID, "--ledger", ledger_path]
        )
        assert result.exit_code == 2

    def test_bad_trace_pair(self, runner, model_path, ledger_path):
        result = runner.invoke(
            cli, ["record", model_path, "passed", "--trace", "auth", "--ledger", ledger_path]
        )
        assert result.exit_code == 2

    def test_report_gate_flow(self, runner, model_path, ledger_path):
        blocked = runner.invoke(cli, ["report", model_path, "--ledger", ledger_path, "-f", "json"])
        assert blocked.exit_code == EXIT_RELEASE_BLOCKED
        assert json.loads(blocked.output)["release"]["pendingP0"] == [UNAUTH_ID]

        recorded = runner.invoke(
            cli,
            [
                "record",
                model_path,
                "passed",
                "--trace",
                "auth=unauthenticated",
                "--trace",
                "credits=exact",
                "--ledger",
                ledger_path,
            ],
        )
        assert recorded.exit_code == 0, recorded.output
        assert UNAUTH_ID in recorded.output

        ready = runner.invoke(cli, ["report", model_path, "--ledger", ledger_path, "-f", "json"])
        assert ready.exit_code == 0, ready.output
        data = json.loads(ready.output)
        assert data["release"]["blocking"] is False
        assert data["coverage"]["covered"] == 1

    def test_report_with_impacts(self, runner, tmp_path, model_path, ledger_path):
        runner.invoke(
            cli, ["record", model_path, "passed", "--id", UNAUTH_ID, "--ledger", ledger_path]
        )
        impacts = _write(
            tmp_path / "impacts.yaml",
            {"before": {"export": {"status": 200}}, "after": {}},
        )
        result = runner.invoke(
            cli,
            ["report", model_path, "--ledger", ledger_path, "--impacts", impacts, "-f", "markdown"],
        )
        assert result.exit_code == EXIT_RELEASE_BLOCKED
        assert "Breaking impact without migration note: export" in result.output

    def test_report_text(self, runner, model_path):
        result = runner.invoke(cli, ["report", model_path])
        assert result.exit_code == EXIT_RELEASE_BLOCKED
        assert "Release blocked:" in result.output
        assert f"P0 scenario pending: {UNAUTH_ID}" in result.output

    def test_report_output_file(self, runner, tmp_path, model_path):
        output = tmp_path / "reports" / "coverage.md"
        result = runner.invoke(
            cli, ["report", model_path, "-f", "markdown", "-o", str(output)]
        )
        assert result.exit_code == EXIT_RELEASE_BLOCKED
        assert output.read_text().startswith("# Coverage Report: checkout")

    def test_report_save_dir(self, runner, tmp_path, model_path):
        save_dir = tmp_path / "saved"
        result = runner.invoke(cli, ["report", model_path, "-f", "json", "--save", str(save_dir)])
        assert result.exit_code == EXIT_RELEASE_BLOCKED
        assert (save_dir / "checkout-coverage.md").exists()


# ============================================================
# Impact Command Tests
# ============================================================


class TestImpactCommand:
    @pytest.fixture
    def snapshots(self, tmp_path) -> tuple[str, str]:
        before = _write(
            tmp_path / "before.json",
            {"login": {"status": 200}, "legacy": {"status": 200}},
        )
        after = _write(tmp_path / "after.json", {"login": {"status": 201}, "signup": {"status": 201}})
        return before, after

    def test_breaking_without_note_blocks(self, runner, snapshots):
        result = runner.invoke(cli, ["impact", *snapshots, "-f", "json"])
        assert result.exit_code == EXIT_RELEASE_BLOCKED
        data = {r["feature_id"]: r["category"] for r in json.loads(result.output)}
        assert data == {"legacy": "breaking", "login": "changed", "signup": "new"}

    def test_note_resolves(self, runner, snapshots):
        result = runner.invoke(cli, ["impact", *snapshots, "--note", "legacy=Use /v2/legacy"])
        assert result.exit_code == 0, result.output

    def test_non_mapping_snapshot(self, runner, tmp_path):
        before = _write(tmp_path / "before.json", [1, 2])
        after = _write(tmp_path / "after.json", {})
        result = runner.invoke(cli, ["impact", before, after])
        assert result.exit_code == 2


# ============================================================
# Replay Command Tests
# ============================================================


class TestReplayCommand:
    def test_replay(self, runner, model_path, ledger_path):
        runner.invoke(cli, ["record", model_path, "failed", "--id", AUTH_ID, "--ledger", ledger_path])
        runner.invoke(cli, ["record", model_path, "passed", "--id", AUTH_ID, "--ledger", ledger_path])

        result = runner.invoke(cli, ["replay", ledger_path, "-f", "json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["events"] == 2
        assert data["deterministic"] is True
        assert data["state"][AUTH_ID] == {"status": "passed", "reason": None}

    def test_replay_text(self, runner, model_path, ledger_path):
        runner.invoke(cli, ["record", model_path, "passed", "--id", AUTH_ID, "--ledger", ledger_path])
        result = runner.invoke(cli, ["replay", ledger_path])
        assert result.exit_code == 0
        assert "deterministic" in result.output

    def test_corrupt_ledger(self, runner, tmp_path):
        path = tmp_path / "ledger.jsonl"
        path.write_text("not json\n")
        result = runner.invoke(cli, ["replay", str(path)])
        assert result.exit_code == 5


class TestImpactDiffOptions:
    @pytest.fixture
    def snapshots(self, tmp_path) -> tuple[str, str]:
        before = _write(tmp_path / "before.json", {"login": {"status": 200, "debug": {"host": "a"}}})
        after = _write(tmp_path / "after.json", {"login": {"status": 200}})
        return before, after

    def test_removed_key_blocks(self, runner, snapshots):
        result = runner.invoke(cli, ["impact", *snapshots, "-f", "json"])
        assert result.exit_code == EXIT_RELEASE_BLOCKED

    def test_ignore_option(self, runner, snapshots):
        result = runner.invoke(cli, ["impact", *snapshots, "--ignore", "debug", "-f", "json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)[0]["category"] == "none"

    def test_ignore_paths_from_settings_file(self, runner, tmp_path, snapshots):
        config = _write(tmp_path / "settings.yaml", {"impact_ignore_paths": ["debug"]})
        result = runner.invoke(cli, ["--config", config, "impact", *snapshots])
        assert result.exit_code == 0, result.output

    def test_ignore_order_flag(self, runner, tmp_path):
        before = _write(tmp_path / "b.json", {"roles": ["admin", "user"]})
        after = _write(tmp_path / "a.json", {"roles": ["user", "admin"]})
        result = runner.invoke(cli, ["impact", before, after, "--ignore-order", "-f", "json"])
        assert result.exit_code == 0
        assert json.loads(result.output)[0]["category"] == "none"
