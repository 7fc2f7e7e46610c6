from __future__ import annotations

import importlib
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pipeline_dashboard.errors import TransportError
from pipeline_dashboard.models import PipelineSummary, StageStatus

cli_module = importlib.import_module("pipeline_dashboard.cli")

_RESPONSES = {
    "/pipelines": [{"name": "web"}, {"name": "api"}],
    "/pipeline/web": {
        "commitMessage": "bump deps",
        "stageStates": [
            {"actionStates": [{"actionName": "build", "latestExecution": {"status": "Succeeded", "lastStatusChange": 1000}}]}
        ],
    },
    "/pipeline/api": {
        "commitMessage": "add route",
        "stageStates": [
            {"actionStates": [{"actionName": "test", "latestExecution": {"status": "Failed", "lastStatusChange": 5000}}]}
        ],
    },
}


class _FakeTransport:
    responses = _RESPONSES

    def __init__(self, base_url: str, *, timeout_s: float = 20.0, session=None) -> None:
        self.base_url = base_url

    async def get_json(self, path: str):
        value = self.responses[path]
        if isinstance(value, Exception):
            raise value
        return value

    def close(self) -> None:
        return None


@pytest.fixture()
def runner(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli_module, "RequestsTransport", _FakeTransport)
    return CliRunner()


def _log_events(tmp_path: Path) -> list[dict]:
    lines: list[dict] = []
    for path in sorted((tmp_path / "logs").glob("dashboard-*.jsonl")):
        lines.extend(json.loads(line) for line in path.read_text(encoding="utf-8").splitlines())
    return lines


def test_snapshot_prints_pipelines_most_recent_first(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli_module.app, ["snapshot", "--query", "?static"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [p["name"] for p in payload] == ["api", "web"]
    assert payload[0]["stages"][0]["latestStatus"] == "failed"

    events = [e["event"] for e in _log_events(tmp_path)]
    assert events[0] == "command_start"
    assert "refresh_published" in events
    assert events[-1] == "run_summary"


def test_watch_static_prints_one_refresh(runner: CliRunner) -> None:
    result = runner.invoke(cli_module.app, ["watch", "--query", "?static"])

    assert result.exit_code == 0, result.output
    assert "--- refresh 1" in result.output
    assert "api" in result.output and "web" in result.output


def test_snapshot_exits_nonzero_when_list_fails(
    runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    broken = dict(_RESPONSES, **{"/pipelines": TransportError("/pipelines", ConnectionError("refused"))})
    monkeypatch.setattr(_FakeTransport, "responses", broken)

    result = runner.invoke(cli_module.app, ["snapshot"])

    assert result.exit_code == 1


def test_detail_prints_one_pipeline(runner: CliRunner) -> None:
    result = runner.invoke(cli_module.app, ["detail", "web"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["name"] == "web"
    assert payload["commitMessage"] == "bump deps"


def test_format_pipeline_line() -> None:
    ok = PipelineSummary(
        name="web",
        stages=(
            StageStatus(name="build", latest_status="succeeded", last_status_change=0),
            StageStatus(name="deploy"),
        ),
    )
    assert cli_module.format_pipeline_line(ok, now_ms=120_000).split() == [
        "web",
        "ok",
        "(2m",
        "ago)",
        "build:succeeded",
        "deploy:unknown",
    ]

    failed = PipelineSummary.failed("api", RuntimeError("boom"))
    assert "ERROR" in cli_module.format_pipeline_line(failed)
    assert "RuntimeError: boom" in cli_module.format_pipeline_line(failed)
