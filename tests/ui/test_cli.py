from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003
from typing import Any

import pytest

from suggestkit.ui import cli

_CONFIG_VARS = (
    "SUGGESTKIT_API_BASE_URL",
    "SUGGESTKIT_PROJECT_ID",
    "SUGGESTKIT_FAN_OUT",
    "SUGGESTKIT_ERROR_POLICY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, document: dict[str, Any]) -> Path:
    path = tmp_path / "batch.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def _batch(
    *, accepted: list[str] | None = None, use_case_module: str = "temp:m1"
) -> dict[str, Any]:
    return {
        "batchId": "cli-batch",
        "suggestions": [
            {
                "id": "A",
                "action": "create",
                "entityType": "module",
                "tempId": "m1",
                "payload": {"title": "Billing"},
            },
            {
                "id": "B",
                "action": "create",
                "entityType": "use_case",
                "payload": {"title": "Pay", "module": use_case_module},
            },
        ],
        "acceptedIds": accepted if accepted is not None else ["A", "B"],
    }


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return int(excinfo.value.code or 0)


def _stdout(capsys: pytest.CaptureFixture[str]) -> dict[str, Any]:
    return json.loads(capsys.readouterr().out)


def _sqlite_args(tmp_path: Path) -> list[str]:
    return ["--store", "sqlite", "--database-uri", f"sqlite+pysqlite:///{tmp_path / 'cli.db'}"]


def test_validate_prints_wave_plan(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["validate", str(path)])

    assert code == cli.EXIT_OK
    assert _stdout(capsys) == {
        "batchId": "cli-batch",
        "waves": [["A"], ["B"]],
        "blocked": [],
        "warnings": [],
    }


def test_apply_to_sqlite_store(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path), *_sqlite_args(tmp_path)])

    assert code == cli.EXIT_OK
    document = _stdout(capsys)
    assert document["code"] is None
    assert [item["suggestionId"] for item in document["applied"]] == ["A", "B"]
    assert document["rollbackAvailable"] is True
    assert document["mappings"][0]["tempId"] == "m1"


def test_partial_failure_exits_nonzero_and_can_roll_back(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    document = _batch(use_case_module="real:missing-module")
    path = _write(tmp_path, document)

    code = _run(["apply", str(path), *_sqlite_args(tmp_path), "--rollback-on-failure"])

    assert code == cli.EXIT_FAILED
    output = _stdout(capsys)
    assert output["code"] == "PARTIAL_SUCCESS"
    assert [item["suggestionId"] for item in output["failed"]] == ["B"]
    assert output["rollback"]["code"] is None
    assert [step["suggestionId"] for step in output["rollback"]["steps"]] == ["A"]


def test_dry_run_flag_overrides_submission(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path), *_sqlite_args(tmp_path), "--dry-run"])

    assert code == cli.EXIT_OK
    output = _stdout(capsys)
    assert output["dryRun"] is True
    assert output["rollbackAvailable"] is False
    assert output["applied"][0]["realId"] == "dry-run:m1"


def test_dry_run_against_rest_store_needs_no_backend_settings(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path), "--dry-run"])

    assert code == cli.EXIT_OK
    assert [item["realId"] for item in _stdout(capsys)["applied"]] == ["dry-run:m1", "dry-run:B"]


def test_rejected_batch_exits_invalid(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    document = _batch()
    document["suggestions"][0]["dependencies"] = ["B"]
    path = _write(tmp_path, document)

    code = _run(["apply", str(path), *_sqlite_args(tmp_path)])

    assert code == cli.EXIT_INVALID
    assert _stdout(capsys)["error"]["code"] == "DEPENDENCY_ERROR"


def test_unreadable_submission_exits_invalid(tmp_path: Path) -> None:
    code = _run(["validate", str(tmp_path / "missing.json")])

    assert code == cli.EXIT_INVALID


def test_invalid_fan_out_exits_invalid(tmp_path: Path) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path), *_sqlite_args(tmp_path), "--fan-out", "0"])

    assert code == cli.EXIT_INVALID


def test_rest_store_without_configuration_fails(tmp_path: Path) -> None:
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path)])

    assert code == cli.EXIT_FAILED


def test_apply_passes_overrides_to_app(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured: dict[str, Any] = {}

    class _Session:
        result = None
        rollback_available = False

    def fake_apply(submission: Any, **kwargs: Any) -> _Session:
        captured["submission"] = submission
        captured.update(kwargs)
        return _Session()

    monkeypatch.setattr(cli, "apply_suggestion_batch", fake_apply)
    monkeypatch.setattr(cli, "build_entity_store", lambda kind, database_uri=None: kind)
    path = _write(tmp_path, _batch())

    code = _run(["apply", str(path), "--error-policy", "stop-on-error", "--fan-out", "2"])

    # a session without a result is a fatal error
    assert code == cli.EXIT_FAILED
    assert captured["store"] == "rest"
    assert captured["fan_out"] == 2
    assert captured["submission"].options.error_policy.value == "stop-on-error"
