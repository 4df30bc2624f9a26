from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from deployhook.config import parse_config
from deployhook.dev.send_push import build_push_headers
from deployhook.dev.send_push import build_push_payload
from deployhook.main import build_app
from deployhook.main import main
from tests.fakes import FakeRunner

FETCH = ("git", "fetch", "origin")
CHECKOUT = ("git", "checkout", "main")
REBASE = ("git", "rebase", "origin/main")
SCRIPT = ("./deploy.sh",)


def _config(secret: str | None = None, **extra: object) -> dict[str, object]:
    hook: dict[str, object] = {
        "name": "repo",
        "repo_full_name": "org/repo",
        "route": "/hooks/repo",
        "checkout_dir": "/srv/repo",
        "script": "./deploy.sh",
        "branch": "main",
    }
    if secret is not None:
        hook["secret"] = secret
    return {"hooks": [hook], **extra}


def _push(branch: str = "main") -> bytes:
    return json.dumps(build_push_payload(repo_full_name="org/repo", branch=branch)).encode()


def test_scenario_a_unauthenticated_push_runs_full_pipeline(capsys: pytest.CaptureFixture[str]) -> None:
    runner = FakeRunner()
    app = build_app(parse_config(_config()), runner=runner)
    with TestClient(app) as client:
        response = client.post("/hooks/repo", content=_push())
        assert response.status_code == 200
        assert response.content == b""
    # 退出 lifespan 时 worker 已 drain 并 join
    assert runner.argvs() == [FETCH, CHECKOUT, REBASE, SCRIPT]
    assert app.state.worker.succeeded == 1
    assert app.state.worker.failed == 0
    assert ":+:--------" not in capsys.readouterr().err


def test_scenario_b_missing_signature_is_rejected() -> None:
    runner = FakeRunner()
    app = build_app(parse_config(_config(secret="s3cr3t")), runner=runner)
    with TestClient(app) as client:
        response = client.post("/hooks/repo", content=_push())
        assert response.status_code == 500
        assert app.state.event_queue.qsize() == 0
    assert runner.calls == []


def test_scenario_b_signed_push_is_accepted() -> None:
    runner = FakeRunner()
    app = build_app(parse_config(_config(secret="s3cr3t")), runner=runner)
    body = _push()
    with TestClient(app) as client:
        response = client.post("/hooks/repo", content=body, headers=build_push_headers(body=body, secret="s3cr3t"))
        assert response.status_code == 200
    assert len(runner.calls) == 4


def test_scenario_c_unconfigured_branch_is_routing_failure() -> None:
    runner = FakeRunner()
    app = build_app(parse_config(_config()), runner=runner)
    with TestClient(app) as client:
        response = client.post("/hooks/repo", content=_push(branch="feature-x"))
        assert response.status_code == 500
        assert "RoutingError" in response.json()["detail"]
    assert runner.calls == []


def test_scenario_d_rebase_failure_skips_script_and_next_job_runs(capsys: pytest.CaptureFixture[str]) -> None:
    runner = FakeRunner(outcomes={REBASE: 1})
    app = build_app(parse_config(_config()), runner=runner)
    with TestClient(app) as client:
        assert client.post("/hooks/repo", content=_push()).status_code == 200
        assert client.post("/hooks/repo", content=_push()).status_code == 200

    # 两个 job 都在 rebase 失败，脚本一次都没跑，worker 没有因为第一次失败而停下
    assert runner.argvs() == [FETCH, CHECKOUT, REBASE, FETCH, CHECKOUT, REBASE]
    assert app.state.worker.failed == 2

    err = capsys.readouterr().err
    assert err.count(":+:--------") == 6
    assert err.count("ERROR:|:rebasing onto latest changes") == 2
    assert "running deploy script" not in err


def test_flush_log_on_success(capsys: pytest.CaptureFixture[str]) -> None:
    app = build_app(parse_config(_config(flush_log_on_success=True)), runner=FakeRunner())
    with TestClient(app) as client:
        assert client.post("/hooks/repo", content=_push()).status_code == 200
    err = capsys.readouterr().err
    assert err.count(":+:--------") == 4
    assert "INFO:|:running deploy script" in err


def test_health_reports_worker_state() -> None:
    app = build_app(parse_config(_config()), runner=FakeRunner())
    with TestClient(app) as client:
        payload = client.get("/health").json()
    assert payload == {"status": "ok", "worker": "running", "queued": 0}
    assert not app.state.worker.is_alive


def test_push_after_shutdown_is_rejected() -> None:
    app = build_app(parse_config(_config()), runner=FakeRunner())
    with TestClient(app):
        pass
    client = TestClient(app)
    response = client.post("/hooks/repo", content=_push())
    assert response.status_code == 500
    assert "QueueClosedError" in response.json()["detail"]


def test_main_returns_1_on_bad_config(tmp_path: Path) -> None:
    path = tmp_path / "deployhook.toml"
    path.write_text("hooks = []\n", encoding="utf-8")
    assert main([str(path)]) == 1
    assert main([str(tmp_path / "missing.toml")]) == 1


def test_main_requires_config_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DEPLOYHOOK_CONFIG", raising=False)
    assert main([]) == 1
