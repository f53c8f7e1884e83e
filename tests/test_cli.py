import json

import pytest

from jobboard import cli
from jobboard.signing import signed_edit_url


@pytest.fixture
def cli_env(monkeypatch, app_config):
    monkeypatch.setenv("APP_SECRET", app_config.app_secret)
    monkeypatch.setenv("APP_URL", app_config.url)
    monkeypatch.setenv("DATABASE_PATH", app_config.database_path)
    return app_config


def test_validate_config_ok(cli_env, capsys):
    assert cli.main(["validate-config"]) == 0
    assert "OK" in capsys.readouterr().out


def test_validate_config_reports_errors(monkeypatch, capsys):
    monkeypatch.delenv("APP_SECRET", raising=False)
    assert cli.main(["validate-config"]) == 1
    assert "APP_SECRET" in capsys.readouterr().err


def test_validate_config_with_file(tmp_path, capsys):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"app_secret": "x", "env": "test"}), encoding="utf-8")
    assert cli.main(["--config", str(p), "validate-config"]) == 0


def test_sweep_prints_counts(cli_env, make_job, capsys):
    make_job()
    assert cli.main(["sweep"]) == 0
    assert json.loads(capsys.readouterr().out) == {"jobs": 0, "roles": 0}


def test_sign_url_matches_emailed_link(cli_env, make_job, capsys):
    job = make_job()
    assert cli.main(["sign-url", "job", job.id]) == 0
    assert capsys.readouterr().out.strip() == signed_edit_url(job, cli_env.url, cli_env.app_secret)


def test_sign_url_unknown_listing(cli_env, capsys):
    assert cli.main(["sign-url", "role", "404"]) == 1
    assert "not found" in capsys.readouterr().err


def test_sign_url_rejects_unknown_kind(cli_env):
    with pytest.raises(SystemExit):
        cli.main(["sign-url", "widget", "1"])


def test_serve_runs_uvicorn_and_stops_sweeper(cli_env, monkeypatch):
    seen = {}

    def fake_run(app, **kwargs):
        seen["app"] = app
        seen.update(kwargs)

    controllers = []
    real_start = cli._sweeper.start

    def spy_start(cfg, store, **kwargs):
        controller = real_start(cfg, store, run_now=False)
        controllers.append(controller)
        return controller

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli._sweeper, "start", spy_start)

    assert cli.main(["serve"]) == 0
    assert seen["access_log"] is False
    assert seen["port"] == 8080
    [controller] = controllers
    assert not controller.scheduler.running
