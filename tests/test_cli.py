import logging

import pytest
from typer.testing import CliRunner

from relaymap import cli
from relaymap.errors import FetchError, GeoDatabaseError, WriteError
from relaymap.pipeline import RunResult
from relaymap.utils.logging import configure_logging, reset_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def detach_log_handler():
    yield
    reset_logging()


def fake_run_once(result=None, error=None, seen=None):
    def _run(settings):
        if seen is not None:
            seen.append(settings)
        if error is not None:
            raise error
        return result
    return _run


def test_defaults_need_no_arguments(monkeypatch, tmp_path):
    seen = []
    monkeypatch.setattr(cli, "run_once", fake_run_once(RunResult(relays=1, written=[tmp_path / "all.csv"]), seen=seen))
    result = runner.invoke(cli.app, [])

    assert result.exit_code == 0, result.output
    assert "Wrote" in result.output
    settings = seen[0]
    assert settings.render_map is True
    assert settings.render_html is False
    assert settings.page_size == 0


def test_options_and_env(monkeypatch, tmp_path):
    seen = []
    monkeypatch.setattr(cli, "run_once", fake_run_once(RunResult(relays=1), seen=seen))
    result = runner.invoke(
        cli.app,
        ["--page-size", "500", "--snap-radius", "4", "--no-map", "--html"],
        env={"RELAYMAP_OUTPUT_DIR": str(tmp_path), "RELAYMAP_GEOIP_DB": "/data/city.mmdb"},
    )

    assert result.exit_code == 0, result.output
    settings = seen[0]
    assert settings.output_dir == tmp_path
    assert str(settings.geoip_db) == "/data/city.mmdb"
    assert settings.page_size == 500
    assert settings.snap_radius == 4.0
    assert settings.render_map is False
    assert settings.render_html is False


def test_fetch_error_exits_1(monkeypatch):
    monkeypatch.setattr(cli, "run_once", fake_run_once(error=FetchError("retries exhausted")))
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 1
    assert "Fetch failed" in result.output


def test_write_error_exits_1(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "run_once", fake_run_once(error=WriteError(tmp_path / "all.csv", OSError("disk full"))))
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 1
    assert "all.csv" in result.output


def test_map_error_exits_2(monkeypatch):
    outcome = RunResult(relays=3, map_error=GeoDatabaseError("GeoIP database not found"))
    monkeypatch.setattr(cli, "run_once", fake_run_once(outcome))
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 2
    assert "Map not written" in result.output


def test_geometry_and_verbosity_from_env(monkeypatch):
    seen = []
    monkeypatch.setattr(cli, "run_once", fake_run_once(RunResult(relays=1), seen=seen))
    result = runner.invoke(
        cli.app,
        [],
        env={"RELAYMAP_WIDTH": "800", "RELAYMAP_HEIGHT": "400", "RELAYMAP_VERBOSE": "1"},
    )

    assert result.exit_code == 0, result.output
    assert (seen[0].width, seen[0].height) == (800, 400)
    assert logging.getLogger("relaymap").level == logging.DEBUG


def test_configure_logging_installs_one_handler():
    first = configure_logging()
    second = configure_logging(verbose=True)

    assert first is second
    assert logging.getLogger("relaymap").handlers.count(first) == 1
    reset_logging()
    assert first not in logging.getLogger("relaymap").handlers
