import os

import pytest

from rvemu import log
from rvemu.log import Level


@pytest.fixture(autouse=True)
def fresh_threshold(monkeypatch):
    monkeypatch.setattr(log, "_threshold", None)


def test_level_names(capsys):
    assert [lvl.as_str() for lvl in Level] == ["OFF", "TRACE", "DEBUG", "WARN", "ERROR"]
    log.log_init(Level.OFF)
    for lvl in (Level.TRACE, Level.DEBUG, Level.WARN, Level.ERROR):
        log.log(lvl, "message")
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 4
    for line, name in zip(lines, ["TRACE", "DEBUG", "WARN", "ERROR"]):
        assert name in line


def test_levels_ordered(capsys):
    log.log_init(Level.DEBUG)
    log.log(Level.TRACE, "below")
    log.log(Level.DEBUG, "equal")
    log.log(Level.WARN, "above")
    out = capsys.readouterr().out
    assert "below" not in out
    assert "equal" not in out
    assert "above" in out
    assert Level.OFF < Level.TRACE < log.get_threshold() < Level.WARN < Level.ERROR


def test_uninitialised_threshold_raises():
    with pytest.raises(RuntimeError):
        log.get_threshold()


def test_init_once():
    log.log_init(Level.DEBUG)
    assert log.get_threshold() is Level.DEBUG
    with pytest.raises(RuntimeError):
        log.log_init(Level.TRACE)
    assert log.get_threshold() is Level.DEBUG


def test_uninitialised_logging_is_silent(capsys):
    log.error("nothing here")
    assert capsys.readouterr().out == ""


def test_levels_above_threshold_are_printed(capsys):
    log.log_init(Level.TRACE)
    log.log(Level.TRACE, "hidden message")
    log.debug("shown message")
    out = capsys.readouterr().out
    assert "hidden message" not in out
    assert "shown message" in out
    assert "DEBUG" in out
    assert out.endswith(log.RESET + "\n")
    assert os.path.basename(__file__) in out


def test_formatting_with_args(capsys):
    log.log_init(Level.OFF)
    log.warn("n={}", 7)
    out = capsys.readouterr().out
    assert "n=7" in out
    assert out.startswith(log.YELLOW + "WARN")


def test_error_threshold_suppresses_everything(capsys):
    log.log_init(Level.ERROR)
    log.error("suppressed")
    log.log(Level.WARN, "also suppressed")
    assert capsys.readouterr().out == ""