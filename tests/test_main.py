"""Tests for the terminal front-end helpers."""

import pytest

from manimatic.main import _load_file, _parse_args, _show, format_error, main_async
from manimatic.models import ErrorKind, ErrorRecord, Phase
from manimatic.session import Session


def test_format_compile_error_lists_diagnostics():
    record = ErrorRecord(
        kind=ErrorKind.COMPILATION,
        message="SyntaxError",
        stdout="   ",
        stderr="File scene.py, line 1\n",
        line=1,
    )

    text = format_error(record)

    assert text.splitlines()[0] == "[compilation] SyntaxError"
    assert "  at line 1" in text
    assert "--- Standard Error ---" in text
    # Whitespace-only output has no section.
    assert "Standard Output" not in text


def test_format_plain_error():
    record = ErrorRecord(kind=ErrorKind.TIMEOUT, message="Generation timed out. Please try again.")
    assert format_error(record) == "[timeout] Generation timed out. Please try again."


def test_parse_args():
    args = _parse_args(["--base-url", "http://localhost:8080", "--prompt", "draw a circle", "--timeout", "45"])
    assert args.base_url == "http://localhost:8080"
    assert args.prompt == "draw a circle"
    assert args.timeout == 45.0
    assert args.model is None


@pytest.mark.asyncio
async def test_missing_base_url_exits_with_error(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MANIMATIC_API_BASE_URL", raising=False)

    code = await main_async(_parse_args([]))

    assert code == 1
    assert "Configuration error" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_load_file_seeds_the_session(tmp_path, config_factory, capsys):
    script_file = tmp_path / "scene.py"
    script_file.write_text("x = 1\n", encoding="utf-8")
    session = Session(config_factory())

    assert _load_file(session, str(script_file)) is True
    assert session.state.script == "x = 1\n"
    assert session.state.phase == Phase.SCRIPT_READY

    assert _load_file(session, str(tmp_path / "missing.py")) is False
    assert "Cannot read" in capsys.readouterr().out
    await session.close()


@pytest.mark.asyncio
async def test_show_reports_state_and_event_count(config_factory, capsys):
    session = Session(config_factory())
    session.load_script("x = 1")

    _show(session)

    out = capsys.readouterr().out
    assert "Phase: script_ready" in out
    assert "x = 1" in out
    assert "Events received: 0" in out
    await session.close()


def test_compilation_errors_are_not_transient():
    assert not ErrorRecord(kind=ErrorKind.COMPILATION, message="SyntaxError").is_transient
    assert ErrorRecord(kind=ErrorKind.TRANSPORT, message="offline").is_transient
