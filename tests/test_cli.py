"""Tests for the quire CLI running against the session file cache only."""

import json
import time

import pytest

from quire.cli.__main__ import build_parser, clean_text, main
from quire.config import get_settings


@pytest.fixture
def offline_env(tmp_path, monkeypatch):
    """Settings pointing at a temp cache dir with no Supabase configured."""
    monkeypatch.delenv("QUIRE_SUPABASE_URL", raising=False)
    monkeypatch.delenv("QUIRE_SUPABASE_KEY", raising=False)
    monkeypatch.setenv("QUIRE_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("QUIRE_DEBOUNCE_MS", "10")
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


def listed(capsys):
    assert run(["list", "--json"]) == 0
    return json.loads(capsys.readouterr().out)


def test_first_run_seeds_an_entry(offline_env, capsys):
    entries = listed(capsys)
    assert len(entries) == 1
    assert entries[0]["title"]
    assert (offline_env / "default.json").exists()


def test_new_title_body_and_delete(offline_env, capsys):
    listed(capsys)
    time.sleep(0.005)
    assert run(["new"]) == 0
    capsys.readouterr()

    entries = listed(capsys)
    newest = entries[0]["created_at"]
    assert len(entries) == 2

    assert run(["title", "Evening", "--entry", newest]) == 0
    assert run(["body", "Long day.", "--entry", newest]) == 0
    capsys.readouterr()

    assert run(["show", "--entry", newest, "--json"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert (shown["title"], shown["body"]) == ("Evening", "Long day.")

    assert run(["delete", newest]) == 0
    assert "Deleted" in capsys.readouterr().out
    assert newest not in [e["created_at"] for e in listed(capsys)]


def test_sessions_are_isolated(offline_env, capsys):
    listed(capsys)
    assert run(["--session", "other", "new"]) == 0
    capsys.readouterr()
    assert (offline_env / "other.json").exists()
    assert len(listed(capsys)) == 1


def test_sync_without_remote_reports(offline_env, capsys):
    assert run(["sync"]) == 0
    assert "remote" in capsys.readouterr().out


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_clean_text_strips_control_characters():
    assert clean_text("a\x00b\nc\td") == "ab\nc\td"


def test_long_title_is_accepted(offline_env, capsys):
    listed(capsys)
    title = "t" * 5000
    assert run(["title", title]) == 0
    capsys.readouterr()
    assert listed(capsys)[0]["title"] == title
