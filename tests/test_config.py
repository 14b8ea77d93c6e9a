from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from directiv.config import DirectivSettings, get_settings


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("DIRECTIV_") or name in {"LINEAR_API_KEY", "GITHUB_TOKEN"}:
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = DirectivSettings()
    assert settings.log_level == "INFO"
    assert settings.terminal == "ghostty"
    assert settings.agent_command == "claude"
    assert settings.started_status_name == "In Progress"
    assert settings.workspace_paths == ()
    assert settings.linear_api_key is None


def test_environment_lists_are_split(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    first = tmp_path / "src"
    second = tmp_path / "work"
    monkeypatch.setenv("DIRECTIV_WORKSPACE_PATHS", f"{first}{os.pathsep}{second}")
    monkeypatch.setenv("DIRECTIV_LINEAR_TEAMS", "ENG, OPS,,")
    monkeypatch.setenv("DIRECTIV_TERMINAL", "Alacritty")
    monkeypatch.setenv("DIRECTIV_LOG_LEVEL", "debug")

    settings = DirectivSettings()

    assert settings.workspace_paths == (first, second)
    assert settings.linear_team_ids == ("ENG", "OPS")
    assert settings.terminal == "alacritty"
    assert settings.log_level == "DEBUG"


def test_dotenv_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("LINEAR_API_KEY=lin_api_123\nDIRECTIV_SKILL=work\n", encoding="utf-8")
    settings = DirectivSettings()
    assert settings.linear_api_key == "lin_api_123"
    assert settings.skill == "work"


@pytest.mark.parametrize(
    "name, value",
    [
        ("DIRECTIV_TERMINAL", "xterm"),
        ("DIRECTIV_LOG_LEVEL", "verbose"),
        ("DIRECTIV_LOCAL_REFRESH", "0"),
        ("DIRECTIV_EXTERNAL_REFRESH", "-5"),
        ("DIRECTIV_READY_TIMEOUT_MS", "0"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        DirectivSettings()


def test_get_settings_resolves_paths_and_caches(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DIRECTIV_WORKSPACE_PATHS", "./repos")

    settings = get_settings()

    assert settings.workspace_paths == ((tmp_path / "repos").resolve(),)
    assert get_settings() is settings
