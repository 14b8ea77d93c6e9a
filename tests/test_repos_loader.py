from pathlib import Path
import textwrap

import pytest

from directiv.repos import RepoConfigError, RepoConfigLoader, load_repos


def make_repo(base: Path, name: str, config: str | None = None) -> Path:
    repo = base / name
    (repo / ".git").mkdir(parents=True)
    if config is not None:
        (repo / ".directiv.yml").write_text(textwrap.dedent(config).strip(), encoding="utf-8")
    return repo


def test_loader_discovers_git_repositories(tmp_path: Path) -> None:
    make_repo(tmp_path, "web")
    make_repo(
        tmp_path,
        "api",
        """
        copy_paths:
          - .env
          - config/local.json
        on_start: npm ci
        base_branch: develop
        fetch_before: false
        """,
    )
    (tmp_path / "notes").mkdir()

    repos = RepoConfigLoader([tmp_path]).load_all()

    assert [repo.id for repo in repos] == ["api", "web"]
    api = repos[0]
    assert api.path == str(tmp_path / "api")
    assert api.copy_paths == [".env", "config/local.json"]
    assert api.on_start == ["npm ci"]
    assert api.base_branch == "develop"
    assert api.fetch_before is False
    assert repos[1].on_start == []
    assert repos[1].fetch_before is True


def test_later_search_path_overrides_matching_id(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    make_repo(first, "app", "base_branch: main")
    make_repo(second, "app", "base_branch: trunk")

    repos = load_repos([first, second])

    assert len(repos) == 1
    assert repos[0].base_branch == "trunk"
    assert repos[0].path == str(second / "app")


def test_config_can_rename_repository(tmp_path: Path) -> None:
    make_repo(tmp_path, "checkout-of-app", "id: app\nbase_branch: ''")
    loader = RepoConfigLoader([tmp_path])

    repo = loader.get("app")

    assert repo.base_branch is None
    with pytest.raises(RepoConfigError):
        loader.get("checkout-of-app")


def test_missing_search_paths_are_ignored(tmp_path: Path) -> None:
    loader = RepoConfigLoader([tmp_path / "missing"])
    assert loader.search_paths == []
    assert loader.load_all() == []


def test_loader_reports_invalid_config(tmp_path: Path) -> None:
    make_repo(tmp_path, "broken", "- just\n- a list")
    make_repo(tmp_path, "bad-hooks", "on_start: 12")

    with pytest.raises(RepoConfigError) as excinfo:
        RepoConfigLoader([tmp_path]).load_all()

    message = str(excinfo.value)
    assert "must be a mapping" in message
    assert "bad-hooks" in message
