"""Repository discovery and configuration loading."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import RepoConfig

CONFIG_FILENAMES = (".directiv.yml", ".directiv.yaml")


class RepoConfigError(RuntimeError):
    """Raised when one or more repository config files cannot be parsed."""


class RepoConfigLoader:
    """Discovers git repositories in workspace directories and loads their config."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.is_dir()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> list[RepoConfig]:
        """Load every repository found directly under the search paths.

        Later search paths override earlier ones when repository ids collide.
        """

        repos: dict[str, RepoConfig] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for entry in sorted(base.iterdir()):
                if not entry.is_dir() or not (entry / ".git").exists():
                    continue

                document: dict = {}
                config_path = next(
                    (entry / name for name in CONFIG_FILENAMES if (entry / name).is_file()), None
                )
                if config_path is not None:
                    try:
                        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
                    except yaml.YAMLError as exc:  # pragma: no cover - library type
                        errors.append(f"Failed to parse YAML in {config_path}: {exc}")
                        continue
                    if loaded is not None and not isinstance(loaded, dict):
                        errors.append(f"Repository config in {config_path} must be a mapping")
                        continue
                    document = dict(loaded or {})

                document.setdefault("id", entry.name)
                document["path"] = str(entry)
                try:
                    repo = RepoConfig.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Repository config error in {config_path or entry}: {exc}")
                    continue

                repos[repo.id] = repo

        if errors:
            raise RepoConfigError("; ".join(errors))

        return sorted(repos.values(), key=lambda repo: repo.id)

    def get(self, repo_id: str) -> RepoConfig:
        """Return a single repository by id."""

        for repo in self.load_all():
            if repo.id == repo_id:
                return repo
        raise RepoConfigError(f"Repository '{repo_id}' not found in workspace paths")


def load_repos(search_paths: Iterable[Path] | None = None) -> list[RepoConfig]:
    """Convenience wrapper for loading repositories from the provided paths."""

    loader = RepoConfigLoader(search_paths)
    return loader.load_all()


__all__ = ["RepoConfig", "RepoConfigError", "RepoConfigLoader", "load_repos"]
