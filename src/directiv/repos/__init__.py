"""Repository configuration models and loader exports."""

from .loader import RepoConfig, RepoConfigError, RepoConfigLoader, load_repos

__all__ = [
    "RepoConfig",
    "RepoConfigError",
    "RepoConfigLoader",
    "load_repos",
]
