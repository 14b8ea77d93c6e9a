"""git worktree inventory and management."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..models import Checkout
from .runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)

_BRANCH_PREFIX = "refs/heads/"


@dataclass(slots=True)
class _WorktreeEntry:
    path: str
    branch: str = ""


def checkout_path(repo_root: str | Path, identifier: str) -> Path:
    """Return ``{parent}/{repo basename}-{identifier}`` for a repository."""

    root = Path(repo_root)
    return root.parent / f"{root.name}-{identifier}"


def parse_worktree_list(output: str) -> list[_WorktreeEntry]:
    """Parse ``git worktree list --porcelain`` output, preserving order."""

    entries: list[_WorktreeEntry] = []
    current: _WorktreeEntry | None = None
    for line in output.splitlines():
        if line.startswith("worktree "):
            current = _WorktreeEntry(path=line[len("worktree "):])
            entries.append(current)
        elif line.startswith("branch ") and current is not None:
            ref = line[len("branch "):]
            current.branch = ref[len(_BRANCH_PREFIX):] if ref.startswith(_BRANCH_PREFIX) else ref
    return entries


def parse_status(output: str) -> tuple[bool, int, int]:
    """Return ``(dirty, ahead, behind)`` from ``git status --porcelain=v2 --branch``."""

    dirty = False
    ahead = behind = 0
    for line in output.splitlines():
        if line.startswith("# branch.ab "):
            for token in line[len("# branch.ab "):].split():
                if token.startswith("+"):
                    ahead = int(token[1:])
                elif token.startswith("-"):
                    behind = int(token[1:])
        elif line and not line.startswith("#"):
            dirty = True
    return dirty, ahead, behind


class GitWorktrees:
    """Checkout inventory backed by ``git worktree``."""

    def __init__(self, runner: CommandRunner | None = None, *, executable: str = "git") -> None:
        self._runner = runner or CommandRunner()
        self._executable = executable

    async def _git(self, cwd: str | Path, *args: str, check: bool = True):
        return await self._runner.run(self._executable, *args, cwd=cwd, check=check)

    async def list(self, repo_root: str, *, with_status: bool = True) -> list[Checkout]:
        """List checkouts; the first one is the repository's primary copy."""

        result = await self._git(repo_root, "worktree", "list", "--porcelain")
        entries = parse_worktree_list(result.stdout)
        if not with_status:
            return [Checkout(branch=entry.branch, path=entry.path) for entry in entries]
        return list(await asyncio.gather(*(self._with_status(entry) for entry in entries)))

    async def _with_status(self, entry: _WorktreeEntry) -> Checkout:
        result = await self._git(entry.path, "status", "--porcelain=v2", "--branch", check=False)
        if not result.ok:
            logger.debug("Could not read worktree status", extra={"path": entry.path})
            return Checkout(branch=entry.branch, path=entry.path)
        dirty, ahead, behind = parse_status(result.stdout)
        return Checkout(branch=entry.branch, path=entry.path, is_dirty=dirty, ahead=ahead, behind=behind)

    async def create(
        self,
        repo_root: str,
        identifier: str,
        aux_paths: Sequence[str] = (),
        base_branch: str | None = None,
        fetch_first: bool = False,
    ) -> Checkout:
        if fetch_first:
            try:
                await self.fetch_and_prune(repo_root)
            except CommandError as exc:
                logger.warning("Fetch before checkout failed", extra={"repo": repo_root, "error": str(exc)})

        target = checkout_path(repo_root, identifier)
        exists = await self._git(
            repo_root, "rev-parse", "--verify", "--quiet", f"{_BRANCH_PREFIX}{identifier}", check=False
        )
        if exists.ok:
            await self._git(repo_root, "worktree", "add", str(target), identifier)
        else:
            start_point = base_branch or "HEAD"
            if fetch_first and base_branch:
                remote = await self._git(
                    repo_root, "rev-parse", "--verify", "--quiet", f"origin/{base_branch}", check=False
                )
                if remote.ok:
                    start_point = f"origin/{base_branch}"
            await self._git(repo_root, "worktree", "add", "-b", identifier, str(target), start_point)

        copy_aux_paths(Path(repo_root), target, aux_paths)
        logger.info("Created worktree", extra={"repo": repo_root, "branch": identifier, "path": str(target)})
        return Checkout(branch=identifier, path=str(target))

    async def remove(
        self,
        repo_root: str,
        path: str,
        branch: str | None = None,
        delete_branch: bool = False,
    ) -> None:
        await self._git(repo_root, "worktree", "remove", "--force", path)
        if delete_branch and branch:
            await self._git(repo_root, "branch", "-D", branch)
        logger.info("Removed worktree", extra={"repo": repo_root, "path": path})

    async def is_merged(self, repo_root: str, branch: str, base_branch: str | None = None) -> bool:
        result = await self._git(
            repo_root, "branch", "--merged", base_branch or "HEAD", "--format=%(refname:short)"
        )
        return branch in {line.strip() for line in result.stdout.splitlines()}

    async def fetch_and_prune(self, repo_root: str) -> None:
        await self._git(repo_root, "fetch", "--prune")


def copy_aux_paths(source_root: Path, target_root: Path, aux_paths: Sequence[str]) -> list[Path]:
    """Copy untracked auxiliary files (``.env`` and friends) into a new checkout."""

    copied: list[Path] = []
    for relative in aux_paths:
        source = source_root / relative
        if not source.exists():
            logger.debug("Skipping missing auxiliary path", extra={"path": str(source)})
            continue
        destination = target_root / relative
        destination.parent.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
        else:
            shutil.copy2(source, destination)
        copied.append(destination)
    return copied
