"""Directiv diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from directiv.automation import CommandError, GitWorktrees, TmuxMultiplexer
from directiv.config import DirectivSettings
from directiv.repos import RepoConfig, RepoConfigError, RepoConfigLoader


def load_repos(settings: DirectivSettings) -> list[RepoConfig]:
    try:
        return RepoConfigLoader(settings.workspace_paths).load_all()
    except RepoConfigError as exc:
        print(f"Repository configuration invalid: {exc}")
        raise SystemExit(1)


def cmd_repos(args: argparse.Namespace) -> None:
    settings = DirectivSettings()
    repos = load_repos(settings)
    if args.json:
        print(json.dumps([repo.model_dump() for repo in repos], indent=2))
    else:
        for repo in repos:
            base = repo.base_branch or "(default)"
            print(f"{repo.id} [{base}] -> {repo.path}")


def cmd_sessions(args: argparse.Namespace) -> None:
    multiplexer = TmuxMultiplexer()
    try:
        sessions = asyncio.run(multiplexer.list_sessions())
    except CommandError as exc:
        print(f"tmux unavailable: {exc}")
        raise SystemExit(1)
    print(json.dumps([asdict(session) for session in sessions], indent=2))


def cmd_worktrees(args: argparse.Namespace) -> None:
    settings = DirectivSettings()
    repos = load_repos(settings)
    if args.repo_id:
        repos = [repo for repo in repos if repo.id == args.repo_id]
        if not repos:
            print(f"Unknown repository '{args.repo_id}'")
            raise SystemExit(1)

    worktrees = GitWorktrees()

    async def collect() -> dict[str, list[dict]]:
        inventory: dict[str, list[dict]] = {}
        for repo in repos:
            checkouts = await worktrees.list(repo.path, with_status=not args.no_status)
            inventory[repo.id] = [asdict(checkout) for checkout in checkouts]
        return inventory

    try:
        payload = asyncio.run(collect())
    except CommandError as exc:
        print(f"git unavailable: {exc}")
        raise SystemExit(1)
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Directiv diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_repos = sub.add_parser("repos", help="List configured repositories")
    p_repos.add_argument("--json", action="store_true", help="Output JSON")
    p_repos.set_defaults(func=cmd_repos)

    p_sessions = sub.add_parser("sessions", help="List tmux sessions")
    p_sessions.set_defaults(func=cmd_sessions)

    p_worktrees = sub.add_parser("worktrees", help="List git worktrees per repository")
    p_worktrees.add_argument("--repo-id")
    p_worktrees.add_argument(
        "--no-status",
        action="store_true",
        help="Skip the per-worktree dirty/ahead/behind probe",
    )
    p_worktrees.set_defaults(func=cmd_worktrees)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
