"""FastMCP server bootstrap for Directiv."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import FastMCP

from . import __version__
from .app import Application
from .config import DirectivSettings, get_settings
from .repos import RepoConfigError
from .scheduler import build_default_schedule
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Directiv server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def status_payload(app: Application, *, repo_error: str | None = None) -> dict:
    try:
        repo_ids = [repo.id for repo in app.repos()]
    except RepoConfigError as exc:
        repo_ids = []
        repo_error = str(exc)

    timers = {
        timer.name: {
            "collection": timer.collection,
            "interval": timer.interval,
            "last_success": timer.last_success,
            "last_error": timer.last_error,
        }
        for timer in app.scheduler.timers
    }

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server_version": __version__,
        "log_level": app.settings.log_level,
        "repos": {"count": len(repo_ids), "ids": repo_ids, "error": repo_error},
        "tracker": {"available": app.tracker is not None},
        "reviews": {"available": app.reviews is not None},
        "store": {
            "tasks": len(app.store.all_tasks()),
            "sessions": len(app.store.sessions),
            "repositories": len(app.store.checkouts),
            "pull_requests": len(app.store.pull_requests),
            "pending_relations": len(app.store.pending_relations()),
        },
        "timers": timers,
        "notices": len(app.notices.recent()),
    }


def create_server(
    settings: Optional[DirectivSettings] = None,
    app: Application | None = None,
    *,
    prime: bool = True,
    poll: bool = True,
) -> FastMCP:
    """Instantiate the FastMCP server, register tools, and prime the caches.

    With ``poll`` the scheduler runs inside the server lifespan, on the same
    event loop as the tool handlers.
    """

    settings = settings or get_settings()
    app = app or Application(settings)
    if not app.scheduler.timers:
        build_default_schedule(app)

    repo_error: str | None = None
    try:
        app.repos()
    except RepoConfigError as exc:
        repo_error = str(exc)
        logging.getLogger(__name__).warning("Repository configuration invalid", extra={"error": repo_error})

    if prime:
        primed = _run_sync(app.scheduler.refresh_all())
        logging.getLogger(__name__).info(
            "Initial refresh finished",
            extra={"ok": sorted(name for name, ok in primed.items() if ok)},
        )

    def lifespan(_server: FastMCP):
        return app.polling()

    server = FastMCP(
        name="Directiv MCP",
        version=__version__,
        lifespan=lifespan if poll else None,
        instructions=(
            "Directiv joins tracker tasks with git worktrees, tmux sessions, and pull "
            "requests. Use the board tool to read the dependency graph and the start, "
            "stop, and blocked_by tools to act on it."
        ),
    )

    handles = register_tools(server, app=app)

    @server.resource(
        "resource://directiv/status",
        name="directiv_status",
        title="Directiv MCP Status",
        description="Provides the current runtime status for the Directiv MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_payload(app, repo_error=repo_error))

    setattr(server, "app", app)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Directiv MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    app: Application = getattr(server, "app")
    logging.getLogger(__name__).info(
        "Launching Directiv MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "tracker_available": app.tracker is not None,
            "reviews_available": app.reviews is not None,
        },
    )
    server.run()


if __name__ == "__main__":
    main()
