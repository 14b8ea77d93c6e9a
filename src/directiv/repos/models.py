"""Per-repository configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class RepoConfig(BaseModel):
    """How Directiv provisions checkouts and sessions for one repository."""

    id: str = Field(..., description="Repository id, the folder name by default.")
    path: str = Field(..., description="Absolute path of the primary checkout.")
    copy_paths: list[str] = Field(
        default_factory=list,
        description="Untracked files or directories copied into every new checkout.",
    )
    on_start: list[str] = Field(
        default_factory=list,
        description="Shell commands run in a fresh checkout before the agent starts.",
    )
    base_branch: str | None = Field(
        default=None,
        description="Branch new checkouts start from; HEAD when unset.",
    )
    fetch_before: bool = Field(
        default=True,
        description="Whether to fetch and prune the remote before creating a checkout.",
    )

    @field_validator("id", "path")
    @classmethod
    def _require_value(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Repository id and path must not be empty")
        return normalized

    @field_validator("copy_paths", "on_start", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise ValueError("copy_paths and on_start must be sequences of strings")

    @field_validator("base_branch", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any):
        if isinstance(value, str) and not value.strip():
            return None
        return value


__all__ = ["RepoConfig"]
