"""Linear as the issue tracker."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Sequence

import httpx

from ..errors import RemoteServiceError
from ..models import ACTIVE_STATUS_CATEGORIES, BlockingRelation, StatusCategory, Task
from .graphql import GraphQLClient

logger = logging.getLogger(__name__)

LINEAR_ENDPOINT = "https://api.linear.app/graphql"
PAGE_SIZE = 250

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

_ISSUE_FIELDS = """
    id
    identifier
    title
    priority
    url
    state { name type }
    assignee { id name displayName }
    project { id name }
    inverseRelations {
        nodes {
            id
            type
            issue { id identifier title url }
        }
    }
"""

TEAMS_QUERY = """
query Teams {
    teams { nodes { id key } }
}
"""

ISSUES_QUERY = f"""
query Issues($filter: IssueFilter, $first: Int) {{
    issues(filter: $filter, first: $first) {{
        nodes {{ {_ISSUE_FIELDS} }}
    }}
}}
"""

ISSUE_TEAM_STATES_QUERY = """
query IssueTeamStates($id: String!) {
    issue(id: $id) {
        team { states { nodes { id name type } } }
    }
}
"""

UPDATE_ISSUE_MUTATION = """
mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) {
    issueUpdate(id: $id, input: $input) { success }
}
"""

CREATE_RELATION_MUTATION = """
mutation CreateRelation($input: IssueRelationCreateInput!) {
    issueRelationCreate(input: $input) {
        success
        issueRelation { id }
    }
}
"""

DELETE_RELATION_MUTATION = """
mutation DeleteRelation($id: String!) {
    issueRelationDelete(id: $id) { success }
}
"""

BRANCH_SEARCH_QUERY = f"""
query BranchSearch($branchName: String!) {{
    issueVcsBranchSearch(branchName: $branchName) {{ {_ISSUE_FIELDS} }}
}}
"""


def _category(value: str | None) -> StatusCategory | None:
    if not value:
        return None
    try:
        return StatusCategory(value)
    except ValueError:
        return None


def parse_issue(node: dict[str, Any]) -> Task:
    """Map one GraphQL issue node onto :class:`Task`.

    Only inverse relations of type ``blocks`` become ``blocked_by`` entries.
    """

    state = node.get("state") or {}
    assignee = node.get("assignee") or {}
    project = node.get("project") or {}
    relations = (node.get("inverseRelations") or {}).get("nodes") or []

    blocked_by = []
    for relation in relations:
        if relation.get("type") != "blocks":
            continue
        blocker = relation.get("issue")
        if not blocker:
            continue
        blocked_by.append(
            BlockingRelation(
                relation_id=relation["id"],
                blocker_id=blocker["id"],
                blocker_identifier=blocker.get("identifier", ""),
                blocker_title=blocker.get("title", ""),
                blocker_url=blocker.get("url", ""),
            )
        )

    return Task(
        id=node["id"],
        identifier=node["identifier"],
        title=node.get("title", ""),
        priority=int(node.get("priority") or 0),
        status=state.get("name") or "Unknown",
        status_category=_category(state.get("type")),
        url=node.get("url", ""),
        project_id=project.get("id"),
        project_name=project.get("name"),
        assignee_id=assignee.get("id"),
        assignee_name=assignee.get("displayName") or assignee.get("name"),
        blocked_by=tuple(blocked_by),
    )


class LinearTracker:
    """Issue tracker backed by Linear's GraphQL API."""

    def __init__(
        self,
        api_key: str,
        team_ids: Sequence[str] = (),
        *,
        endpoint: str = LINEAR_ENDPOINT,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._graphql = GraphQLClient(
            endpoint,
            {"Authorization": api_key, "Content-Type": "application/json"},
            client=client,
            transport=transport,
        )
        self._team_keys = list(team_ids)
        self._resolved_teams: list[str] | None = None

    async def resolve_team_ids(self) -> list[str]:
        """Translate team keys such as ``ENG`` into ids; ids pass through."""

        if self._resolved_teams is not None:
            return self._resolved_teams
        if all(_UUID_RE.match(key) for key in self._team_keys):
            self._resolved_teams = list(self._team_keys)
            return self._resolved_teams

        data = await self._graphql.execute(TEAMS_QUERY)
        by_key = {team["key"]: team["id"] for team in data["teams"]["nodes"]}
        resolved = []
        for key in self._team_keys:
            if _UUID_RE.match(key):
                resolved.append(key)
            elif key in by_key:
                resolved.append(by_key[key])
            else:
                raise RemoteServiceError(f'Team key "{key}" not found in Linear')
        self._resolved_teams = resolved
        return resolved

    async def list_tasks(
        self,
        *,
        project_id: str | None = None,
        assigned_to_viewer: bool = False,
    ) -> list[Task]:
        team_ids = await self.resolve_team_ids()
        if not team_ids:
            logger.debug("No Linear teams configured; returning no tasks")
            return []

        issue_filter: dict[str, Any] = {
            "team": {"id": {"in": team_ids}},
            "state": {"type": {"in": [category.value for category in ACTIVE_STATUS_CATEGORIES]}},
        }
        if project_id is not None:
            issue_filter["project"] = {"id": {"eq": project_id}}
        if assigned_to_viewer:
            issue_filter["assignee"] = {"isMe": {"eq": True}}

        data = await self._graphql.execute(ISSUES_QUERY, {"filter": issue_filter, "first": PAGE_SIZE})
        return [parse_issue(node) for node in data["issues"]["nodes"]]

    async def update_status(self, task_id: str, category: StatusCategory, name: str) -> None:
        data = await self._graphql.execute(ISSUE_TEAM_STATES_QUERY, {"id": task_id})
        team = (data.get("issue") or {}).get("team")
        if not team:
            raise RemoteServiceError("Issue has no team")
        match = next(
            (
                state
                for state in team["states"]["nodes"]
                if state.get("type") == category.value and state.get("name") == name
            ),
            None,
        )
        if match is None:
            raise RemoteServiceError(f"No '{category.value}' state named '{name}' found for this team")
        await self._graphql.execute(UPDATE_ISSUE_MUTATION, {"id": task_id, "input": {"stateId": match["id"]}})

    async def create_blocking_relation(self, blocker_id: str, target_id: str) -> str:
        data = await self._graphql.execute(
            CREATE_RELATION_MUTATION,
            {"input": {"issueId": blocker_id, "relatedIssueId": target_id, "type": "blocks"}},
        )
        result = data.get("issueRelationCreate") or {}
        if not result.get("success"):
            raise RemoteServiceError("Linear refused to create the relation")
        return result["issueRelation"]["id"]

    async def delete_blocking_relation(self, relation_id: str) -> None:
        data = await self._graphql.execute(DELETE_RELATION_MUTATION, {"id": relation_id})
        if not (data.get("issueRelationDelete") or {}).get("success"):
            raise RemoteServiceError("Linear refused to delete the relation")

    async def task_for_branch(self, branch: str) -> Task | None:
        data = await self._graphql.execute(BRANCH_SEARCH_QUERY, {"branchName": branch})
        node = data.get("issueVcsBranchSearch")
        return parse_issue(node) if node else None

    async def tasks_for_branches(self, branches: Sequence[str]) -> dict[str, Task]:
        """Reverse lookup for several branches; misses and failures are skipped."""

        results = await asyncio.gather(
            *(self.task_for_branch(branch) for branch in branches),
            return_exceptions=True,
        )
        found: dict[str, Task] = {}
        for branch, result in zip(branches, results):
            if isinstance(result, Exception):
                logger.debug("Branch lookup failed", extra={"branch": branch, "error": str(result)})
                continue
            if result is not None:
                found[branch.lower()] = result
        return found


__all__ = ["LINEAR_ENDPOINT", "LinearTracker", "parse_issue"]
