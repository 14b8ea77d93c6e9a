"""GitHub as the code-review system."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..models import PullRequestRecord, PullRequestReview, ReviewState
from .graphql import GraphQLClient

logger = logging.getLogger(__name__)

GITHUB_ENDPOINT = "https://api.github.com/graphql"

_PR_FIELDS = """
    ... on PullRequest {
        number
        url
        title
        isDraft
        headRefName
        reviewRequests(first: 20) { totalCount }
        latestReviews(first: 20) {
            nodes { author { login } state submittedAt }
        }
    }
"""

SEARCH_QUERY = f"""
query Search($query: String!, $first: Int) {{
    search(query: $query, type: ISSUE, first: $first) {{
        nodes {{ {_PR_FIELDS} }}
    }}
}}
"""

VIEWER_OPEN_PRS = "is:pr is:open author:@me archived:false"
REVIEW_REQUESTED_PRS = "is:pr is:open review-requested:@me archived:false"


def parse_pull_request(node: dict[str, Any]) -> PullRequestRecord | None:
    if "number" not in node:
        return None
    reviews = []
    for review in (node.get("latestReviews") or {}).get("nodes") or []:
        try:
            state = ReviewState.parse(review.get("state", ""))
        except ValueError:
            continue
        author = (review.get("author") or {}).get("login", "")
        reviews.append(PullRequestReview(author=author, state=state, submitted_at=review.get("submittedAt") or ""))
    return PullRequestRecord(
        number=int(node["number"]),
        url=node.get("url", ""),
        branch=node.get("headRefName", ""),
        title=node.get("title", ""),
        draft=bool(node.get("isDraft")),
        requested_reviewer_count=int((node.get("reviewRequests") or {}).get("totalCount") or 0),
        reviews=tuple(reviews),
    )


class GitHubReviews:
    """Code-review system backed by GitHub's GraphQL search."""

    def __init__(
        self,
        token: str,
        *,
        endpoint: str = GITHUB_ENDPOINT,
        page_size: int = 50,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._graphql = GraphQLClient(
            endpoint,
            {"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            client=client,
            transport=transport,
        )
        self._page_size = page_size

    async def _search(self, query: str) -> list[PullRequestRecord]:
        data = await self._graphql.execute(SEARCH_QUERY, {"query": query, "first": self._page_size})
        records = []
        for node in data["search"]["nodes"]:
            record = parse_pull_request(node or {})
            if record is not None:
                records.append(record)
        return records

    async def viewer_pull_requests(self) -> list[PullRequestRecord]:
        return await self._search(VIEWER_OPEN_PRS)

    async def review_requests(self) -> list[PullRequestRecord]:
        return await self._search(REVIEW_REQUESTED_PRS)


__all__ = ["GITHUB_ENDPOINT", "GitHubReviews", "parse_pull_request"]
