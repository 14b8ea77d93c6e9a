"""Remote issue-tracker and code-review clients."""

from .github import GitHubReviews
from .graphql import GraphQLClient
from .linear import LinearTracker

__all__ = ["GitHubReviews", "GraphQLClient", "LinearTracker"]
