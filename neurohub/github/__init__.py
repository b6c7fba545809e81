"""
Source-control host access (GitHub REST API).
"""

from .client import (
    GitHubClient,
    GitHubRepoRef,
    CommitInfo,
    CommitStats,
    EnrichedCommit,
    RepoFile,
    get_github_client,
    is_excluded,
    parse_github_url,
)

__all__ = [
    "GitHubClient",
    "GitHubRepoRef",
    "CommitInfo",
    "CommitStats",
    "EnrichedCommit",
    "RepoFile",
    "get_github_client",
    "is_excluded",
    "parse_github_url",
]
