"""
GitHub REST client.

Capabilities used by the pipeline:
- list_commits(owner, repo, limit)       newest-first commit metadata
- get_commit_stats(owner, repo, sha)     files changed, additions, deletions
- load_files(repo_url, token, excludes)  every text file of the default branch

This client does not retry on its own except inside load_files(), which
fans out one request per file. Single calls are wrapped by the services in
neurohub.llm.caller.call_with_retry.
"""

import base64
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from neurohub.errors import ConfigurationError
from neurohub.llm.caller import ExternalServiceError, call_with_retry, run_batch
from neurohub.rag import config

logger = logging.getLogger(__name__)

GITHUB_HOSTS = {"github.com", "www.github.com"}


# =============================================================================
# DATA
# =============================================================================

@dataclass(frozen=True)
class GitHubRepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class CommitInfo:
    """One entry of the commit listing."""
    commit_hash: str
    message: str = ""
    author_name: str = ""
    author_avatar: str = ""
    date: Optional[datetime] = None


@dataclass
class CommitStats:
    files_changed: List[str] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0


@dataclass
class EnrichedCommit(CommitInfo):
    """CommitInfo plus the stats fetched for it."""
    files_changed: List[str] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0

    @classmethod
    def from_parts(cls, info: CommitInfo, stats: Optional[CommitStats] = None) -> "EnrichedCommit":
        stats = stats or CommitStats()
        return cls(
            commit_hash=info.commit_hash,
            message=info.message,
            author_name=info.author_name,
            author_avatar=info.author_avatar,
            date=info.date,
            files_changed=list(stats.files_changed),
            additions=stats.additions,
            deletions=stats.deletions,
        )


@dataclass
class RepoFile:
    path: str
    content: str
    sha: str = ""


# =============================================================================
# URL / PATH HELPERS
# =============================================================================

def parse_github_url(github_url: str) -> GitHubRepoRef:
    """
    Split https://github.com/{owner}/{repo}[.git][/...] into owner and repo.

    Raises ConfigurationError for any other host or a missing path segment.
    """
    if not github_url or not github_url.strip():
        raise ConfigurationError("GitHub URL is required")

    parsed = urlparse(github_url.strip())
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or host not in GITHUB_HOSTS:
        raise ConfigurationError(f"Invalid GitHub URL (must be on github.com): {github_url}")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise ConfigurationError(f"Invalid GitHub URL (must include owner and repository): {github_url}")

    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        raise ConfigurationError(f"Invalid GitHub URL (owner and repository cannot be empty): {github_url}")

    return GitHubRepoRef(owner=owner, repo=repo)


def is_excluded(path: str, patterns: Sequence[str]) -> bool:
    """
    True when a repository path hits the denylist.

    Plain patterns match any path segment ("node_modules", "package.json");
    patterns containing "/" match a path prefix; wildcard patterns are
    fnmatch-ed against the file name and the full path.
    """
    segments = [s for s in path.split("/") if s]
    name = segments[-1] if segments else path
    for pattern in patterns:
        if any(ch in pattern for ch in "*?["):
            if fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(path, pattern):
                return True
        elif "/" in pattern:
            prefix = pattern.strip("/")
            if path == prefix or path.startswith(prefix + "/"):
                return True
        elif pattern in segments:
            return True
    return False


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    """GitHub ISO-8601 timestamp -> naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _commit_from_api(item: Dict[str, Any]) -> CommitInfo:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    account = item.get("author") or {}
    return CommitInfo(
        commit_hash=item.get("sha", ""),
        message=commit.get("message") or "",
        author_name=author.get("name") or "",
        author_avatar=account.get("avatar_url") or "",
        date=_parse_date(author.get("date")),
    )


# =============================================================================
# CLIENT
# =============================================================================

class GitHubClient:
    """Async GitHub REST client built on httpx."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token if token is not None else (config.GITHUB_TOKEN or None)
        self.base_url = base_url or config.GITHUB_API_URL
        self.timeout = timeout
        self._transport = transport

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "neurohub",
        }
        auth = token or self.token
        if auth:
            headers["Authorization"] = f"Bearer {auth}"
        return headers

    def _client(self, token: Optional[str] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(token),
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            follow_redirects=True,
        )

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: Optional[dict] = None) -> Any:
        resp = await client.get(path, params=params)
        if resp.status_code == 403 and resp.headers.get("x-ratelimit-remaining") == "0":
            raise ExternalServiceError("GitHub API rate limit exhausted", transient=True, status_code=403)
        resp.raise_for_status()
        return resp.json()

    async def list_commits(self, owner: str, repo: str, limit: int = 30) -> List[CommitInfo]:
        """Most recent `limit` commits of the default branch, newest first."""
        per_page = max(1, min(limit, 100))
        async with self._client() as client:
            try:
                data = await self._get_json(
                    client, f"/repos/{owner}/{repo}/commits", {"per_page": per_page}
                )
            except httpx.HTTPStatusError as exc:
                # 409 Conflict: "Git Repository is empty."
                if exc.response.status_code == 409:
                    logger.info(f"[github] {owner}/{repo} has no commits")
                    return []
                raise

        commits = [_commit_from_api(item) for item in data or []]
        commits.sort(key=lambda c: c.date or datetime.min, reverse=True)
        return commits[:limit]

    async def get_commit_stats(self, owner: str, repo: str, commit_hash: str) -> CommitStats:
        async with self._client() as client:
            data = await self._get_json(client, f"/repos/{owner}/{repo}/commits/{commit_hash}")

        stats = data.get("stats") or {}
        files = [f.get("filename", "") for f in data.get("files") or []]
        return CommitStats(
            files_changed=[f for f in files if f],
            additions=int(stats.get("additions") or 0),
            deletions=int(stats.get("deletions") or 0),
        )

    async def load_files(
        self,
        repo_url: str,
        token: Optional[str] = None,
        exclude_patterns: Optional[Sequence[str]] = None,
        branch: Optional[str] = None,
    ) -> List[RepoFile]:
        """
        Recursively load every text file of the repository.

        Skips denylisted paths, files above MAX_FILE_BYTES and binary blobs.
        A failure to list the tree propagates; a failure on one blob only
        drops that file.
        """
        ref = parse_github_url(repo_url)
        patterns = list(config.INDEX_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns)
        base = f"/repos/{ref.owner}/{ref.repo}"

        async with self._client(token) as client:
            if not branch:
                meta = await call_with_retry(
                    lambda: self._get_json(client, base), label=f"repo {ref.full_name}"
                )
                branch = meta.get("default_branch") or "main"

            tree = await call_with_retry(
                lambda: self._get_json(client, f"{base}/git/trees/{branch}", {"recursive": "1"}),
                label=f"tree {ref.full_name}@{branch}",
            )
            if tree.get("truncated"):
                logger.warning(f"[github] tree listing for {ref.full_name} was truncated by the API")

            blobs = []
            for entry in tree.get("tree") or []:
                if entry.get("type") != "blob":
                    continue
                path = entry.get("path", "")
                if is_excluded(path, patterns):
                    continue
                if (entry.get("size") or 0) > config.MAX_FILE_BYTES:
                    logger.info(f"[github] skipping large file {path} ({entry.get('size')} bytes)")
                    continue
                blobs.append(entry)

            async def _fetch(entry: Dict[str, Any]) -> Optional[RepoFile]:
                data = await call_with_retry(
                    lambda: self._get_json(client, f"{base}/git/blobs/{entry['sha']}"),
                    label=f"blob {entry['path']}",
                )
                raw = base64.b64decode(data.get("content") or "")
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    return None
                if "\x00" in text:
                    return None
                return RepoFile(path=entry["path"], content=text, sha=entry.get("sha", ""))

            outcomes = await run_batch(
                blobs,
                _fetch,
                batch_size=config.FILE_LOAD_CONCURRENCY,
                delay_seconds=0,
                label=f"load {ref.full_name}",
            )

        files = [o.result for o in outcomes if o.ok and o.result is not None]
        logger.info(
            f"[github] loaded {len(files)} files from {ref.full_name}@{branch} "
            f"({len(blobs)} candidates)"
        )
        return files


_client: Optional[GitHubClient] = None


def get_github_client() -> GitHubClient:
    global _client
    if _client is None:
        _client = GitHubClient()
    return _client
