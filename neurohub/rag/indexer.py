"""
Repository indexer.

index_repository() turns every text file of a GitHub repository into one
source_embeddings row:

    load files -> drop rows of deleted files -> skip unchanged -> chunk -> summarize chunks -> combine
    -> embed the summary -> insert (or refresh a stale row)

Files are processed through run_batch, so one failing file is counted as an
error and never aborts the rest. A row is written as soon as its file is
done; an interrupted run keeps what it finished and the next run skips it.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from neurohub.embeddings.service import (
    content_hash,
    delete_file_embeddings_by_path,
    embed_text,
    get_file_embedding,
    get_indexed_hashes,
    store_file_embedding,
    update_file_embedding,
)
from neurohub.github.client import RepoFile, parse_github_url
from neurohub.llm.caller import RetryPolicy, run_batch
from neurohub.projects.service import require_project
from neurohub.rag import config
from neurohub.rag.locks import INDEX, ProjectLocks, get_project_locks
from neurohub.rag.summarizer import summarize_file

logger = logging.getLogger(__name__)

CREATED = "created"
REFRESHED = "refreshed"
SKIPPED = "skipped"


@dataclass
class IndexResult:
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    refreshed_count: int = 0
    removed_count: int = 0

    def as_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "refreshed_count": self.refreshed_count,
            "removed_count": self.removed_count,
        }


async def _index_file(
    db: Session,
    project_id: str,
    repo_file: RepoFile,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
) -> str:
    summary = await summarize_file(repo_file.path, repo_file.content, llm=llm, policy=policy)
    vector = await embed_text(summary, llm=llm, policy=policy) if summary else []

    if not summary and not vector:
        raise ValueError(f"No summary or embedding produced for {repo_file.path}")
    if not vector:
        logger.warning(f"[indexer] {repo_file.path}: storing summary without a vector")

    existing = get_file_embedding(db, project_id, repo_file.path)
    if existing is not None:
        if existing.content_hash == content_hash(repo_file.content):
            return SKIPPED
        update_file_embedding(db, existing, repo_file.content, summary, vector)
        return REFRESHED

    inserted = store_file_embedding(db, project_id, repo_file.path, repo_file.content, summary, vector)
    return CREATED if inserted else SKIPPED


async def index_repository(
    db: Session,
    project_id: str,
    repo_url: str,
    access_token: Optional[str] = None,
    *,
    github=None,
    llm=None,
    exclude_patterns: Optional[Sequence[str]] = None,
    policy: Optional[RetryPolicy] = None,
    locks: Optional[ProjectLocks] = None,
) -> IndexResult:
    """
    Summarize and embed every file of the repository for this project.

    Files whose stored content hash matches are skipped. Changed files are
    refreshed in place when REFRESH_STALE_FILES is on, skipped otherwise.
    With the same flag, rows for files no longer in the repository are
    deleted (removed_count).

    Raises ConfigurationError for a bad URL or unknown project. A failure to
    list the repository propagates; per-file failures only bump error_count.
    """
    ref = parse_github_url(repo_url)
    require_project(db, project_id)

    if github is None:
        from neurohub.github.client import get_github_client
        github = get_github_client()

    locks = locks or get_project_locks()
    result = IndexResult()

    async with locks.hold(project_id, INDEX):
        files = await github.load_files(repo_url, access_token, exclude_patterns)
        indexed = get_indexed_hashes(db, project_id)

        if config.REFRESH_STALE_FILES:
            loaded = {f.path for f in files}
            gone = sorted(path for path in indexed if path not in loaded)
            if gone:
                result.removed_count = delete_file_embeddings_by_path(db, project_id, gone)
                logger.info(f"[indexer] {ref.full_name}: removed {result.removed_count} deleted files")

        pending = []
        for repo_file in files:
            if repo_file.path in indexed:
                unchanged = indexed[repo_file.path] == content_hash(repo_file.content)
                if unchanged or not config.REFRESH_STALE_FILES:
                    result.skipped_count += 1
                    continue
            pending.append(repo_file)

        logger.info(
            f"[indexer] {ref.full_name}: {len(files)} files loaded, "
            f"{len(pending)} to process, {result.skipped_count} unchanged"
        )

        async def _process(repo_file: RepoFile) -> str:
            return await _index_file(db, project_id, repo_file, llm=llm, policy=policy)

        outcomes = await run_batch(pending, _process, label=f"index {ref.full_name}")

    for outcome in outcomes:
        if not outcome.ok:
            logger.error(f"[indexer] {outcome.item.path} failed: {outcome.error}")
            result.error_count += 1
        elif outcome.result == CREATED:
            result.success_count += 1
        elif outcome.result == REFRESHED:
            result.refreshed_count += 1
        else:
            result.skipped_count += 1

    logger.info(f"[indexer] {ref.full_name}: {result.as_dict()}")
    return result
