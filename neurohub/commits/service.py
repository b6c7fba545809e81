"""
Commit ingestion.

pull_commits() keeps a project's commit log in sync with GitHub:

    list newest commits -> drop known hashes -> fetch stats (batched)
    -> summarize (batched, with fallback) -> insert (conflict-ignoring)

Re-running it is safe: hashes already stored are skipped before any
external call, and the unique constraint catches concurrent races.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from neurohub.db import insert_ignore
from neurohub.embeddings.service import count_file_embeddings
from neurohub.errors import ConfigurationError, PersistenceError
from neurohub.github.client import CommitInfo, EnrichedCommit, parse_github_url
from neurohub.llm.caller import RetryPolicy, call_with_retry, run_batch
from neurohub.projects.service import require_project
from neurohub.rag import config
from neurohub.rag.locks import COMMITS, ProjectLocks, get_project_locks
from neurohub.rag.summarizer import SummaryCache, fallback_commit_summary, summarize_commit

from .models import Commit

logger = logging.getLogger(__name__)


@dataclass
class PullResult:
    processed_count: int
    total_fetched: int


def get_known_hashes(db: Session, project_id: str) -> set:
    try:
        rows = db.query(Commit.commit_hash).filter(Commit.project_id == project_id).all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read commits for project {project_id}: {e}") from e
    return {h for (h,) in rows}


async def pull_commits(
    db: Session,
    project_id: str,
    *,
    github=None,
    llm=None,
    max_commits: Optional[int] = None,
    policy: Optional[RetryPolicy] = None,
    cache: Optional[SummaryCache] = None,
    locks: Optional[ProjectLocks] = None,
) -> PullResult:
    """
    Fetch, summarize and store the project's unseen commits.

    Raises ConfigurationError for an unknown project or a bad URL and
    ExternalServiceError when the commit listing itself fails. Failures on
    single commits are absorbed (empty stats, fallback summary).
    """
    project = require_project(db, project_id)
    if not project.github_url:
        raise ConfigurationError(f"Project {project_id} has no GitHub URL")
    ref = parse_github_url(project.github_url)

    if github is None:
        from neurohub.github.client import get_github_client
        github = get_github_client()

    locks = locks or get_project_locks()
    limit = max_commits or config.MAX_COMMITS

    async with locks.hold(project_id, COMMITS):
        fetched: List[CommitInfo] = await call_with_retry(
            lambda: github.list_commits(ref.owner, ref.repo, limit),
            policy=policy,
            label=f"list commits {ref.full_name}",
        )
        total = len(fetched)

        known = get_known_hashes(db, project_id)
        unseen = [c for c in fetched if c.commit_hash and c.commit_hash not in known]
        if not unseen:
            logger.info(f"[commits] {ref.full_name}: no new commits ({total} fetched)")
            return PullResult(processed_count=0, total_fetched=total)

        logger.info(f"[commits] {ref.full_name}: {len(unseen)} new of {total} fetched")

        async def _enrich(info: CommitInfo) -> EnrichedCommit:
            stats = await call_with_retry(
                lambda: github.get_commit_stats(ref.owner, ref.repo, info.commit_hash),
                policy=policy,
                label=f"commit stats {info.commit_hash[:7]}",
            )
            return EnrichedCommit.from_parts(info, stats)

        enriched: List[EnrichedCommit] = []
        for outcome in await run_batch(unseen, _enrich, label="commit stats"):
            if outcome.ok:
                enriched.append(outcome.result)
            else:
                enriched.append(EnrichedCommit.from_parts(outcome.item))

        async def _summarize(commit: EnrichedCommit) -> str:
            return await summarize_commit(commit, llm=llm, policy=policy, cache=cache)

        summaries: Dict[str, str] = {}
        for outcome in await run_batch(enriched, _summarize, label="commit summaries"):
            commit = outcome.item
            if outcome.ok and outcome.result:
                summaries[commit.commit_hash] = outcome.result
            else:
                summaries[commit.commit_hash] = fallback_commit_summary(commit)

        processed = store_commits(db, project_id, enriched, summaries)

    logger.info(f"[commits] {ref.full_name}: stored {processed} commits")
    return PullResult(processed_count=processed, total_fetched=total)


def store_commits(
    db: Session,
    project_id: str,
    commits: List[EnrichedCommit],
    summaries: Dict[str, str],
) -> int:
    """Insert commit rows, skipping (project, hash) pairs that already exist."""
    inserted = 0
    try:
        for commit in commits:
            values = {
                "project_id": project_id,
                "commit_hash": commit.commit_hash,
                "commit_message": commit.message or "",
                "commit_author_name": commit.author_name or "",
                "commit_author_avatar": commit.author_avatar or "",
                "commit_date": commit.date,
                "summary": summaries.get(commit.commit_hash),
            }
            if insert_ignore(db, Commit, values, ("project_id", "commit_hash")):
                inserted += 1
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store commits for project {project_id}: {e}") from e
    return inserted


# ============ QUERIES ============

def list_project_commits(db: Session, project_id: str, limit: Optional[int] = None) -> List[Commit]:
    """Stored commits, newest first."""
    query = db.query(Commit).filter(Commit.project_id == project_id).order_by(
        Commit.commit_date.desc(), Commit.id.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def get_project_stats(db: Session, project_id: str) -> Dict[str, Any]:
    total_commits = db.query(func.count(Commit.id)).filter(
        Commit.project_id == project_id
    ).scalar() or 0
    last_commit_date: Optional[datetime] = db.query(func.max(Commit.commit_date)).filter(
        Commit.project_id == project_id
    ).scalar()
    files = count_file_embeddings(db, project_id)
    return {
        "project_id": project_id,
        "total_commits": total_commits,
        "last_commit_date": last_commit_date,
        "files_indexed": files["total"],
        "files_with_vector": files["with_vector"],
        "files_without_vector": files["without_vector"],
    }
