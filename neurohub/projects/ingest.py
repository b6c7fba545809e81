"""
Background ingestion for newly linked projects.

Runs the commit pull and then the repository index. Each step logs and
swallows its own failure so one does not prevent the other; the HTTP
request that scheduled the job has already returned.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from neurohub.commits.service import pull_commits
from neurohub.errors import NeuroHubError
from neurohub.rag.indexer import index_repository

from .service import get_project

logger = logging.getLogger(__name__)


async def ingest_project(project_id: str, db: Optional[Session] = None, *, github=None, llm=None) -> dict:
    """Pull commits and index files for one project. Returns per-step results."""
    close_db = False
    if db is None:
        from neurohub.db import SessionLocal
        db = SessionLocal()
        close_db = True

    results = {"commits": None, "index": None}
    try:
        project = get_project(db, project_id)
        if not project:
            logger.warning(f"[ingest] project {project_id} vanished before ingestion started")
            return results

        try:
            pulled = await pull_commits(db, project_id, github=github, llm=llm)
            results["commits"] = {
                "processed": pulled.processed_count,
                "total": pulled.total_fetched,
            }
        except NeuroHubError as e:
            logger.error(f"[ingest] commit pull failed for project {project_id}: {e}")

        try:
            indexed = await index_repository(
                db,
                project_id,
                project.github_url,
                project.github_token,
                github=github,
                llm=llm,
            )
            results["index"] = indexed.as_dict()
        except NeuroHubError as e:
            logger.error(f"[ingest] indexing failed for project {project_id}: {e}")

        logger.info(f"[ingest] project {project_id} done: {results}")
        return results
    finally:
        if close_db:
            db.close()
