"""
Core embedding service: generation, storage, and search.
"""

import hashlib
import json
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from neurohub.db import insert_ignore
from neurohub.errors import PersistenceError
from neurohub.llm.caller import RetryPolicy, call_with_retry
from neurohub.rag import config

from .models import SourceEmbedding

logger = logging.getLogger(__name__)


# ============ EMBEDDING GENERATION ============

async def embed_text(
    text: str,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
    task_type: Optional[str] = None,
) -> List[float]:
    """
    Generate an embedding vector for text.

    Returns a vector of exactly EMBEDDING_DIMENSIONS floats, or [] if
    generation fails for any reason. Never raises.

    task_type defaults to EMBEDDING_TASK_DOCUMENT; questions use
    EMBEDDING_TASK_QUERY.
    """
    if not text or not text.strip():
        logger.warning("[embeddings] Empty text provided for embedding generation")
        return []

    task_type = task_type or config.EMBEDDING_TASK_DOCUMENT
    if llm is None:
        from neurohub.llm.clients import get_llm_client
        llm = get_llm_client()

    # The embedding model has its own input ceiling, independent of chunking
    if len(text) > config.EMBEDDING_MAX_CHARS:
        text = text[: config.EMBEDDING_MAX_CHARS]

    try:
        vector = await call_with_retry(
            lambda: llm.embed(text, task_type=task_type), policy=policy, label="embedding"
        )
    except Exception as e:
        logger.error(f"[embeddings] Generation error: {e}")
        return []

    vector = [float(v) for v in vector or []]
    if len(vector) != config.EMBEDDING_DIMENSIONS:
        logger.error(
            f"[embeddings] Unexpected dimensionality {len(vector)} "
            f"(expected {config.EMBEDDING_DIMENSIONS})"
        )
        return []
    return vector


def content_hash(text: str) -> str:
    """sha256 of a file's text, used to spot stale records."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def encode_vector(vector: Optional[Sequence[float]]) -> Optional[str]:
    if not vector:
        return None
    return json.dumps([float(v) for v in vector])


def decode_vector(raw: Optional[str]) -> Optional[List[float]]:
    if not raw:
        return None
    try:
        values = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(values, list):
        return None
    return values


# ============ STORAGE ============

def get_file_embedding(db: Session, project_id: str, file_path: str) -> Optional[SourceEmbedding]:
    return db.query(SourceEmbedding).filter(
        SourceEmbedding.project_id == project_id,
        SourceEmbedding.file_path == file_path,
    ).first()


def get_indexed_hashes(db: Session, project_id: str) -> Dict[str, Optional[str]]:
    """file_path -> content_hash for every record of the project."""
    try:
        rows = db.query(SourceEmbedding.file_path, SourceEmbedding.content_hash).filter(
            SourceEmbedding.project_id == project_id
        ).all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read indexed files for project {project_id}: {e}") from e
    return {path: digest for path, digest in rows}


def store_file_embedding(
    db: Session,
    project_id: str,
    file_path: str,
    source_code: str,
    summary: str,
    embedding: Optional[List[float]],
) -> bool:
    """
    Insert a file record. An empty embedding is stored as NULL.

    Returns False when a record for (project, path) already exists.
    """
    values = {
        "project_id": project_id,
        "file_path": file_path,
        "source_code": source_code,
        "summary": summary,
        "summary_embedding": encode_vector(embedding),
        "content_hash": content_hash(source_code),
    }
    try:
        inserted = insert_ignore(db, SourceEmbedding, values, ("project_id", "file_path"))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store embedding for {file_path}: {e}") from e
    return inserted


def update_file_embedding(
    db: Session,
    record: SourceEmbedding,
    source_code: str,
    summary: str,
    embedding: Optional[List[float]],
) -> SourceEmbedding:
    """Refresh a stale record in place."""
    try:
        record.source_code = source_code
        record.summary = summary
        record.summary_embedding = encode_vector(embedding)
        record.content_hash = content_hash(source_code)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to update embedding for {record.file_path}: {e}") from e
    return record


def delete_file_embeddings(db: Session, project_id: str) -> int:
    """Delete all file embeddings of a project."""
    try:
        count = db.query(SourceEmbedding).filter(
            SourceEmbedding.project_id == project_id
        ).delete()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete embeddings for project {project_id}: {e}") from e
    return count


def delete_file_embeddings_by_path(db: Session, project_id: str, file_paths: Iterable[str]) -> int:
    """Delete the named file embeddings of a project."""
    paths = list(file_paths)
    if not paths:
        return 0
    try:
        count = db.query(SourceEmbedding).filter(
            SourceEmbedding.project_id == project_id,
            SourceEmbedding.file_path.in_(paths),
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete {len(paths)} embeddings for project {project_id}: {e}") from e
    return count


def count_file_embeddings(db: Session, project_id: str) -> Dict[str, int]:
    """Total records, records with a vector, records stored without one."""
    total = db.query(func.count(SourceEmbedding.id)).filter(
        SourceEmbedding.project_id == project_id
    ).scalar() or 0
    with_vector = db.query(func.count(SourceEmbedding.id)).filter(
        SourceEmbedding.project_id == project_id,
        SourceEmbedding.summary_embedding.isnot(None),
    ).scalar() or 0
    return {"total": total, "with_vector": with_vector, "without_vector": total - with_vector}


# ============ SEARCH ============

def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if len(vec_a) != len(vec_b) or len(vec_a) == 0:
        return 0.0

    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def search_file_embeddings(
    db: Session,
    project_id: str,
    query_vector: Sequence[float],
    top_k: int = 5,
) -> Tuple[List[Tuple[SourceEmbedding, float]], int]:
    """
    Rank the project's file records by cosine similarity to query_vector.

    Records without a vector (or with a vector of another dimensionality)
    are ignored. Returns ([(record, similarity)] best first, total_searched).
    """
    try:
        records = db.query(SourceEmbedding).filter(
            SourceEmbedding.project_id == project_id,
            SourceEmbedding.summary_embedding.isnot(None),
        ).all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read embeddings for project {project_id}: {e}") from e

    candidates = []
    vectors = []
    for record in records:
        vector = decode_vector(record.summary_embedding)
        if vector is None or len(vector) != len(query_vector):
            continue
        candidates.append(record)
        vectors.append(vector)

    if not candidates:
        return [], 0

    matrix = np.asarray(vectors, dtype=float)
    query = np.asarray(query_vector, dtype=float)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

    # Sort by similarity (descending)
    order = np.argsort(-scores, kind="stable")[: max(0, top_k)]
    ranked = [(candidates[i], round(float(scores[i]), 4)) for i in order]
    return ranked, len(candidates)
