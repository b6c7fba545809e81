"""
FastAPI endpoints for the retrieval pipeline.

POST /rag/index  - Summarize and embed a project's repository files
POST /rag/search - Rank indexed files against a question
POST /rag/ask    - Stream an answer (SSE: sources, token..., done)
"""

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from neurohub.db import get_db
from neurohub.errors import NeuroHubError
from neurohub.http_errors import to_http_exception
from neurohub.projects.service import require_project
from neurohub.rag.indexer import index_repository
from neurohub.rag.retriever import QuestionAnswer, answer_question, search_files
from neurohub.rag.schemas import (
    AskRequest,
    FileReferenceOut,
    IndexRequest,
    IndexResponse,
    SearchRequest,
    SearchResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["rag"])


def _sse(payload: dict) -> str:
    return "data: " + json.dumps(payload) + "\n\n"


@router.post("/index", response_model=IndexResponse)
async def trigger_index(request: IndexRequest, db: Session = Depends(get_db)):
    """
    Index the project's repository now.

    Unchanged files are skipped, so calling this repeatedly is cheap.
    """
    try:
        project = require_project(db, request.project_id)
        result = await index_repository(
            db,
            project.id,
            request.repo_url or project.github_url,
            request.github_token or project.github_token,
        )
    except NeuroHubError as e:
        raise to_http_exception(e)

    return IndexResponse(project_id=project.id, **result.as_dict())


@router.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, db: Session = Depends(get_db)):
    try:
        references = await search_files(
            db, request.project_id, request.question, top_k=request.top_k
        )
    except NeuroHubError as e:
        raise to_http_exception(e)

    return SearchResponse(
        question=request.question,
        results=[
            FileReferenceOut(
                file_path=ref.file_path,
                similarity=ref.similarity,
                summary=ref.summary,
                source_code=ref.source_code if request.include_source else None,
            )
            for ref in references
        ],
    )


async def _answer_events(answer: QuestionAnswer) -> AsyncGenerator[str, None]:
    yield _sse({
        "type": "sources",
        "files": [ref.as_dict() for ref in answer.file_references],
    })

    try:
        async for chunk in answer.answer_stream:
            yield _sse({"type": "token", "content": chunk})
    except Exception as e:
        logger.error(f"[rag] answer stream failed: {e}")
        yield _sse({"type": "error", "error": str(e)})
    finally:
        await answer.answer_stream.aclose()

    yield _sse({"type": "done"})


@router.post("/ask")
async def ask(request: AskRequest, db: Session = Depends(get_db)):
    """
    Answer a question about the project's code as a server-sent event stream.

    Retrieval happens before the stream opens, so a bad project or a failed
    question embedding is still reported with a proper status code.
    """
    try:
        answer = await answer_question(
            db, request.project_id, request.question, top_k=request.top_k
        )
    except NeuroHubError as e:
        raise to_http_exception(e)

    return StreamingResponse(
        _answer_events(answer),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
