"""
Question answering over indexed files.

search_files() embeds the question and ranks the project's file summaries by
cosine similarity. answer_question() feeds the best matches to the model in
a guarded prompt and hands back the answer as an async stream of text
chunks, together with the references used.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from sqlalchemy.orm import Session

from neurohub.embeddings.service import embed_text, search_file_embeddings
from neurohub.errors import ConfigurationError, EmbeddingError
from neurohub.llm.caller import RetryPolicy, call_with_retry
from neurohub.projects.service import require_project
from neurohub.rag import config

logger = logging.getLogger(__name__)


@dataclass
class FileReference:
    file_path: str
    similarity: float
    summary: str
    source_code: str

    def as_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "similarity": self.similarity,
            "summary": self.summary,
            "source_code": self.source_code,
        }


@dataclass
class QuestionAnswer:
    answer_stream: AsyncIterator[str]
    file_references: List[FileReference] = field(default_factory=list)


def _clamp_top_k(top_k: Optional[int]) -> int:
    if top_k is None:
        top_k = config.DEFAULT_TOP_K
    return max(1, min(int(top_k), config.MAX_TOP_K))


async def search_files(
    db: Session,
    project_id: str,
    question: str,
    *,
    llm=None,
    top_k: Optional[int] = None,
    policy: Optional[RetryPolicy] = None,
) -> List[FileReference]:
    """
    Top-k files most similar to the question, best first.

    Raises ConfigurationError for an empty question or unknown project and
    EmbeddingError when the question vector is missing or the wrong size.
    """
    if not question or not question.strip():
        raise ConfigurationError("Question is required")
    require_project(db, project_id)

    vector = await embed_text(
        question.strip(), llm=llm, policy=policy, task_type=config.EMBEDDING_TASK_QUERY
    )
    if len(vector) != config.EMBEDDING_DIMENSIONS:
        raise EmbeddingError(
            f"Question embedding has {len(vector)} dimensions, expected {config.EMBEDDING_DIMENSIONS}",
            expected=config.EMBEDDING_DIMENSIONS,
            actual=len(vector),
        )

    ranked, searched = search_file_embeddings(db, project_id, vector, _clamp_top_k(top_k))
    logger.info(f"[retriever] project {project_id}: {len(ranked)} matches out of {searched} files")
    return [
        FileReference(
            file_path=record.file_path,
            similarity=similarity,
            summary=record.summary or "",
            source_code=record.source_code or "",
        )
        for record, similarity in ranked
    ]


def build_answer_prompt(question: str, references: List[FileReference]) -> str:
    blocks = []
    for ref in references:
        source = ref.source_code
        if len(source) > config.CONTEXT_SOURCE_CHARS:
            source = source[: config.CONTEXT_SOURCE_CHARS] + "\n... (truncated)"
        blocks.append(
            f"## {ref.file_path}\n"
            f"**Summary**:\n{ref.summary}\n\n"
            f"**Source**:\n```\n{source}\n```\n"
        )
    context = "\n".join(blocks) if blocks else "(no context)"

    return f"""You are an AI code assistant who answers questions about a codebase for a developer who is new to it.

Answer ONLY from the context block below.
- Reference specific files and functions when relevant
- Include code snippets from the context when they help
- Do not invent files, functions or behavior that the context doesn't show
- If the context does not contain the answer, reply exactly:
  "{config.INSUFFICIENT_CONTEXT_MESSAGE}"

START CONTEXT BLOCK
{context}
END OF CONTEXT BLOCK

START QUESTION
{question}
END OF QUESTION

Answer in markdown, in detail, without apologizing for previous responses.
"""


async def _single_message(text: str) -> AsyncIterator[str]:
    yield text


async def _close_stream(stream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def _open_stream(llm, prompt: str):
    """Start a model stream and pull its first chunk. Returns (stream, first or None)."""
    stream = llm.stream_text(prompt)
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        return stream, None
    except BaseException:
        await _close_stream(stream)
        raise
    return stream, first


async def _stream_answer(llm, prompt: str, policy: Optional[RetryPolicy] = None) -> AsyncIterator[str]:
    # Only the opening call (up to the first chunk) is retried and timed out
    stream, first = await call_with_retry(
        lambda: _open_stream(llm, prompt), policy=policy, label="answer stream"
    )
    try:
        if first:
            yield first
        async for chunk in stream:
            if chunk:
                yield chunk
    finally:
        # Consumer stopped early (or finished): release the model stream
        await _close_stream(stream)


async def answer_question(
    db: Session,
    project_id: str,
    question: str,
    *,
    llm=None,
    top_k: Optional[int] = None,
    policy: Optional[RetryPolicy] = None,
) -> QuestionAnswer:
    """
    Retrieve context and start streaming an answer.

    With no matching files the stream yields the insufficient-context
    message and the model is never called.
    """
    if llm is None:
        from neurohub.llm.clients import get_llm_client
        llm = get_llm_client()

    references = await search_files(db, project_id, question, llm=llm, top_k=top_k, policy=policy)
    if not references:
        return QuestionAnswer(
            answer_stream=_single_message(config.INSUFFICIENT_CONTEXT_MESSAGE),
            file_references=[],
        )

    prompt = build_answer_prompt(question.strip(), references)
    return QuestionAnswer(answer_stream=_stream_answer(llm, prompt, policy), file_references=references)


__all__ = [
    "FileReference",
    "QuestionAnswer",
    "search_files",
    "build_answer_prompt",
    "answer_question",
]
