# FILE: tests/test_retriever.py
"""
Tests for neurohub/rag/retriever.py
Question answering - ranking, guarded prompt, streamed answers.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from fakes import FakeLLM


def _unit(index: int, dims: int = 768):
    vec = [0.0] * dims
    vec[index] = 1.0
    return vec


async def _collect(stream):
    return [chunk async for chunk in stream]


@pytest.fixture
def indexed(db_session, project):
    """Three files with known vectors plus one without a vector."""
    from neurohub.embeddings.service import store_file_embedding

    store_file_embedding(db_session, project.id, "src/auth.py", "def login(): ...", "* Handles login", _unit(0))
    store_file_embedding(db_session, project.id, "src/db.py", "def connect(): ...", "* Opens the DB", _unit(1))
    near = [0.8] + [0.6] + [0.0] * 766
    store_file_embedding(db_session, project.id, "src/session.py", "def session(): ...", "* Session helpers", near)
    store_file_embedding(db_session, project.id, "src/unembedded.py", "x = 1", "* No vector", [])
    return project


class TestSearchFiles:
    """Test ranking."""

    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, db_session, indexed, fast_policy):
        from neurohub.rag.retriever import search_files

        refs = await search_files(db_session, indexed.id, "how does login work?",
                                  llm=FakeLLM(embedding=_unit(0)), policy=fast_policy)

        assert [r.file_path for r in refs] == ["src/auth.py", "src/session.py", "src/db.py"]
        assert refs[0].similarity == 1.0
        assert refs[0].summary == "* Handles login"
        assert refs[0].source_code == "def login(): ..."

    @pytest.mark.asyncio
    async def test_top_k(self, db_session, indexed, fast_policy):
        from neurohub.rag.retriever import search_files

        refs = await search_files(db_session, indexed.id, "login", llm=FakeLLM(embedding=_unit(0)),
                                  top_k=1, policy=fast_policy)
        assert [r.file_path for r in refs] == ["src/auth.py"]

    @pytest.mark.asyncio
    async def test_embedding_failure_raises(self, db_session, indexed, fast_policy):
        from neurohub.errors import EmbeddingError
        from neurohub.rag.retriever import search_files

        with pytest.raises(EmbeddingError) as exc_info:
            await search_files(db_session, indexed.id, "login", llm=FakeLLM(embedding=[0.1] * 10),
                               policy=fast_policy)
        assert exc_info.value.expected == 768
        assert exc_info.value.actual == 0

    @pytest.mark.asyncio
    async def test_empty_question_rejected(self, db_session, indexed, fast_policy):
        from neurohub.errors import ConfigurationError
        from neurohub.rag.retriever import search_files

        with pytest.raises(ConfigurationError):
            await search_files(db_session, indexed.id, "   ", llm=FakeLLM(), policy=fast_policy)

    @pytest.mark.asyncio
    async def test_unknown_project(self, db_session, fast_policy):
        from neurohub.errors import ProjectNotFoundError
        from neurohub.rag.retriever import search_files

        with pytest.raises(ProjectNotFoundError):
            await search_files(db_session, "nope", "login", llm=FakeLLM(), policy=fast_policy)

    @pytest.mark.asyncio
    async def test_question_embedded_as_query(self, db_session, indexed, fast_policy):
        from neurohub.rag import config
        from neurohub.rag.retriever import search_files

        llm = FakeLLM(embedding=_unit(0))
        await search_files(db_session, indexed.id, "login", llm=llm, policy=fast_policy)
        assert llm.embed_task_types == [config.EMBEDDING_TASK_QUERY]


class TestBuildAnswerPrompt:
    """Test the guarded prompt."""

    def test_contains_context_question_and_guard(self):
        from neurohub.rag import config
        from neurohub.rag.retriever import FileReference, build_answer_prompt

        refs = [FileReference("src/auth.py", 0.9, "* Handles login", "def login(): ...")]
        prompt = build_answer_prompt("How does login work?", refs)

        assert "START CONTEXT BLOCK" in prompt
        assert "## src/auth.py" in prompt
        assert "def login(): ..." in prompt
        assert "How does login work?" in prompt
        assert config.INSUFFICIENT_CONTEXT_MESSAGE in prompt

    def test_long_source_truncated(self, monkeypatch):
        from neurohub.rag import config
        from neurohub.rag.retriever import FileReference, build_answer_prompt

        monkeypatch.setattr(config, "CONTEXT_SOURCE_CHARS", 10)
        refs = [FileReference("big.py", 0.5, "* big", "0123456789ABCDEFGHIJ")]
        prompt = build_answer_prompt("q", refs)
        assert "0123456789\n... (truncated)" in prompt
        assert "ABCDEFGHIJ" not in prompt


class TestAnswerQuestion:
    """Test streamed answers."""

    @pytest.mark.asyncio
    async def test_streams_model_tokens(self, db_session, indexed, fast_policy):
        from neurohub.rag.retriever import answer_question

        llm = FakeLLM(embedding=_unit(0), tokens=["Login ", "is handled ", "in auth.py."])
        answer = await answer_question(db_session, indexed.id, "How does login work?",
                                       llm=llm, policy=fast_policy)

        assert answer.file_references[0].file_path == "src/auth.py"
        assert await _collect(answer.answer_stream) == ["Login ", "is handled ", "in auth.py."]
        assert "src/auth.py" in llm.stream_prompts[0]

    @pytest.mark.asyncio
    async def test_empty_index_gives_insufficient_context(self, db_session, project, fast_policy):
        """No indexed files: zero references and the fixed message, model never called."""
        from neurohub.rag import config
        from neurohub.rag.retriever import answer_question

        llm = FakeLLM()
        answer = await answer_question(db_session, project.id, "What does this repo do?",
                                       llm=llm, policy=fast_policy)

        assert answer.file_references == []
        assert await _collect(answer.answer_stream) == [config.INSUFFICIENT_CONTEXT_MESSAGE]
        assert llm.calls["stream_text"] == 0

    @pytest.mark.asyncio
    async def test_closing_early_closes_model_stream(self, db_session, indexed, fast_policy):
        from neurohub.rag.retriever import answer_question

        llm = FakeLLM(embedding=_unit(0), tokens=["one ", "two ", "three"])
        answer = await answer_question(db_session, indexed.id, "login?", llm=llm, policy=fast_policy)

        first = await answer.answer_stream.__anext__()
        assert first == "one "
        await answer.answer_stream.aclose()
        assert llm.stream_closed is True

    @pytest.mark.asyncio
    async def test_rate_limited_stream_start_is_retried(self, db_session, indexed, fast_policy):
        from neurohub.rag.retriever import answer_question

        llm = FakeLLM(embedding=_unit(0), tokens=["Login ", "is in auth.py."], stream_failures=2)
        answer = await answer_question(db_session, indexed.id, "login?", llm=llm, policy=fast_policy)

        assert await _collect(answer.answer_stream) == ["Login ", "is in auth.py."]
        assert llm.calls["stream_text"] == 3

    @pytest.mark.asyncio
    async def test_stream_start_gives_up_after_max_retries(self, db_session, indexed, fast_policy):
        from neurohub.llm.caller import ExternalServiceError
        from neurohub.rag.retriever import answer_question

        llm = FakeLLM(embedding=_unit(0), stream_failures=10)
        answer = await answer_question(db_session, indexed.id, "login?", llm=llm, policy=fast_policy)

        with pytest.raises(ExternalServiceError) as exc_info:
            await _collect(answer.answer_stream)
        assert exc_info.value.status_code == 429
        assert llm.calls["stream_text"] == fast_policy.max_retries
