"""
LLM Client (Google Gemini)

This module is the single place that talks to the model SDK. Pipeline code
only sees three capabilities:

- generate_text()  non-streaming completion, used for summaries
- stream_text()    async sequence of text chunks, used for question answering
- embed()          768-dim embedding vector

Errors are NOT swallowed here: SDK exceptions propagate so that
neurohub.llm.caller can classify them as transient or permanent.

Provider info:
- is_llm_available()
- get_llm_client()
"""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from neurohub.llm.caller import ExternalServiceError
from neurohub.rag import config

logger = logging.getLogger(__name__)


# =============================================================================
# API KEY HELPERS
# =============================================================================

def _get_google_api_key() -> Optional[str]:
    """Get Google API key from environment."""
    key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if key:
        key = key.strip().strip('"').strip("'")
    return key if key else None


def is_llm_available() -> bool:
    """True when an API key is configured and the SDK is importable."""
    if not _get_google_api_key():
        return False
    try:
        import google.generativeai  # noqa: F401
    except Exception:
        return False
    return True


def _response_text(resp: Any) -> str:
    # `.text` raises ValueError when the candidate has no parts (e.g. blocked)
    try:
        return getattr(resp, "text", "") or ""
    except ValueError as exc:
        raise ExternalServiceError(f"Model returned no text: {exc}", transient=False) from exc


async def _close_stream(response: Any) -> None:
    """Best-effort: release the underlying streaming call."""
    for target in (response, getattr(response, "_iterator", None)):
        if target is None:
            continue
        aclose = getattr(target, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as exc:
                logger.debug(f"[llm] stream aclose failed: {exc}")
            return
        cancel = getattr(target, "cancel", None)
        if callable(cancel):
            try:
                cancel()
            except Exception as exc:
                logger.debug(f"[llm] stream cancel failed: {exc}")
            return


# =============================================================================
# CLIENT
# =============================================================================


class GeminiClient:
    """Thin async wrapper around google.generativeai."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        summary_model: Optional[str] = None,
        answer_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else _get_google_api_key()
        self.summary_model = summary_model or config.SUMMARY_MODEL
        self.answer_model = answer_model or config.ANSWER_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self._models: Dict[str, Any] = {}
        self._genai = None

    def _sdk(self):
        if self._genai is not None:
            return self._genai
        if not self.api_key:
            raise ExternalServiceError("GOOGLE_API_KEY not set", transient=False)

        import google.generativeai as genai

        genai.configure(api_key=self.api_key)
        self._genai = genai
        return genai

    def _get_model(self, model_id: str):
        if model_id not in self._models:
            genai = self._sdk()
            self._models[model_id] = genai.GenerativeModel(model_id)
        return self._models[model_id]

    async def generate_text(
        self,
        prompt: str,
        max_tokens: int = config.SUMMARY_MAX_TOKENS,
        temperature: float = config.SUMMARY_TEMPERATURE,
        model: Optional[str] = None,
    ) -> str:
        """Single non-streaming completion. Returns stripped text (may be empty)."""
        gen_model = self._get_model(model or self.summary_model)
        resp = await gen_model.generate_content_async(
            prompt,
            generation_config={
                "max_output_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        return _response_text(resp).strip()

    async def stream_text(self, prompt: str, model: Optional[str] = None) -> AsyncIterator[str]:
        """
        Stream completion text chunk by chunk.

        Closing this generator early (consumer went away) releases the
        underlying model stream instead of draining it.
        """
        gen_model = self._get_model(model or self.answer_model)
        response = await gen_model.generate_content_async(prompt, stream=True)
        try:
            async for chunk in response:
                try:
                    text = chunk.text
                except ValueError:
                    # Final/safety chunks carry no parts
                    continue
                if text:
                    yield text
        finally:
            await _close_stream(response)

    async def embed(self, text: str, task_type: str = config.EMBEDDING_TASK_DOCUMENT) -> List[float]:
        """Embed one string. Returns the raw vector from the SDK."""
        genai = self._sdk()
        result = await genai.embed_content_async(
            model=self.embedding_model,
            content=text,
            task_type=task_type,
        )
        return list(result["embedding"])


_client: Optional[GeminiClient] = None


def get_llm_client() -> GeminiClient:
    global _client
    if _client is None:
        _client = GeminiClient()
    return _client


__all__ = [
    "GeminiClient",
    "get_llm_client",
    "is_llm_available",
]
