"""
External capability layer: rate-limited calling and the Gemini client.
"""

from .caller import (
    ExternalServiceError,
    RetryPolicy,
    BatchOutcome,
    classify_error,
    call_with_retry,
    run_batch,
)
from .clients import GeminiClient, get_llm_client, is_llm_available

__all__ = [
    "ExternalServiceError",
    "RetryPolicy",
    "BatchOutcome",
    "classify_error",
    "call_with_retry",
    "run_batch",
    "GeminiClient",
    "get_llm_client",
    "is_llm_available",
]
