"""
Pipeline configuration.

All tunables in one place for easy adjustment. Every value can be overridden
through an environment variable (loaded from .env by main.py).

CRITICAL DESIGN DECISIONS:
1. Source of Truth: Reads FROM the GitHub API (no local clone)
2. Idempotent: Files/commits already stored for a project are skipped
3. Degrade, don't fail: fallback summaries and NULL vectors over lost work
4. Backpressure: external calls go out in small batches with a delay between them
"""

import os
from typing import List


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in {"1", "true", "yes"}


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [p.strip() for p in raw.split(",") if p.strip()]


# ============================================================================
# SOURCE CONTROL HOST
# ============================================================================

GITHUB_API_URL: str = os.getenv("NEUROHUB_GITHUB_API_URL", "https://api.github.com")
GITHUB_TOKEN: str = os.getenv("GITHUB_TOKEN", "")

# Most recent commits fetched per pull (GitHub caps per_page at 100)
MAX_COMMITS: int = _env_int("NEUROHUB_MAX_COMMITS", 30)

# Files larger than this are not summarized
MAX_FILE_BYTES: int = _env_int("NEUROHUB_MAX_FILE_BYTES", 200 * 1024)

# Concurrent content downloads while loading a repository
FILE_LOAD_CONCURRENCY: int = _env_int("NEUROHUB_FILE_LOAD_CONCURRENCY", 5)

# Denylist applied to repository paths. A pattern matches when it equals a
# path segment, the file name, or (with a wildcard) fnmatch-es the file name.
DEFAULT_EXCLUDE_PATTERNS: List[str] = [
    # dependency directories and build output
    "node_modules", "dist", "build", "coverage", "logs", ".next", "out",
    "vendor", "__pycache__", ".venv", "venv", "target",
    # lockfiles / manifests
    "package-lock.json", "package.json", "yarn.lock", "pnpm-lock.yaml",
    "pnpm-workspace.yaml", "poetry.lock", "Pipfile.lock", "Cargo.lock",
    "composer.lock", "Gemfile.lock", "go.sum",
    # docs / licence / CI metadata
    "LICENSE", "LICENSE.md", "LICENSE.txt", "README.md", "README",
    "CHANGELOG.md", ".github", ".gitlab-ci.yml", ".circleci",
    # environment files
    ".env", ".env.local", ".env.production", ".env.development",
    # binary assets
    "*.png", "*.jpg", "*.jpeg", "*.gif", "*.ico", "*.svg", "*.woff",
    "*.woff2", "*.ttf", "*.pdf", "*.zip", "*.min.js",
]

INDEX_EXCLUDE_PATTERNS: List[str] = _env_list("NEUROHUB_INDEX_EXCLUDE") or DEFAULT_EXCLUDE_PATTERNS

# ============================================================================
# LLM
# ============================================================================

SUMMARY_MODEL: str = os.getenv("NEUROHUB_SUMMARY_MODEL", "gemini-1.5-flash")
ANSWER_MODEL: str = os.getenv("NEUROHUB_ANSWER_MODEL", "gemini-1.5-flash")
SUMMARY_MAX_TOKENS: int = _env_int("NEUROHUB_SUMMARY_MAX_TOKENS", 512)
SUMMARY_TEMPERATURE: float = _env_float("NEUROHUB_SUMMARY_TEMPERATURE", 0.2)

# Model output shorter than this is treated as a failed call
MIN_SUMMARY_CHARS: int = _env_int("NEUROHUB_MIN_SUMMARY_CHARS", 20)

# Per-process LRU of commit summaries
SUMMARY_CACHE_SIZE: int = _env_int("NEUROHUB_SUMMARY_CACHE_SIZE", 1000)

# ============================================================================
# RATE LIMITING / RETRY
# ============================================================================

MAX_RETRIES: int = _env_int("NEUROHUB_MAX_RETRIES", 3)
RETRY_BASE_DELAY: float = _env_float("NEUROHUB_RETRY_BASE_DELAY", 1.0)  # seconds
CALL_TIMEOUT_SECONDS: float = _env_float("NEUROHUB_CALL_TIMEOUT", 60.0)

BATCH_SIZE: int = _env_int("NEUROHUB_BATCH_SIZE", 3)
BATCH_DELAY_SECONDS: float = _env_float("NEUROHUB_BATCH_DELAY", 1.0)

# ============================================================================
# CHUNKING
# ============================================================================

CHUNK_SIZE: int = _env_int("NEUROHUB_CHUNK_SIZE", 1800)  # characters
CHUNK_OVERLAP: int = _env_int("NEUROHUB_CHUNK_OVERLAP", 180)  # characters

# ============================================================================
# EMBEDDINGS
# ============================================================================

EMBEDDING_MODEL: str = os.getenv("NEUROHUB_EMBEDDING_MODEL", "models/text-embedding-004")
EMBEDDING_DIMENSIONS: int = 768
EMBEDDING_MAX_CHARS: int = _env_int("NEUROHUB_EMBEDDING_MAX_CHARS", 5000)

# Stored file summaries and incoming questions are embedded for different tasks
EMBEDDING_TASK_DOCUMENT: str = "retrieval_document"
EMBEDDING_TASK_QUERY: str = "retrieval_query"

# ============================================================================
# RETRIEVAL
# ============================================================================

DEFAULT_TOP_K: int = _env_int("NEUROHUB_TOP_K", 5)
MAX_TOP_K: int = 20

# Source text included per file in the answer prompt
CONTEXT_SOURCE_CHARS: int = _env_int("NEUROHUB_CONTEXT_SOURCE_CHARS", 4000)

INSUFFICIENT_CONTEXT_MESSAGE: str = (
    "I'm sorry, but I don't have enough context to answer that question."
)

# ============================================================================
# INDEXING BEHAVIOR
# ============================================================================

# Re-summarize files whose content hash changed since the last run and drop
# rows for files that no longer exist in the repository
REFRESH_STALE_FILES: bool = _env_bool("NEUROHUB_REFRESH_STALE", True)

# Kick off commit pull + indexing when a project is created
AUTO_INGEST: bool = _env_bool("NEUROHUB_AUTO_INGEST", True)
