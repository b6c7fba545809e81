"""
Commit and file summarization.

Every summary goes through the model first (via call_with_retry) and degrades
to a deterministic, model-free summary when the model path is exhausted.
Callers always get a non-empty string back; model failures never raise out
of this module.

Commit summaries are cached in a process-local LRU keyed by commit hash and
the start of the message, so re-pulls of overlapping commit ranges don't pay
for the same summary twice.
"""

import logging
import os
import re
from collections import OrderedDict
from typing import List, Optional, Sequence

from neurohub.github.client import EnrichedCommit
from neurohub.llm.caller import ExternalServiceError, RetryPolicy, call_with_retry
from neurohub.rag import config
from neurohub.rag.chunker import chunk_text

logger = logging.getLogger(__name__)


SUMMARY_HEADINGS = (
    "Main change",
    "Secondary changes",
    "Tests",
    "Dependencies",
    "Breaking changes",
    "Security",
    "Docs",
    "Performance",
)


# =============================================================================
# CACHE
# =============================================================================

class SummaryCache:
    """Bounded LRU of summary text. Oldest entry is evicted first."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max(1, max_size)
        self._entries: "OrderedDict[str, str]" = OrderedDict()

    @staticmethod
    def key_for(commit_hash: str, message: str) -> str:
        return f"{commit_hash}:{(message or '')[:50]}"

    def get(self, key: str) -> Optional[str]:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: str, value: str) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_commit_cache: Optional[SummaryCache] = None


def get_summary_cache() -> SummaryCache:
    global _commit_cache
    if _commit_cache is None:
        _commit_cache = SummaryCache(config.SUMMARY_CACHE_SIZE)
    return _commit_cache


# =============================================================================
# PROMPTS
# =============================================================================

def _headings_block() -> str:
    return "\n".join(f"## {h}" for h in SUMMARY_HEADINGS)


def build_commit_prompt(commit: EnrichedCommit) -> str:
    files = commit.files_changed or []
    shown = files[:50]
    file_lines = "\n".join(f"- {f}" for f in shown) or "- (no file list available)"
    if len(files) > len(shown):
        file_lines += f"\n- ... and {len(files) - len(shown)} more"

    return f"""You are an expert programmer summarizing a git commit for a project changelog.

Summarize the commit below as terse bullet points (one line each, start with "* ")
under these headings, in this order. Omit a heading entirely when nothing applies.

{_headings_block()}

Rules:
- Describe what changed, not how the diff is formatted
- Mention file names only when they clarify the change
- Never invent changes that the message and file list don't support

## Commit
Hash: {commit.commit_hash}
Author: {commit.author_name or "unknown"}
Message:
{(commit.message or "").strip()}

## Statistics
Files changed: {len(files)}
Additions: {commit.additions}
Deletions: {commit.deletions}

## Files
{file_lines}
"""


def build_file_chunk_prompt(
    path: str,
    content: str,
    chunk_index: Optional[int] = None,
    total_chunks: Optional[int] = None,
) -> str:
    part = ""
    if chunk_index is not None and total_chunks and total_chunks > 1:
        part = f" (part {chunk_index + 1} of {total_chunks})"

    return f"""You are a senior engineer onboarding a junior engineer onto a codebase.

Explain the purpose of the file `{path}`{part} as terse bullet points (one line
each, start with "* ") under these headings, in this order. Omit a heading
entirely when nothing applies.

{_headings_block()}

Keep it under 100 words. Name the important functions, classes and exports.

## Code
```
{content}
```
"""


def build_combine_prompt(summaries: Sequence[str], identifier: str) -> str:
    parts = "\n\n".join(
        f"### Part {i}/{len(summaries)}\n{s.strip()}" for i, s in enumerate(summaries, 1)
    )
    return f"""The following are summaries of consecutive parts of `{identifier}`.

Merge them into ONE summary using the same bullet style and headings:

{_headings_block()}

Remove duplicates, keep every distinct fact, and keep it under 150 words.

{parts}
"""


# =============================================================================
# FALLBACKS (no model)
# =============================================================================

_COMMIT_KEYWORDS = (
    (("fix", "bug", "hotfix", "patch"), "Fixed bug or issue"),
    (("add", "feat", "feature", "implement", "introduce"), "Added new functionality"),
    (("refactor", "cleanup", "clean up", "restructure"), "Refactored existing code"),
    (("test",), "Updated tests"),
    (("doc", "docs", "documentation", "readme"), "Updated documentation"),
)

# Whole words plus common inflections ("fixes", "testing")
_KEYWORD_SUFFIX = r"(?:s|es|d|ed|ing)?"


def _mentions(keyword: str, text: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + _KEYWORD_SUFFIX + r"\b", text) is not None


LANGUAGE_BY_EXTENSION = {
    ".py": "Python",
    ".ts": "TypeScript",
    ".tsx": "TypeScript (React)",
    ".js": "JavaScript",
    ".jsx": "JavaScript (React)",
    ".mjs": "JavaScript",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java",
    ".kt": "Kotlin",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C header",
    ".cpp": "C++",
    ".hpp": "C++ header",
    ".swift": "Swift",
    ".sql": "SQL",
    ".sh": "Shell",
    ".css": "CSS",
    ".scss": "SCSS",
    ".html": "HTML",
    ".md": "Markdown",
    ".json": "JSON",
    ".yml": "YAML",
    ".yaml": "YAML",
    ".toml": "TOML",
    ".prisma": "Prisma schema",
}

_DEFINITION_RE = re.compile(
    r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?(?:pub\s+)?"
    r"(?:def|class|function|interface|type|const|struct|enum|func|fn|trait|model)\s+"
    r"([A-Za-z_$][\w$]*)",
    re.MULTILINE,
)

MAX_LISTED_DEFINITIONS = 10


def fallback_commit_summary(commit: EnrichedCommit) -> str:
    """Keyword bullets, a statistics bullet and the first message line."""
    message = (commit.message or "").strip()
    lowered = message.lower()

    bullets: List[str] = []
    for keywords, text in _COMMIT_KEYWORDS:
        if any(_mentions(k, lowered) for k in keywords):
            bullets.append(text)
    if not bullets:
        bullets.append("Updated code")

    files = len(commit.files_changed or [])
    if files or commit.additions or commit.deletions:
        bullets.append(
            f"Changed {files} file(s) (+{commit.additions}/-{commit.deletions} lines)"
        )
    else:
        bullets.append("No file statistics available")

    first_line = message.splitlines()[0] if message else "(no message)"
    bullets.append(f"Commit message: {first_line}")

    return "\n".join(f"* {b}" for b in bullets)


def detect_language(path: str) -> str:
    _, ext = os.path.splitext(path.lower())
    return LANGUAGE_BY_EXTENSION.get(ext, "Text")


def fallback_file_summary(path: str, content: str) -> str:
    """Language, line count and top-level definitions found by regex."""
    content = content or ""
    line_count = len(content.splitlines())
    names = []
    for match in _DEFINITION_RE.finditer(content):
        name = match.group(1)
        if name not in names:
            names.append(name)

    bullets = [f"{path}: {detect_language(path)} file, {line_count} lines"]
    if names:
        listed = ", ".join(names[:MAX_LISTED_DEFINITIONS])
        if len(names) > MAX_LISTED_DEFINITIONS:
            listed += f" (+{len(names) - MAX_LISTED_DEFINITIONS} more)"
        bullets.append(f"Defines: {listed}")
    else:
        bullets.append("No top-level definitions detected")
    return "\n".join(f"* {b}" for b in bullets)


# =============================================================================
# MODEL CALLS
# =============================================================================

def _resolve_llm(llm):
    if llm is not None:
        return llm
    from neurohub.llm.clients import get_llm_client
    return get_llm_client()


async def _generate_checked(llm, prompt: str) -> str:
    text = await llm.generate_text(
        prompt,
        max_tokens=config.SUMMARY_MAX_TOKENS,
        temperature=config.SUMMARY_TEMPERATURE,
    )
    text = (text or "").strip()
    if len(text) < config.MIN_SUMMARY_CHARS:
        raise ExternalServiceError(
            f"Model returned a summary of {len(text)} chars", transient=True
        )
    return text


async def summarize_commit(
    commit: EnrichedCommit,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
    cache: Optional[SummaryCache] = None,
) -> str:
    """
    Summary text for one commit. Never raises for model failures.

    Only model output is cached; a fallback summary is recomputed next time
    so a later run can still get a model summary.
    """
    if cache is None:
        cache = get_summary_cache()
    key = SummaryCache.key_for(commit.commit_hash, commit.message)
    cached = cache.get(key)
    if cached is not None:
        return cached

    llm = _resolve_llm(llm)
    prompt = build_commit_prompt(commit)
    try:
        text = await call_with_retry(
            lambda: _generate_checked(llm, prompt),
            policy=policy,
            label=f"commit summary {commit.commit_hash[:7]}",
        )
    except ExternalServiceError as e:
        logger.warning(f"[summarizer] fallback summary for commit {commit.commit_hash[:7]}: {e}")
        return fallback_commit_summary(commit)

    cache.put(key, text)
    return text


async def summarize_file_chunk(
    path: str,
    content: str,
    chunk_index: Optional[int] = None,
    total_chunks: Optional[int] = None,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
) -> str:
    """Summary text for one chunk of a file. Never raises for model failures."""
    llm = _resolve_llm(llm)
    prompt = build_file_chunk_prompt(path, content, chunk_index, total_chunks)
    label = f"file summary {path}"
    if chunk_index is not None:
        label += f" [{chunk_index + 1}/{total_chunks or '?'}]"
    try:
        return await call_with_retry(
            lambda: _generate_checked(llm, prompt), policy=policy, label=label
        )
    except ExternalServiceError as e:
        logger.warning(f"[summarizer] fallback summary for {label}: {e}")
        return fallback_file_summary(path, content)


async def combine_summaries(
    summaries: Sequence[str],
    identifier: str,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
) -> str:
    """
    Merge per-chunk summaries into one.

    A single summary comes back unchanged. Several are merged by the model;
    if that fails they are concatenated under "### Part i/n" headers.
    """
    summaries = list(summaries)
    if len(summaries) == 1:
        return summaries[0]

    parts = [s for s in summaries if s and s.strip()]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]

    llm = _resolve_llm(llm)
    prompt = build_combine_prompt(parts, identifier)
    try:
        return await call_with_retry(
            lambda: _generate_checked(llm, prompt),
            policy=policy,
            label=f"combine {identifier}",
        )
    except ExternalServiceError as e:
        logger.warning(f"[summarizer] concatenating {len(parts)} parts of {identifier}: {e}")
        return "\n\n".join(
            f"### Part {i}/{len(parts)}\n{s.strip()}" for i, s in enumerate(parts, 1)
        )


async def summarize_file(
    path: str,
    content: str,
    *,
    llm=None,
    policy: Optional[RetryPolicy] = None,
) -> str:
    """Chunk a file, summarize each chunk in order, combine the results."""
    chunks = chunk_text(content)
    if not chunks:
        return fallback_file_summary(path, content)

    total = len(chunks)
    summaries = []
    for index, chunk in enumerate(chunks):
        summaries.append(
            await summarize_file_chunk(
                path,
                chunk,
                index if total > 1 else None,
                total if total > 1 else None,
                llm=llm,
                policy=policy,
            )
        )
    return await combine_summaries(summaries, path, llm=llm, policy=policy)


__all__ = [
    "SUMMARY_HEADINGS",
    "SummaryCache",
    "get_summary_cache",
    "build_commit_prompt",
    "build_file_chunk_prompt",
    "build_combine_prompt",
    "fallback_commit_summary",
    "fallback_file_summary",
    "detect_language",
    "summarize_commit",
    "summarize_file_chunk",
    "combine_summaries",
    "summarize_file",
]
