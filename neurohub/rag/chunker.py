"""
Text chunker for file contents.

Splits text into overlapping windows no longer than `size` characters.
Break points are chosen with a layered separator strategy: the last
paragraph boundary inside the window, else the last line boundary, else a
hard cut at `size`.

Every chunk is a contiguous slice of the input, and chunk i+1 starts at or
before the end of chunk i (never more than `overlap` characters before it).
Dropping each chunk's overlap prefix and concatenating therefore gives back
the input text.
"""

from typing import List, Optional, Tuple

from neurohub.rag import config

# Paragraph, then line. Anything else is a hard cut.
SEPARATORS: Tuple[str, ...] = ("\n\n", "\n")


def _find_break(text: str, start: int, hard_end: int, size: int) -> int:
    """End offset of the chunk starting at `start` (exclusive, <= hard_end)."""
    # Don't accept a break that leaves a tiny chunk
    low = start + max(1, size // 2)
    for sep in SEPARATORS:
        idx = text.rfind(sep, low, hard_end)
        if idx != -1:
            return idx + len(sep)
    return hard_end


def _align_start(text: str, start: int, end: int) -> int:
    """Move an overlap start forward to the next line start, if one exists before `end`."""
    newline = text.find("\n", start, end)
    if newline != -1:
        return newline + 1
    return start


def chunk_spans(text: str, size: Optional[int] = None, overlap: Optional[int] = None) -> List[Tuple[int, int]]:
    """
    (start, end) offsets of every chunk of `text`.

    Raises ValueError when size < 1 or overlap is not smaller than size.
    """
    size = config.CHUNK_SIZE if size is None else size
    overlap = config.CHUNK_OVERLAP if overlap is None else overlap
    if size < 1:
        raise ValueError("chunk size must be positive")
    if overlap < 0 or overlap >= size:
        raise ValueError(f"overlap ({overlap}) must be in [0, size={size})")

    length = len(text or "")
    if length == 0:
        return []
    if length <= size:
        return [(0, length)]

    spans: List[Tuple[int, int]] = []
    start = 0
    while start < length:
        hard_end = min(start + size, length)
        end = length if hard_end == length else _find_break(text, start, hard_end, size)
        spans.append((start, end))
        if end >= length:
            break
        next_start = max(end - overlap, start + 1)
        start = _align_start(text, next_start, end)
    return spans


def chunk_text(text: str, size: Optional[int] = None, overlap: Optional[int] = None) -> List[str]:
    """
    Split text into overlapping chunks of at most `size` characters.

    Empty text gives [], text that fits gives [text].
    """
    if not text:
        return []
    return [text[start:end] for start, end in chunk_spans(text, size, overlap)]
