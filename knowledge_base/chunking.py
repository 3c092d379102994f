"""
Context-aware text chunking.

Splits normalized document text into ordered, overlapping passages that
prefer to end on paragraph or sentence boundaries. Token counts are
approximated at four characters per token, and every size parameter is
converted to a character budget with the same ratio.
"""
import math
import re
from dataclasses import dataclass
from typing import Dict, List

from .config import CHUNK_MIN_TOKENS, CHUNK_OVERLAP_TOKENS, CHUNK_TARGET_TOKENS

CHARS_PER_TOKEN = 4
BREAK_WINDOW_CHARS = 200

_PARAGRAPH_BREAK = re.compile(r"\n\n")
_SENTENCE_BREAK = re.compile(r"[.!?]\s+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_MARKDOWN_SECTION = re.compile(r"(?=^#{2,3}\s)", re.MULTILINE)

MARKDOWN_MIME_TYPES = ("text/markdown", "text/x-markdown")


@dataclass(frozen=True)
class Chunk:
    """One passage of a document and where it sits in the normalized text."""
    content: str
    index: int
    token_count: int
    start_char: int
    end_char: int

    @property
    def metadata(self) -> Dict[str, int]:
        return {"startChar": self.start_char, "endChar": self.end_char}


def estimate_tokens(text: str) -> int:
    """Approximate token count (~4 characters per token for English)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def normalize_text(text: str) -> str:
    """Normalize line endings, cap blank-line runs at one, trim the ends."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES.sub("\n\n", text).strip()


def _closest_match(pattern: re.Pattern, text: str, start: int, end: int, target: int):
    closest = None
    for match in pattern.finditer(text, start, end):
        if closest is None or abs(match.start() - target) < abs(closest.start() - target):
            closest = match
    return closest


def find_break_point(text: str, target: int, window: int = BREAK_WINDOW_CHARS) -> int:
    """
    Find a natural cut position near ``target``.

    Looks inside ``[target - window, target + window)`` for the break
    closest to ``target``: a paragraph break first, then a sentence end.
    Falls back to a hard cut at ``target``.

    Returns:
        The position just past the chosen break.
    """
    start = max(0, target - window)
    end = min(len(text), target + window)

    paragraph = _closest_match(_PARAGRAPH_BREAK, text, start, end, target)
    if paragraph is not None:
        return paragraph.end()

    sentence = _closest_match(_SENTENCE_BREAK, text, start, end, target)
    if sentence is not None:
        return sentence.end()

    return target


def chunk_text(
    text: str,
    target_tokens: int = CHUNK_TARGET_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
    min_tokens: int = CHUNK_MIN_TOKENS,
) -> List[Chunk]:
    """
    Split text into overlapping chunks with semantic boundaries.

    Args:
        text: Raw document text
        target_tokens: Target chunk size in tokens
        overlap_tokens: Overlap between consecutive chunks in tokens
        min_tokens: Chunks shorter than this are dropped, except that
            non-empty input always yields at least one chunk

    Returns:
        Chunks in document order, indexed from zero without gaps.
        Offsets refer to the normalized text.
    """
    cleaned = normalize_text(text)
    if not cleaned:
        return []

    target_chars = target_tokens * CHARS_PER_TOKEN
    overlap_chars = overlap_tokens * CHARS_PER_TOKEN
    min_chars = min_tokens * CHARS_PER_TOKEN
    total = len(cleaned)

    chunks: List[Chunk] = []
    cursor = 0

    while cursor < total:
        proposed_end = cursor + target_chars

        # Near the end: the remainder becomes the final chunk
        if proposed_end >= total - min_chars:
            content = cleaned[cursor:].strip()
            if content and (len(content) >= min_chars or not chunks):
                chunks.append(Chunk(
                    content=content,
                    index=len(chunks),
                    token_count=estimate_tokens(content),
                    start_char=cursor,
                    end_char=total,
                ))
            break

        end = find_break_point(cleaned, proposed_end)
        if end <= cursor:
            end = proposed_end

        content = cleaned[cursor:end].strip()
        if len(content) >= min_chars:
            chunks.append(Chunk(
                content=content,
                index=len(chunks),
                token_count=estimate_tokens(content),
                start_char=cursor,
                end_char=end,
            ))

        cursor = max(cursor + 1, end - overlap_chars)

    return chunks


def chunk_markdown(
    text: str,
    target_tokens: int = CHUNK_TARGET_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
    min_tokens: int = CHUNK_MIN_TOKENS,
) -> List[Chunk]:
    """
    Chunk markdown along ``##`` / ``###`` headings.

    Consecutive sections are grouped until a group holds at least
    ``min_tokens``; a short trailing group joins the one before it. Each
    group becomes one chunk, unless it exceeds 1.5x ``target_tokens``, in
    which case it is split further with :func:`chunk_text`.
    """
    cleaned = normalize_text(text)
    if not cleaned:
        return []

    min_chars = min_tokens * CHARS_PER_TOKEN

    # (start, end) spans of section groups in the cleaned text
    groups = []
    group_start = None
    offset = 0
    for section in _MARKDOWN_SECTION.split(cleaned):
        section_start, offset = offset, offset + len(section)
        if not section.strip():
            continue
        if group_start is None:
            group_start = section_start
        if len(cleaned[group_start:offset].strip()) >= min_chars:
            groups.append((group_start, offset))
            group_start = None
    if group_start is not None:
        if groups:
            groups[-1] = (groups[-1][0], len(cleaned))
        else:
            groups.append((group_start, len(cleaned)))

    chunks: List[Chunk] = []
    for start, end in groups:
        body = cleaned[start:end]
        content = body.strip()
        if estimate_tokens(content) > target_tokens * 1.5:
            lead = len(body) - len(body.lstrip())
            for sub in chunk_text(content, target_tokens, overlap_tokens, min_tokens):
                chunks.append(Chunk(
                    content=sub.content,
                    index=len(chunks),
                    token_count=sub.token_count,
                    start_char=start + lead + sub.start_char,
                    end_char=start + lead + sub.end_char,
                ))
        else:
            chunks.append(Chunk(
                content=content,
                index=len(chunks),
                token_count=estimate_tokens(content),
                start_char=start,
                end_char=end,
            ))

    return chunks


def chunk_document(text: str, mime_type: str, **options) -> List[Chunk]:
    """Pick the chunking strategy for a MIME type."""
    if mime_type in MARKDOWN_MIME_TYPES:
        chunks = chunk_markdown(text, **options)
        if chunks:
            return chunks
    return chunk_text(text, **options)


def chunk_stats(chunks: List[Chunk]) -> Dict[str, int]:
    """Summary token statistics, stored on the document once it is ready."""
    if not chunks:
        return {
            "totalChunks": 0,
            "totalTokens": 0,
            "avgTokensPerChunk": 0,
            "minTokens": 0,
            "maxTokens": 0,
        }

    token_counts = [c.token_count for c in chunks]
    total_tokens = sum(token_counts)
    return {
        "totalChunks": len(chunks),
        "totalTokens": total_tokens,
        "avgTokensPerChunk": round(total_tokens / len(chunks)),
        "minTokens": min(token_counts),
        "maxTokens": max(token_counts),
    }
