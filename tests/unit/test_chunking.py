"""Unit tests for the chunker."""

import pytest

from knowledge_base.chunking import (
    chunk_document,
    chunk_markdown,
    chunk_stats,
    chunk_text,
    estimate_tokens,
    find_break_point,
    normalize_text,
)

SENTENCE = "The quick brown fox jumps over the lazy dog. "  # 45 chars


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_normalize_text_line_endings_and_blank_runs() -> None:
    text = "  a\r\nb\rc\n\n\n\n\nd  "

    assert normalize_text(text) == "a\nb\nc\n\nd"


def test_empty_and_whitespace_input_gives_no_chunks() -> None:
    assert chunk_text("") == []
    assert chunk_text("   \n\n\t ") == []


def test_short_text_is_one_chunk_with_whole_text() -> None:
    """Below the minimum size the whole normalized text is the only chunk."""
    chunks = chunk_text("  Hello world.\r\n")

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].content == "Hello world."
    assert chunks[0].start_char == 0
    assert chunks[0].end_char == len("Hello world.")
    assert chunks[0].token_count == estimate_tokens("Hello world.")


def test_3000_chars_without_breaks_gives_two_overlapping_chunks() -> None:
    """3,000 characters, no paragraph or sentence breaks: hard cut at 2,000, 200 overlap."""
    text = "x" * 3000

    chunks = chunk_text(text)

    assert len(chunks) == 2
    assert [c.index for c in chunks] == [0, 1]
    assert chunks[0].start_char == 0
    assert chunks[0].end_char == 2000
    assert chunks[1].start_char == 1800
    assert chunks[1].end_char == 3000
    assert chunks[0].end_char - chunks[1].start_char == 200
    assert all(len(c.content) >= 400 for c in chunks)


def test_3000_chars_of_sentences_breaks_after_closest_sentence() -> None:
    """The cut lands after the sentence end nearest the 2,000 character target."""
    text = (SENTENCE * 67).strip()  # 3014 chars, no paragraph breaks

    chunks = chunk_text(text)

    assert len(chunks) == 2
    # Sentence ends sit at 45k + 43; the closest to 2000 is 1978, cut after the space
    assert chunks[0].end_char == 1980
    assert chunks[0].content.endswith("lazy dog.")
    assert chunks[1].start_char == 1780
    assert chunks[0].end_char - chunks[1].start_char == 200
    assert all(len(c.content) >= 400 for c in chunks)


def test_paragraph_break_preferred_over_sentence_end() -> None:
    para = "word " * 380  # 1900 chars
    text = para.strip() + ".\n\n" + ("More text here. " * 120).strip()

    chunks = chunk_text(text)

    assert chunks[0].content.endswith(".")
    assert chunks[0].end_char == text.index("\n\n") + 2


def test_find_break_point_falls_back_to_target() -> None:
    text = "y" * 1000

    assert find_break_point(text, 500) == 500


def test_find_break_point_ignores_breaks_outside_window() -> None:
    text = "a" * 100 + ". " + "b" * 900

    assert find_break_point(text, 600, window=200) == 600
    assert find_break_point(text, 250, window=200) == 102


def test_indices_are_contiguous_and_offsets_non_decreasing() -> None:
    text = "\n\n".join(SENTENCE * (i % 7 + 3) for i in range(60))

    chunks = chunk_text(text)

    assert len(chunks) > 3
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.start_char >= prev.start_char
        assert cur.end_char >= prev.end_char
    for c in chunks:
        assert len(c.content) >= 400


def test_only_adjacent_chunks_overlap() -> None:
    text = "z" * 10000

    chunks = chunk_text(text)

    for first, third in zip(chunks, chunks[2:]):
        assert first.end_char <= third.start_char


def test_chunking_is_deterministic() -> None:
    text = "\n\n".join(SENTENCE * 20 for _ in range(10))

    assert chunk_text(text) == chunk_text(text)


def test_small_final_remainder_is_dropped_when_chunks_exist() -> None:
    """A tail shorter than the minimum (after trimming) is not emitted as its own chunk."""
    text = "x" * 1790 + " " * 914 + "tail"

    chunks = chunk_text(text)

    assert len(chunks) == 1
    assert chunks[0].content == "x" * 1790
    assert "tail" not in chunks[0].content


def test_custom_budgets() -> None:
    text = "q" * 1000

    chunks = chunk_text(text, target_tokens=50, overlap_tokens=10, min_tokens=10)

    assert len(chunks) > 1
    assert chunks[0].end_char == 200
    assert chunks[1].start_char == 160


def test_metadata_carries_offsets() -> None:
    chunk = chunk_text("Some short text.")[0]

    assert chunk.metadata == {"startChar": 0, "endChar": 16}


# ==================== Markdown ====================

def test_markdown_splits_on_headings() -> None:
    text = "## Intro\n" + "a" * 500 + "\n\n## Details\n" + "b" * 500

    chunks = chunk_markdown(text)

    assert len(chunks) == 2
    assert chunks[0].content.startswith("## Intro")
    assert chunks[1].content.startswith("## Details")
    assert chunks[1].content.endswith("b")
    assert [c.index for c in chunks] == [0, 1]


def test_markdown_groups_small_sections() -> None:
    text = "# Title\n\n## One\nshort\n\n## Two\nalso short\n\n### Three\ntiny"

    chunks = chunk_markdown(text)

    assert len(chunks) == 1
    assert "## One" in chunks[0].content
    assert "### Three" in chunks[0].content


def test_markdown_trailing_small_section_joins_previous() -> None:
    text = "## Big\n" + "c" * 600 + "\n\n## Small\nend"

    chunks = chunk_markdown(text)

    assert len(chunks) == 1
    assert chunks[0].content.endswith("## Small\nend")


def test_markdown_large_section_is_rechunked_with_document_offsets() -> None:
    body = "d" * 4000
    text = "## Huge\n" + body

    chunks = chunk_markdown(text)

    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for c in chunks:
        assert text[c.start_char:c.end_char].strip() == c.content


def test_chunk_document_dispatches_on_mime_type() -> None:
    text = "## A\n" + "a" * 500 + "\n\n## B\n" + "b" * 500

    as_markdown = chunk_document(text, "text/markdown")
    as_plain = chunk_document(text, "text/plain")

    assert as_markdown == chunk_markdown(text)
    assert as_plain == chunk_text(text)


def test_chunk_document_empty_markdown_returns_nothing() -> None:
    assert chunk_document("\n\n  ", "text/markdown") == []


# ==================== Stats ====================

def test_chunk_stats() -> None:
    chunks = chunk_text("x" * 3000)

    stats = chunk_stats(chunks)

    assert stats["totalChunks"] == 2
    assert stats["totalTokens"] == 500 + 300
    assert stats["avgTokensPerChunk"] == 400
    assert stats["minTokens"] == 300
    assert stats["maxTokens"] == 500


def test_chunk_stats_empty() -> None:
    assert chunk_stats([]) == {
        "totalChunks": 0,
        "totalTokens": 0,
        "avgTokensPerChunk": 0,
        "minTokens": 0,
        "maxTokens": 0,
    }


@pytest.mark.parametrize("length", [1, 399, 400, 2399, 2400, 2401, 5000])
def test_non_empty_input_yields_at_least_one_chunk(length: int) -> None:
    chunks = chunk_text("w" * length)

    assert len(chunks) >= 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
