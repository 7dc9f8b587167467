"""Tests for indexing.chunker: size band, code blocks, ordering, titles."""

import pytest

from handbook_graph.config.settings import ChunkingConfig
from handbook_graph.indexing.chunker import DocumentChunker, infer_title

MIN, TARGET, MAX = 100, 200, 400


def _paragraph(section, n):
    return f"Sentence number {n} in section {section} talks about orders. Another sentence follows here.\n\n"


def _long_doc():
    parts = []
    for i, count in enumerate([3, 12, 1, 7, 25, 2]):
        parts.append(f"## Section {i}\n\n")
        parts.extend(_paragraph(i, n) for n in range(count))
    return "".join(parts)


def _code_doc():
    intro = "This guide shows the configuration values. " * 3 + "\n\n"
    code = "```python\n" + "".join(f"value_{i} = {i}\n" for i in range(60)) + "```"
    outro = "\n\nAfter the block we explain every value in plain words. " * 3
    return intro, code, intro + code + outro


@pytest.fixture
def chunker():
    return DocumentChunker(MIN, TARGET, MAX)


class TestSizeBand:
    def test_every_chunk_within_band(self, chunker):
        chunks = chunker.chunk(_long_doc(), {"parent_key": "doc|guide"})
        assert len(chunks) > 3
        for chunk in chunks:
            assert MIN <= len(chunk.content) <= MAX, chunk.title

    def test_oversized_code_block_kept_whole(self, chunker):
        _, code, text = _code_doc()
        assert len(code) > MAX
        chunks = chunker.chunk(text)
        holders = [c for c in chunks if code in c.content]
        assert len(holders) == 1
        for chunk in chunks:
            if "```" not in chunk.content:
                assert MIN <= len(chunk.content) <= MAX

    def test_no_chunk_splits_a_fence(self, chunker):
        _, _, text = _code_doc()
        for chunk in chunker.chunk(text):
            assert chunk.content.count("```") in (0, 2)

    def test_overlap_between_consecutive_chunks(self, chunker):
        chunks = chunker.chunk(_long_doc())
        split = [(a, b) for a, b in zip(chunks, chunks[1:]) if b.start_offset < a.end_offset]
        assert split
        for a, b in split:
            assert a.end_offset - b.start_offset == chunker.overlap


class TestOrderingAndCoverage:
    def test_indices_and_offsets(self, chunker):
        text = _long_doc()
        chunks = chunker.chunk(text)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert chunks[0].start_offset == 0
        assert chunks[-1].end_offset == len(text)
        for chunk in chunks:
            assert chunk.content == text[chunk.start_offset : chunk.end_offset]
        for a, b in zip(chunks, chunks[1:]):
            assert a.start_offset < b.start_offset <= a.end_offset

    def test_reconstruction_strips_overlap(self, chunker):
        text = _long_doc()
        chunks = chunker.chunk(text)
        rebuilt = chunks[0].content
        for previous, chunk in zip(chunks, chunks[1:]):
            rebuilt += chunk.content[previous.end_offset - chunk.start_offset :]
        assert rebuilt == text

    def test_keys_and_metadata(self, chunker):
        chunks = chunker.chunk(
            _long_doc(), {"parent_key": "doc|guide", "source_uri": "kb:///guide.md", "source_type": "markdown"}
        )
        assert chunks[0].key == "chunk|doc|guide|0"
        assert chunks[1].key == "chunk|doc|guide|1"
        assert all(c.parent_key == "doc|guide" and c.source_uri == "kb:///guide.md" for c in chunks)


class TestTitles:
    def test_titles_follow_headings(self, chunker):
        text = "# Intro\n\n" + _paragraph(0, 0) * 2 + "## Details\n\n" + _paragraph(1, 0) * 2
        chunks = chunker.chunk(text)
        assert [c.title for c in chunks] == ["Intro", "Details"]

    def test_small_sections_are_merged(self, chunker):
        text = "# A\n\nshort\n\n# B\n\n" + _paragraph(1, 0) * 2
        chunks = chunker.chunk(text)
        assert len(chunks) == 1
        assert chunks[0].title == "A"

    def test_heading_inside_code_is_ignored(self, chunker):
        text = "# Real\n\n```\n# not a heading\n```\n\n" + _paragraph(0, 0) * 2
        chunks = chunker.chunk(text)
        assert [c.title for c in chunks] == ["Real"]

    def test_title_inferred_without_heading(self, chunker):
        text = "Orders overview line\n" + _paragraph(0, 0) * 2
        assert chunker.chunk(text)[0].title == "Orders overview line"

    def test_infer_title_truncates(self):
        title = infer_title("## " + "x" * 200)
        assert len(title) == 80
        assert title.endswith("...")

    def test_infer_title_blank(self):
        assert infer_title("\n  \n") == ""


class TestEdgeCases:
    def test_empty_text(self, chunker):
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\n") == []

    def test_short_document_is_single_chunk(self, chunker):
        chunks = chunker.chunk("# Tiny\n\nJust a line.")
        assert len(chunks) == 1
        assert chunks[0].content == "# Tiny\n\nJust a line."

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            DocumentChunker(500, 200, 400)
        with pytest.raises(ValueError):
            DocumentChunker(0, 200, 400)

    def test_from_config(self):
        chunker = DocumentChunker.from_config(ChunkingConfig(min_size=50, target_size=100, max_size=300))
        assert (chunker.min_size, chunker.target_size, chunker.max_size, chunker.overlap) == (50, 100, 300, 10)
