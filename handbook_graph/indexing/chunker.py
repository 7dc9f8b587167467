"""
Markdown document chunker.

Splits long-form documentation into bounded, overlapping segments:

1. Split at heading lines (headings inside fenced code are ignored).
2. Merge sections shorter than ``min_size`` into a neighbour.
3. Cut sections longer than ``max_size`` near ``target_size`` at the best
   natural break (paragraph, then sentence, then line), carrying
   ``target_size // 10`` characters of overlap into the next chunk.
4. Never cut inside a fenced code block; a block that does not fit is kept
   whole even when that exceeds ``max_size``.
"""

from __future__ import annotations

import bisect
import logging
import re
from typing import Any

from handbook_graph.config.settings import ChunkingConfig
from handbook_graph.graph.models import DocChunkNode, node_key

LOG = logging.getLogger("indexing.chunker")

_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*$", re.MULTILINE)
_CODE_BLOCK = re.compile(r"```.*?(?:```|\Z)", re.DOTALL)

# Natural break points, most preferred first
_BREAK_PATTERNS = (
    re.compile(r"\n[ \t]*\n"),  # paragraph
    re.compile(r"[.!?](?=\s)"),  # sentence
    re.compile(r"\n"),  # line
)

TITLE_MAX_LENGTH = 80


def _containing(pos: int, spans: list[tuple[int, int]]) -> tuple[int, int] | None:
    for start, end in spans:
        if start < pos < end:
            return start, end
    return None


def infer_title(content: str) -> str:
    """Title from the first non-blank line, without heading markers."""
    for line in content.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            if len(line) > TITLE_MAX_LENGTH:
                return line[: TITLE_MAX_LENGTH - 3] + "..."
            return line
    return ""


class DocumentChunker:
    """Heading-aware markdown chunker with a min/target/max size band."""

    def __init__(self, min_size: int = 300, target_size: int = 800, max_size: int = 1500) -> None:
        if not 0 < min_size <= target_size <= max_size:
            raise ValueError(
                f"chunk sizes must satisfy 0 < min <= target <= max, got {min_size}/{target_size}/{max_size}"
            )
        self.min_size = min_size
        self.target_size = target_size
        self.max_size = max_size
        self.overlap = target_size // 10

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> "DocumentChunker":
        return cls(config.min_size, config.target_size, config.max_size)

    def chunk(self, text: str, metadata: dict[str, Any] | None = None) -> list[DocChunkNode]:
        """
        Split ``text`` into chunk nodes, in document order.

        Recognized metadata keys: ``parent_key`` (owning documentation node),
        ``source_uri``, ``source_type``.
        """
        metadata = metadata or {}
        parent_key = metadata.get("parent_key", "doc")
        source_uri = metadata.get("source_uri", "")
        source_type = metadata.get("source_type", "markdown")

        if not text or not text.strip():
            return []

        code_spans = [(m.start(), m.end()) for m in _CODE_BLOCK.finditer(text)]
        headings = [
            (m.start(), m.group(2).strip())
            for m in _HEADING.finditer(text)
            if _containing(m.start(), code_spans) is None
        ]
        heading_starts = [pos for pos, _ in headings]

        spans: list[tuple[int, int]] = []
        for start, end in self._merge_small(self._sections(len(text), heading_starts)):
            spans.extend(self._split(text, start, end, code_spans))

        chunks: list[DocChunkNode] = []
        for start, end in spans:
            content = text[start:end]
            if not content.strip():
                continue
            index = len(chunks)
            title_at = bisect.bisect_right(heading_starts, start) - 1
            title = headings[title_at][1] if title_at >= 0 else infer_title(content)
            chunks.append(
                DocChunkNode(
                    key=node_key("chunk", parent_key, str(index)),
                    content=content,
                    source_uri=source_uri,
                    source_type=source_type,
                    chunk_index=index,
                    start_offset=start,
                    end_offset=end,
                    title=title,
                    parent_key=parent_key,
                )
            )

        LOG.debug("Chunked %s (%d chars) into %d chunks", source_uri or parent_key, len(text), len(chunks))
        return chunks

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    def _sections(length: int, heading_starts: list[int]) -> list[tuple[int, int]]:
        bounds = sorted({0, *heading_starts, length})
        return [(a, b) for a, b in zip(bounds, bounds[1:]) if b > a]

    def _merge_small(self, sections: list[tuple[int, int]]) -> list[tuple[int, int]]:
        """Fold undersized sections into a neighbour; oversized results are split later."""
        groups: list[tuple[int, int]] = []
        for start, end in sections:
            if groups and groups[-1][1] - groups[-1][0] < self.min_size:
                groups[-1] = (groups[-1][0], end)
                continue
            groups.append((start, end))

        if len(groups) > 1 and groups[-1][1] - groups[-1][0] < self.min_size:
            groups[-2:] = [(groups[-2][0], groups[-1][1])]
        return groups

    def _split(
        self,
        text: str,
        start: int,
        end: int,
        code_spans: list[tuple[int, int]],
    ) -> list[tuple[int, int]]:
        """Cut one section into overlapping spans inside the size band."""
        spans: list[tuple[int, int]] = []
        pos = start
        while True:
            if end - pos <= self.max_size:
                spans.append((pos, end))
                return spans

            lo = pos + self.min_size
            hi = min(pos + self.max_size, end - self.min_size)
            cut = self._find_break(text, lo, hi, pos + self.target_size)

            block = _containing(cut, code_spans)
            if block is not None:
                block_start, block_end = block
                if block_start - pos >= self.min_size:
                    cut = block_start
                else:
                    cut = end if end - block_end < self.min_size else block_end

            spans.append((pos, cut))
            if cut >= end:
                return spans

            next_pos = cut - self.overlap
            if next_pos <= pos or _containing(next_pos, code_spans) is not None:
                next_pos = cut
            pos = next_pos

    @staticmethod
    def _find_break(text: str, lo: int, hi: int, target: int) -> int:
        """Break position in ``[lo, hi]`` closest to ``target``, by preference order."""
        target = min(max(target, lo), hi)
        for pattern in _BREAK_PATTERNS:
            best: int | None = None
            for match in pattern.finditer(text, lo, hi):
                pos = match.end()
                if best is None or abs(pos - target) < abs(best - target):
                    best = pos
            if best is not None:
                return best
        return hi
