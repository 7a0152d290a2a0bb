from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

import structlog

from docpatch.models import DocumentTree, TextRun
from docpatch.utils.tree import Path, iter_text_blocks, node_at

logger = structlog.get_logger(__name__)


@dataclass
class TextSpan:
    start: int
    end: int
    text: str
    path: Path
    marks: Tuple[str, ...]
    block_index: int

    @property
    def block_path(self) -> Path:
        return self.path[:-1]


@dataclass
class BlockRange:
    """A text block and the flat range its runs occupy (start == end when empty)."""

    path: Path
    start: int
    end: int
    index: int


class DocumentMapper:
    """
    Flat view of a document tree: ``full_text`` is every run's text in document
    order with nothing added at block boundaries, and ``spans`` maps each
    character back to the run that owns it.

    Methods that split runs mutate ``tree`` and rebuild the map.
    """

    def __init__(self, tree: DocumentTree):
        self.tree = tree
        self.full_text = ""
        self.spans: List[TextSpan] = []
        self.blocks: List[BlockRange] = []
        self._starts: List[int] = []
        self._build_map()

    def _build_map(self):
        parts: List[str] = []
        current = 0
        self.spans = []
        self.blocks = []

        for block_path, block in iter_text_blocks(self.tree):
            block_start = current
            block_index = len(self.blocks)
            for i, run in enumerate(block.content):
                # Empty runs own no characters.
                if not run.text:
                    continue
                end = current + len(run.text)
                self.spans.append(TextSpan(current, end, run.text, block_path + (i,), run.marks, block_index))
                parts.append(run.text)
                current = end
            self.blocks.append(BlockRange(block_path, block_start, current, block_index))

        self.full_text = "".join(parts)
        self._starts = [s.start for s in self.spans]

    def span_at(self, offset: int) -> Optional[TextSpan]:
        """The span owning the character at ``offset``."""
        idx = bisect_right(self._starts, offset) - 1
        if idx < 0:
            return None
        span = self.spans[idx]
        if span.start <= offset < span.end:
            return span
        return None

    def resolve(self, offset: int) -> Tuple[Path, int]:
        """Maps a flat character offset to (run path, offset inside the run)."""
        span = self.span_at(offset)
        if span is None:
            raise IndexError(f"Offset {offset} is outside the document text (length {len(self.full_text)})")
        return span.path, offset - span.start

    def marks_at(self, offset: int) -> Tuple[str, ...]:
        span = self.span_at(offset)
        return span.marks if span else ()

    def in_one_block(self, start: int, end: int) -> bool:
        first = self.span_at(start)
        last = self.span_at(end - 1)
        return first is not None and last is not None and first.block_index == last.block_index

    def text_blocks(self) -> List[BlockRange]:
        return list(self.blocks)

    def isolate(self, start: int, end: int) -> List[Path]:
        """
        Splits runs so that [start, end) is covered by whole runs and returns
        their paths in document order.

        The end is split before the start so that the second split never
        shifts the run the first one produced.
        """
        if start >= end:
            return []
        self._split_at(end)
        self._split_at(start)
        self._build_map()
        paths = [s.path for s in self.spans if s.start >= start and s.end <= end]
        logger.debug(f"Isolated {start}..{end} into {len(paths)} run(s)")
        return paths

    def _split_at(self, offset: int):
        span = self.span_at(offset)
        if span is None or span.start == offset:
            return
        self._split_run_at_index(span.path, offset - span.start)

    def _split_run_at_index(self, path: Path, split_index: int) -> Tuple[TextRun, TextRun]:
        block = node_at(self.tree, path[:-1])
        run = block.content[path[-1]]
        right = TextRun(text=run.text[split_index:], marks=run.marks)
        run.text = run.text[:split_index]
        block.content.insert(path[-1] + 1, right)
        return run, right


def project(tree: DocumentTree) -> Tuple[str, List[TextSpan]]:
    """Returns (full_text, spans) for ``tree``. Pure: the tree is not touched."""
    mapper = DocumentMapper(tree)
    return mapper.full_text, mapper.spans
