"""
Rewrites an anchor-bounded region of a document by diffing the region's
current text against the replacement and applying only the differences.

Unchanged words keep their runs' marks, so a full rewrite of a section that
only touches a few words leaves the rest of its formatting intact.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from docpatch.diff import PARAGRAPH_BREAK, DiffOp, diff_tokens
from docpatch.errors import EmptyRegion, PatchError
from docpatch.models import (
    AnchorPair,
    Block,
    DocumentTree,
    LocatorQuery,
    PatchResult,
    SkippedEdit,
    ensure_tree,
    validation_reason,
)
from docpatch.patch.locator import locate_all
from docpatch.patch.mapper import BlockRange, DocumentMapper
from docpatch.settings import DEFAULT_SETTINGS, PatchSettings
from docpatch.utils.tree import find_in_parent, node_at, prune_empty_containers, runs_from_items

logger = structlog.get_logger(__name__)

Marks = Tuple[str, ...]
Item = Tuple[str, Marks]


@dataclass
class _Segment:
    """One output paragraph: the region block it reuses (None for a new one) and its text."""

    host: Optional[int]
    items: List[Item] = field(default_factory=list)


def normalize_target_text(text: str) -> str:
    """Blank lines separate paragraphs; a lone newline is read as a space."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n(?:[ \t]*\n)+", PARAGRAPH_BREAK, text)
    return text.replace("\n", " ")


class SectionRewriter:
    def __init__(self, tree: DocumentTree, settings: PatchSettings):
        self.tree = tree
        self.settings = settings
        if not DocumentMapper(tree).blocks:
            # Nothing to host the text; start from one empty paragraph.
            tree.content.append(Block(type="paragraph"))
        self.mapper = DocumentMapper(tree)

    # --- Region ---

    def resolve_region(self, anchors: AnchorPair) -> Tuple[int, int]:
        start, end = 0, len(self.mapper.full_text)
        if anchors.after_text:
            start = self._anchor(anchors.after_text, anchors.occurrence_index).end
        if anchors.before_text:
            end = self._anchor(anchors.before_text, anchors.occurrence_index).start
        if anchors.after_text and anchors.before_text and end <= start:
            raise EmptyRegion(start, end)
        logger.debug(f"Rewrite region {start}..{end} ({anchors.describe()})")
        return start, end

    def _anchor(self, text: str, occurrence_index: Optional[int]):
        query = LocatorQuery(literal=text, occurrence_index=occurrence_index)
        return locate_all(self.mapper, query, self.settings.context_window)[0]

    def region_blocks(self, anchors: AnchorPair, start: int, end: int) -> List[BlockRange]:
        blocks = self.mapper.text_blocks()
        if start < end:
            first = next(b for b in blocks if b.end > start)
            last = next(b for b in reversed(blocks) if b.start < end)
            return blocks[first.index : last.index + 1]

        # Empty region: the change lands inside the block next to the anchor.
        if anchors.after_text:
            return [blocks[self.mapper.span_at(start - 1).block_index]]
        if anchors.before_text:
            return [blocks[self.mapper.span_at(end).block_index]]
        return [blocks[0]]

    # --- Rewrite ---

    def rewrite(self, anchors: AnchorPair, target_text: str) -> int:
        """Applies the rewrite in place and returns the number of changed diff runs."""
        start, end = self.resolve_region(anchors)
        region = self.region_blocks(anchors, start, end)

        old_text, old_marks = self._region_view(region, start, end)
        new_text = normalize_target_text(target_text)
        runs = diff_tokens(old_text, new_text, self.settings)
        changes = sum(1 for r in runs if r.op is not DiffOp.EQUAL)

        segments = self._merge(runs, old_marks, self._items(region[0].start, start))
        segments[-1].items.extend(self._items(end, region[-1].end))

        self._write_back(region, segments)
        logger.info(
            f"Rewrote {len(region)} block(s) into {len(segments)} paragraph(s) with {changes} change(s)"
        )
        return changes

    def _region_view(self, region: List[BlockRange], start: int, end: int) -> Tuple[str, List[Optional[Marks]]]:
        parts: List[str] = []
        marks: List[Optional[Marks]] = []
        for i, block in enumerate(region):
            if i:
                parts.append(PARAGRAPH_BREAK)
                marks.append(None)
            lo, hi = max(block.start, start), min(block.end, end)
            parts.append(self.mapper.full_text[lo:hi])
            marks.extend(self.mapper.marks_at(o) for o in range(lo, hi))
        return "".join(parts), marks

    def _items(self, lo: int, hi: int) -> List[Item]:
        items = []
        for span in self.mapper.spans:
            if span.end <= lo or span.start >= hi:
                continue
            a, b = max(span.start, lo), min(span.end, hi)
            items.append((span.text[a - span.start : b - span.start], span.marks))
        return items

    def _merge(self, runs, old_marks: List[Optional[Marks]], prefix: List[Item]) -> List[_Segment]:
        segments = [_Segment(host=0, items=list(prefix))]
        block_idx = 0
        pos = 0
        last_equal: Marks = ()
        deleted_marks: Optional[Marks] = None

        for run in runs:
            if run.op is DiffOp.EQUAL:
                deleted_marks = None
                for ch in run.text:
                    if ch == PARAGRAPH_BREAK:
                        block_idx += 1
                        segments.append(_Segment(host=block_idx))
                        last_equal = ()
                    else:
                        last_equal = old_marks[pos]
                        segments[-1].items.append((ch, last_equal))
                    pos += 1

            elif run.op is DiffOp.DELETE:
                for ch in run.text:
                    if ch == PARAGRAPH_BREAK:
                        # The next block's remaining text joins the current paragraph.
                        block_idx += 1
                        last_equal = ()
                    elif deleted_marks is None:
                        deleted_marks = old_marks[pos]
                    pos += 1

            else:
                marks = deleted_marks if deleted_marks is not None else last_equal
                pieces = run.text.split(PARAGRAPH_BREAK)
                current = segments[-1]
                moved_host = None
                if len(pieces) > 1 and current.host is not None and not current.items:
                    # New paragraphs at the start of a block go in front of it.
                    moved_host, current.host = current.host, None
                for i, piece in enumerate(pieces):
                    if i:
                        segments.append(_Segment(host=None))
                    if piece:
                        # Text after a new break starts a fresh, unmarked paragraph.
                        segments[-1].items.append((piece, marks if i == 0 else ()))
                if moved_host is not None:
                    segments[-1].host = moved_host

        return segments

    def _write_back(self, region: List[BlockRange], segments: List[_Segment]):
        nodes = [node_at(self.tree, b.path) for b in region]
        hosts = {s.host for s in segments if s.host is not None}

        previous: Optional[Block] = None
        for segment in segments:
            if segment.host is None and not segment.items:
                # A leading or trailing blank line, not a paragraph.
                continue
            content = runs_from_items(segment.items)
            if segment.host is not None:
                block = nodes[segment.host]
                block.content = content
            else:
                block = Block(type="paragraph", content=content)
                if previous is None:
                    siblings, idx = find_in_parent(self.tree, nodes[0])
                    siblings.insert(idx, block)
                else:
                    siblings, idx = find_in_parent(self.tree, previous)
                    siblings.insert(idx + 1, block)
            previous = block

        for i, node in enumerate(nodes):
            if i not in hosts:
                siblings, idx = find_in_parent(self.tree, node)
                del siblings[idx]
        prune_empty_containers(self.tree)


def rewrite_section(
    document: Union[DocumentTree, Dict[str, Any]],
    anchors: Union[AnchorPair, Dict[str, Any], None],
    target_text: str,
    settings: Optional[PatchSettings] = None,
) -> PatchResult:
    """
    Replaces the text between ``anchors`` with ``target_text`` through a
    word-level diff, preserving marks on unchanged words.

    Anchor failures (not found, ambiguous, empty region) fail the whole call:
    ``ok`` is False and the original tree is returned unchanged.
    """
    settings = settings or DEFAULT_SETTINGS
    original = ensure_tree(document)

    try:
        anchors = anchors if isinstance(anchors, AnchorPair) else AnchorPair.model_validate(anchors or {})
    except ValidationError as exc:
        reason = validation_reason(exc)
        logger.warning(f"Rejecting section rewrite: {reason}")
        return _failed(original, "the given anchors", reason, exc.errors()[0]["msg"])

    tree = original.model_copy(deep=True)
    try:
        SectionRewriter(tree, settings).rewrite(anchors, target_text)
    except PatchError as exc:
        logger.warning(f"Section rewrite {anchors.describe()} failed: {exc}")
        return _failed(original, anchors.describe(), exc.reason, str(exc))

    return PatchResult(ok=True, applied_count=1, message=f"Rewrote section {anchors.describe()}", tree=tree)


def _failed(original: DocumentTree, where: str, reason: str, detail: str) -> PatchResult:
    return PatchResult(
        ok=False,
        applied_count=0,
        skipped=(SkippedEdit(index=0, reason=reason, detail=detail),),
        message=f"Could not rewrite section {where}: {detail}",
        tree=original.model_copy(deep=True),
    )
