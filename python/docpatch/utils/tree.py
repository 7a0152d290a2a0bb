"""
Low-level helpers for walking and reshaping a document tree.

Paths are tuples of child indices starting at ``doc.content``; ``(1, 0, 2)``
is ``doc.content[1].content[0].content[2]``.
"""

from typing import Iterable, Iterator, List, Optional, Tuple, Union

import structlog

from docpatch.models import CONTAINER_TYPES, Block, DocumentTree, TextRun, sort_marks

logger = structlog.get_logger(__name__)

Path = Tuple[int, ...]


def iter_text_blocks(tree: DocumentTree) -> Iterator[Tuple[Path, Block]]:
    """Yields every text block (paragraph, heading, codeBlock) in document order."""

    def walk(children: List, prefix: Path):
        for i, node in enumerate(children):
            if not isinstance(node, Block):
                continue
            path = prefix + (i,)
            if node.is_text_block:
                yield path, node
            else:
                yield from walk(node.content, path)

    yield from walk(tree.content, ())


def node_at(tree: DocumentTree, path: Path) -> Union[Block, TextRun]:
    node = tree
    for i in path:
        node = node.content[i]
    return node


def children_of(tree: DocumentTree, path: Path) -> List:
    """The list that holds the node at ``path``."""
    if len(path) == 1:
        return tree.content
    return node_at(tree, path[:-1]).content


def canonicalize_runs(block: Block) -> None:
    """Drops empty runs and merges neighbours whose marks are identical."""
    merged: List[TextRun] = []
    for run in block.content:
        if not run.text:
            continue
        if merged and merged[-1].marks == run.marks:
            merged[-1] = TextRun(text=merged[-1].text + run.text, marks=run.marks)
        else:
            merged.append(run)
    block.content = merged


def runs_from_items(items: Iterable[Tuple[str, Tuple[str, ...]]]) -> List[TextRun]:
    """Builds canonical runs from (text, marks) pieces."""
    holder = Block(type="paragraph", content=[TextRun(text=text, marks=sort_marks(marks)) for text, marks in items])
    canonicalize_runs(holder)
    return holder.content


def prune_empty_containers(tree: DocumentTree) -> int:
    """
    Removes container blocks (lists, list items, quotes) left without children.
    Returns how many were removed. Text blocks are never pruned: an empty
    paragraph is still a paragraph.
    """
    removed = 0

    def prune(children: List) -> List:
        nonlocal removed
        kept = []
        for node in children:
            if isinstance(node, Block) and node.type in CONTAINER_TYPES:
                node.content = prune(node.content)
                if not node.content:
                    removed += 1
                    continue
            kept.append(node)
        return kept

    tree.content = prune(tree.content)
    if removed:
        logger.debug(f"Pruned {removed} empty container block(s)")
    return removed


def build_block(paragraph_type: str, content: str = "", heading_level: Optional[int] = None) -> Block:
    """
    Creates a new block of the given kind holding ``content`` as one unmarked run.

    ``blockquote`` wraps a paragraph; ``bulletList``/``orderedList`` wrap a
    single ``listItem > paragraph``.
    """
    runs = [TextRun(text=content)] if content else []

    if paragraph_type == "heading":
        return Block(type="heading", attrs={"level": heading_level}, content=runs)
    if paragraph_type == "codeBlock":
        return Block(type="codeBlock", content=runs)

    paragraph = Block(type="paragraph", content=runs)
    if paragraph_type == "blockquote":
        return Block(type="blockquote", content=[paragraph])
    if paragraph_type in ("bulletList", "orderedList"):
        return Block(type=paragraph_type, content=[Block(type="listItem", content=[paragraph])])
    return paragraph


def find_in_parent(tree: DocumentTree, target: Block) -> Tuple[List, int]:
    """Returns (sibling list, index) for a block, matched by identity."""

    def walk(children: List):
        for i, node in enumerate(children):
            if node is target:
                return children, i
            if isinstance(node, Block):
                found = walk(node.content)
                if found:
                    return found
        return None

    found = walk(tree.content)
    if found is None:
        raise LookupError(f"{target.type} block is not part of this tree")
    return found
