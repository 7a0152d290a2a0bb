"""
Lightweight styled-text form of a document tree.

Paragraphs are separated by blank lines, headings start with ``#`` (one per
level) and inline marks are written as tags: ``[b]bold[/b]``, ``[i]..[/i]``,
``[u]..[/u]``, ``[code]..[/code]``, ``[s]..[/s]``.

There is no escape syntax. Brackets that do not spell a mark tag (``[A]``,
``[1]``) are plain text, but run text that itself contains a tag such as
``[b]`` reads back as markup, so such trees do not survive a round trip
through ``tree_to_styled_text`` and ``tree_from_styled_text``.
"""

import re
from typing import List, Set

import structlog

from docpatch.models import MARK_ORDER, Block, DocumentTree, TextRun, sort_marks
from docpatch.utils.tree import canonicalize_runs, iter_text_blocks

logger = structlog.get_logger(__name__)

MARK_TAGS = {"bold": "b", "italic": "i", "underline": "u", "code": "code", "strike": "s"}
TAG_MARKS = {tag: mark for mark, tag in MARK_TAGS.items()}

_TAG_PATTERN = re.compile(r"\[(/?)(b|i|u|code|s)\]")
_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*)$", re.DOTALL)


def parse_styled_inline(text: str) -> List[TextRun]:
    """Turns tagged text into canonical runs. Unbalanced closing tags are ignored."""
    runs: List[TextRun] = []
    active: Set[str] = set()
    last_idx = 0

    for match in _TAG_PATTERN.finditer(text):
        literal = text[last_idx : match.start()]
        if literal:
            runs.append(TextRun(text=literal, marks=sort_marks(active)))
        closing, tag = match.groups()
        mark = TAG_MARKS[tag]
        if closing:
            if mark not in active:
                logger.debug(f"Ignoring unbalanced [/{tag}]")
            active.discard(mark)
        else:
            active.add(mark)
        last_idx = match.end()

    remaining = text[last_idx:]
    if remaining:
        runs.append(TextRun(text=remaining, marks=sort_marks(active)))

    holder = Block(type="paragraph", content=runs)
    canonicalize_runs(holder)
    return holder.content


def tree_from_styled_text(text: str) -> DocumentTree:
    """Builds a tree of paragraphs and headings from styled text."""
    blocks: List[Block] = []
    text = text.replace("\r\n", "\n")

    for chunk in re.split(r"\n[ \t]*\n", text):
        chunk = chunk.strip()
        if not chunk:
            continue
        # A lone newline inside a paragraph reads as a space.
        chunk = re.sub(r"[ \t]*\n[ \t]*", " ", chunk)

        heading = _HEADING_PATTERN.match(chunk)
        if heading:
            level = len(heading.group(1))
            blocks.append(Block(type="heading", attrs={"level": level}, content=parse_styled_inline(heading.group(2))))
        else:
            blocks.append(Block(type="paragraph", content=parse_styled_inline(chunk)))

    return DocumentTree(content=blocks)


def render_runs(runs: List[TextRun]) -> str:
    """Tags each run with its marks. Tag-shaped text inside a run is written as is."""
    parts = []
    for run in runs:
        tags = [MARK_TAGS[m] for m in MARK_ORDER if m in run.marks]
        opening = "".join(f"[{t}]" for t in tags)
        closing = "".join(f"[/{t}]" for t in reversed(tags))
        parts.append(f"{opening}{run.text}{closing}")
    return "".join(parts)


def tree_to_styled_text(tree: DocumentTree) -> str:
    """
    Renders every text block as one styled paragraph, in document order.
    Container blocks (lists, quotes) contribute their paragraphs only.
    """
    paragraphs = []
    for _, block in iter_text_blocks(tree):
        if block.type == "codeBlock":
            body = "".join(r.text for r in block.content)
        else:
            body = render_runs(block.content)
        if block.type == "heading":
            body = "#" * block.attrs["level"] + " " + body
        paragraphs.append(body)
    return "\n\n".join(paragraphs)
