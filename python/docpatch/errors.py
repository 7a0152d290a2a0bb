"""
Exceptions raised while locating spans and patching a document tree.

Each error carries a short ``reason`` string. The batch engine copies it into
the skip list so the caller (human or agent) can retry with a more specific
disambiguator.
"""

from typing import List, Optional


class PatchError(Exception):
    """Base class for every failure the engine reports per edit."""

    reason = "PatchError"

    def __init__(self, message: str, text: Optional[str] = None):
        self.text = text
        super().__init__(message)


class SpanNotFound(PatchError):
    reason = "NotFound"

    def __init__(self, text: str, hint: Optional[str] = None):
        self.hint = hint
        message = f"Could not find '{_preview(text)}'"
        if hint:
            message += f" ({hint})"
        super().__init__(message, text)


class CrossBlockLiteral(SpanNotFound):
    """The literal only occurs across a paragraph boundary."""

    reason = "CrossBlockLiteral"

    def __init__(self, text: str):
        super().__init__(text, hint="text crosses a paragraph boundary; search within one paragraph")


class AmbiguousMatch(PatchError):
    reason = "Ambiguous"

    def __init__(self, text: str, offsets: List[int], hint: Optional[str] = None):
        self.offsets = offsets
        message = f"Found {len(offsets)} occurrences of '{_preview(text)}'"
        if hint:
            message += f" ({hint})"
        else:
            message += "; use contextBefore/contextAfter, occurrenceIndex or maxOccurrences"
        super().__init__(message, text)


class EmptyRegion(PatchError):
    reason = "EmptyRegion"

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end
        super().__init__(f"Anchors leave nothing to rewrite (region {start}..{end})")


class MalformedTree(PatchError, ValueError):
    """The supplied document does not satisfy the tree invariants."""

    reason = "MalformedTree"


def _preview(text: str, limit: int = 40) -> str:
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
