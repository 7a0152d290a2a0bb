from dataclasses import dataclass
from typing import List, Union

import structlog

from docpatch.errors import AmbiguousMatch, CrossBlockLiteral, SpanNotFound
from docpatch.models import LocatorQuery
from docpatch.patch.mapper import DocumentMapper
from docpatch.settings import DEFAULT_SETTINGS

logger = structlog.get_logger(__name__)

LINE_BREAKS = ("\n", "\r", "\u2029")


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Span must be non-empty, got {self.start}..{self.end}")


def find_occurrences(text: str, literal: str) -> List[int]:
    """Start offsets of every exact occurrence, overlapping ones included."""
    offsets = []
    idx = text.find(literal)
    while idx != -1:
        offsets.append(idx)
        idx = text.find(literal, idx + 1)
    return offsets


def _without_overlaps(offsets: List[int], length: int) -> List[int]:
    # Several spans are edited in one pass, so they must not share characters.
    kept: List[int] = []
    for o in offsets:
        if not kept or o >= kept[-1] + length:
            kept.append(o)
    return kept


def _filter_by_context(text: str, offsets: List[int], query: LocatorQuery, window: int) -> List[int]:
    length = len(query.literal)

    def before_ok(o: int) -> bool:
        return query.context_before in text[max(0, o - window) : o]

    def after_ok(o: int) -> bool:
        return query.context_after in text[o + length : o + length + window]

    if query.context_before and query.context_after:
        by_before = [o for o in offsets if before_ok(o)]
        by_after = [o for o in offsets if after_ok(o)]
        both = [o for o in by_before if o in by_after]
        if not both and by_before and by_after:
            raise AmbiguousMatch(
                query.literal,
                sorted(set(by_before + by_after)),
                hint="contextBefore and contextAfter point at different occurrences",
            )
        return both
    if query.context_before:
        return [o for o in offsets if before_ok(o)]
    if query.context_after:
        return [o for o in offsets if after_ok(o)]
    return offsets


def locate(
    mapper: DocumentMapper,
    query: LocatorQuery,
    context_window: int = DEFAULT_SETTINGS.context_window,
    select_all: bool = False,
) -> Union[Span, List[Span]]:
    """
    Resolves ``query`` against the mapper's flat text.

    Returns a single Span, or a list of Spans when ``max_occurrences`` or
    ``select_all`` selects several. Raises SpanNotFound, CrossBlockLiteral or
    AmbiguousMatch; it never guesses between equally good candidates.
    """
    literal = query.literal
    if any(brk in literal for brk in LINE_BREAKS):
        raise CrossBlockLiteral(literal)

    offsets = find_occurrences(mapper.full_text, literal)
    if not offsets:
        raise SpanNotFound(literal)

    inside = [o for o in offsets if mapper.in_one_block(o, o + len(literal))]
    if not inside:
        raise CrossBlockLiteral(literal)
    if len(inside) < len(offsets):
        logger.debug(f"Discarded {len(offsets) - len(inside)} cross-paragraph occurrence(s) of '{literal}'")

    candidates = _filter_by_context(mapper.full_text, inside, query, context_window)
    if not candidates:
        raise SpanNotFound(literal, hint="no occurrence matches the given context")

    def to_span(o: int) -> Span:
        return Span(o, o + len(literal))

    if select_all:
        return [to_span(o) for o in _without_overlaps(candidates, len(literal))]

    if query.occurrence_index is not None:
        n = query.occurrence_index
        if n > len(candidates):
            raise SpanNotFound(literal, hint=f"occurrence {n} requested but only {len(candidates)} found")
        return to_span(candidates[n - 1])

    if len(candidates) == 1:
        return to_span(candidates[0])

    if query.max_occurrences is not None:
        picked = _without_overlaps(candidates, len(literal))[: query.max_occurrences]
        return [to_span(o) for o in picked]

    logger.info(
        f"'{literal}' matched {len(candidates)} times with no disambiguator; "
        "contextBefore/contextAfter or occurrenceIndex would pick one"
    )
    raise AmbiguousMatch(literal, candidates)


def locate_all(
    mapper: DocumentMapper,
    query: LocatorQuery,
    context_window: int = DEFAULT_SETTINGS.context_window,
    select_all: bool = False,
) -> List[Span]:
    """Same as :func:`locate` but always returns a list."""
    found = locate(mapper, query, context_window, select_all)
    return found if isinstance(found, list) else [found]
