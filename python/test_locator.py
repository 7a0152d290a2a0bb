"""
Tests for the flat projection and the span locator.

Run: python3 test_locator.py
From: python/
"""

import sys

sys.path.insert(0, '.')

from docpatch.errors import AmbiguousMatch, CrossBlockLiteral, SpanNotFound
from docpatch.markup import tree_from_styled_text
from docpatch.models import LocatorQuery
from docpatch.patch.locator import Span, find_occurrences, locate, locate_all
from docpatch.patch.mapper import DocumentMapper, project


def _mapper(text):
    return DocumentMapper(tree_from_styled_text(text))


def test_projection_is_pure_and_idempotent():
    tree = tree_from_styled_text("Hello [b]big[/b] world\n\nSecond one")
    before = tree.to_json()

    full_1, spans_1 = project(tree)
    full_2, spans_2 = project(tree)

    assert full_1 == "Hello big worldSecond one"
    assert full_1 == full_2
    assert spans_1 == spans_2
    assert tree.to_json() == before
    assert [s.text for s in spans_1] == ["Hello ", "big", " world", "Second one"]
    assert spans_1[1].marks == ("bold",)
    print("PASS: projection is pure and idempotent")


def test_reverse_lookup():
    mapper = _mapper("Hello [b]big[/b] world\n\nSecond one")

    path, run_offset = mapper.resolve(7)
    assert path == (0, 1)
    assert run_offset == 1
    assert mapper.marks_at(7) == ("bold",)
    assert mapper.marks_at(0) == ()
    assert mapper.span_at(15).block_index == 1
    assert mapper.span_at(len(mapper.full_text)) is None
    print("PASS: offset resolves to run path and marks")


def test_isolate_splits_runs_at_boundaries():
    mapper = _mapper("The quick brown fox")

    paths = mapper.isolate(4, 9)
    assert paths == [(0, 1)]
    assert [s.text for s in mapper.spans] == ["The ", "quick", " brown fox"]
    assert mapper.full_text == "The quick brown fox"
    print("PASS: isolate splits runs at span boundaries")


def test_text_blocks_include_empty_ones():
    tree = tree_from_styled_text("One\n\nTwo")
    tree.content.insert(1, tree.content[0].model_copy(update={"content": []}))
    mapper = DocumentMapper(tree)

    ranges = [(b.start, b.end) for b in mapper.text_blocks()]
    assert ranges == [(0, 3), (3, 3), (3, 6)]
    print("PASS: empty text blocks are listed")


def test_overlapping_occurrences():
    assert find_occurrences("aaaa", "aa") == [0, 1, 2]
    assert find_occurrences("abc", "x") == []
    print("PASS: overlapping occurrences are all found")


def test_single_match():
    mapper = _mapper("The cat sat.")
    span = locate(mapper, LocatorQuery(literal="cat"))
    assert span == Span(4, 7)
    print("PASS: single match")


def test_ambiguity_is_refused():
    mapper = _mapper("a cat, a cat, a cat")
    try:
        locate(mapper, LocatorQuery(literal="cat"))
        assert False, "expected AmbiguousMatch"
    except AmbiguousMatch as exc:
        assert exc.offsets == [2, 9, 16]
        assert exc.reason == "Ambiguous"
    print("PASS: ambiguous literal is refused")


def test_occurrence_index_is_deterministic():
    mapper = _mapper("a cat, a cat, a cat")
    query = LocatorQuery(literal="cat", occurrence_index=2)

    assert locate(mapper, query) == Span(9, 12)
    assert locate(mapper, query) == Span(9, 12)

    try:
        locate(mapper, LocatorQuery(literal="cat", occurrence_index=4))
        assert False, "expected SpanNotFound"
    except SpanNotFound as exc:
        assert "occurrence 4" in str(exc)
    print("PASS: occurrenceIndex picks the same span every time")


def test_max_occurrences_and_select_all():
    mapper = _mapper("x x x")

    assert locate(mapper, LocatorQuery(literal="x", max_occurrences=2)) == [Span(0, 1), Span(2, 3)]
    assert locate_all(mapper, LocatorQuery(literal="x"), select_all=True) == [Span(0, 1), Span(2, 3), Span(4, 5)]
    # occurrenceIndex wins over maxOccurrences
    assert locate(mapper, LocatorQuery(literal="x", occurrence_index=3, max_occurrences=2)) == Span(4, 5)
    print("PASS: maxOccurrences and select_all")


def test_select_all_skips_overlaps():
    mapper = _mapper("aaaa")
    assert locate_all(mapper, LocatorQuery(literal="aa"), select_all=True) == [Span(0, 2), Span(2, 4)]
    print("PASS: multi-span selection never overlaps")


def test_context_narrows_candidates():
    mapper = _mapper("first cat here. second cat there.")

    assert locate(mapper, LocatorQuery(literal="cat", context_before="second"), 10) == Span(23, 26)
    assert locate(mapper, LocatorQuery(literal="cat", context_after=" here"), 10) == Span(6, 9)

    try:
        locate(mapper, LocatorQuery(literal="cat", context_before="nowhere"), 10)
        assert False, "expected SpanNotFound"
    except SpanNotFound as exc:
        assert "context" in str(exc)
    print("PASS: context narrows candidates")


def test_context_window_bounds_the_search():
    mapper = _mapper("marker " + "filler " * 20 + "cat")
    query = LocatorQuery(literal="cat", context_before="marker")

    assert locate(mapper, query, 200) == Span(147, 150)
    try:
        locate(mapper, query, 80)
        assert False, "expected SpanNotFound"
    except SpanNotFound:
        pass
    print("PASS: context must fall inside the window")


def test_contradictory_context_is_ambiguous():
    mapper = _mapper("first cat here. second cat there.")
    query = LocatorQuery(literal="cat", context_before="first", context_after="there")

    try:
        locate(mapper, query, 10)
        assert False, "expected AmbiguousMatch"
    except AmbiguousMatch as exc:
        assert exc.offsets == [6, 23]
        assert "different occurrences" in str(exc)
    print("PASS: contradictory contexts are reported as ambiguous")


def test_cross_block_literal_is_rejected():
    mapper = _mapper("Hello\n\nworld")

    try:
        locate(mapper, LocatorQuery(literal="Helloworld"))
        assert False, "expected CrossBlockLiteral"
    except CrossBlockLiteral as exc:
        assert exc.reason == "CrossBlockLiteral"
        assert isinstance(exc, SpanNotFound)

    try:
        locate(mapper, LocatorQuery(literal="Hello\nworld"))
        assert False, "expected CrossBlockLiteral"
    except CrossBlockLiteral:
        pass
    print("PASS: literals spanning blocks are rejected")


def test_cross_block_occurrences_are_discarded():
    # "ab" occurs once across the boundary and once inside the second block.
    mapper = _mapper("xa\n\nbab")
    assert locate(mapper, LocatorQuery(literal="ab")) == Span(3, 5)
    print("PASS: cross-block occurrences are dropped, others kept")


def test_missing_literal():
    mapper = _mapper("Nothing to see")
    try:
        locate(mapper, LocatorQuery(literal="absent"))
        assert False, "expected SpanNotFound"
    except SpanNotFound as exc:
        assert exc.reason == "NotFound"
        assert not isinstance(exc, CrossBlockLiteral)
    print("PASS: missing literal is NotFound")


if __name__ == "__main__":
    tests = [
        test_projection_is_pure_and_idempotent,
        test_reverse_lookup,
        test_isolate_splits_runs_at_boundaries,
        test_text_blocks_include_empty_ones,
        test_overlapping_occurrences,
        test_single_match,
        test_ambiguity_is_refused,
        test_occurrence_index_is_deterministic,
        test_max_occurrences_and_select_all,
        test_select_all_skips_overlaps,
        test_context_narrows_candidates,
        test_context_window_bounds_the_search,
        test_contradictory_context_is_ambiguous,
        test_cross_block_literal_is_rejected,
        test_cross_block_occurrences_are_discarded,
        test_missing_literal,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"FAIL: {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print("SOME TESTS FAILED")
