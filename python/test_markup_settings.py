"""
Tests for the styled-text markup, settings and logging setup.

Run: python3 test_markup_settings.py
From: python/
"""

import logging
import sys

sys.path.insert(0, '.')

import structlog
from pydantic import ValidationError

from docpatch import __version__
from docpatch.logconfig import configure_logging
from docpatch.markup import parse_styled_inline, tree_from_styled_text, tree_to_styled_text
from docpatch.models import Block, DocumentTree, TextRun
from docpatch.settings import PatchSettings


def test_styled_text_round_trip():
    text = "# Title\n\nPlain [b]bold [i]both[/i][/b] end\n\n### [u]Under[/u] and [code]x = 1[/code] and [s]gone[/s]"
    tree = tree_from_styled_text(text)

    assert [b.type for b in tree.content] == ["heading", "paragraph", "heading"]
    assert tree.content[2].attrs == {"level": 3}
    assert tree_to_styled_text(tree) == (
        "# Title\n\nPlain [b]bold [/b][b][i]both[/i][/b] end\n\n### [u]Under[/u] and [code]x = 1[/code] and [s]gone[/s]"
    )
    # Rendering is stable once canonical.
    again = tree_from_styled_text(tree_to_styled_text(tree))
    assert again.to_json() == tree.to_json()
    print("PASS: styled text round trip")


def test_inline_parsing():
    runs = parse_styled_inline("a [b]b[/b][b]c[/b] [/i]d")
    assert [(r.text, r.marks) for r in runs] == [("a ", ()), ("bc", ("bold",)), (" d", ())]
    assert all(isinstance(r, TextRun) for r in runs)
    print("PASS: adjacent equal runs merge, stray closing tags are ignored")


def test_tag_shaped_text_is_not_escaped():
    tree = DocumentTree(content=[Block(type="paragraph", content=[TextRun(text="see [1] and [b]")])])
    rendered = tree_to_styled_text(tree)

    assert rendered == "see [1] and [b]"
    # Plain brackets come back as text; a mark tag is read as markup.
    runs = tree_from_styled_text(rendered).content[0].content
    assert [(r.text, r.marks) for r in runs] == [("see [1] and ", ())]
    print("PASS: only mark tags inside text are read back as markup")


def test_paragraph_splitting():
    tree = tree_from_styled_text("\n\nfirst line\nsame paragraph\n\n  \n\nsecond\n")
    assert tree_to_styled_text(tree) == "first line same paragraph\n\nsecond"
    assert tree_to_styled_text(DocumentTree()) == ""
    print("PASS: blank lines split paragraphs")


def test_tree_json_round_trip():
    data = {
        "type": "doc",
        "content": [
            {"type": "heading", "attrs": {"level": 2}, "content": [{"type": "text", "text": "H"}]},
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": "x", "marks": [{"type": "italic"}, {"type": "bold"}]}],
            },
            {"type": "bulletList", "content": [{"type": "listItem", "content": [{"type": "paragraph"}]}]},
        ],
    }
    tree = DocumentTree.from_json(data)

    assert tree.content[1].content[0].marks == ("bold", "italic")
    out = tree.to_json()
    assert out["content"][1]["content"][0]["marks"] == [{"type": "bold"}, {"type": "italic"}]
    assert out["content"][2] == data["content"][2]
    print("PASS: tree JSON round trip with canonical mark order")


def test_settings_defaults_and_env():
    defaults = PatchSettings.from_env({})
    assert defaults.context_window == 80
    assert defaults.diff_timeout == 0.0

    settings = PatchSettings.from_env({"DOCPATCH_CONTEXT_WINDOW": "20", "DOCPATCH_DIFF_EDIT_COST": " 6 "})
    assert settings.context_window == 20
    assert settings.diff_edit_cost == 6

    try:
        PatchSettings.from_env({"DOCPATCH_CONTEXT_WINDOW": "0"})
        assert False, "expected ValidationError"
    except ValidationError:
        pass
    print("PASS: settings read from the environment")


def test_configure_logging():
    configure_logging(level=logging.DEBUG, json=False)
    structlog.get_logger("docpatch.test").debug("configured")
    configure_logging()
    assert isinstance(__version__, str) and __version__
    assert __version__ in ("0.1.0", "0.0.0-dev")
    print("PASS: logging configures without touching stdout")


if __name__ == "__main__":
    tests = [
        test_styled_text_round_trip,
        test_inline_parsing,
        test_tag_shaped_text_is_not_escaped,
        test_paragraph_splitting,
        test_tree_json_round_trip,
        test_settings_defaults_and_env,
        test_configure_logging,
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
