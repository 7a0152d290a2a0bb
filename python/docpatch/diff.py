import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog
from diff_match_patch import diff_match_patch

from docpatch.settings import DEFAULT_SETTINGS, PatchSettings

logger = structlog.get_logger(__name__)

# Paragraph separator inside diff input; never appears in run text.
PARAGRAPH_BREAK = "\u2029"

_TOKEN_PATTERN = re.compile(r"\u2029|[^\S\u2029]+|[^\s\u2029]+")


class DiffOp(str, Enum):
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


_DMP_OPS = {0: DiffOp.EQUAL, 1: DiffOp.INSERT, -1: DiffOp.DELETE}


@dataclass(frozen=True)
class DiffRun:
    op: DiffOp
    text: str


def tokenize(text: str) -> List[str]:
    """Splits text into words, whitespace runs and paragraph breaks."""
    return _TOKEN_PATTERN.findall(text) if text else []


def diff_tokens(old_text: str, new_text: str, settings: Optional[PatchSettings] = None) -> List[DiffRun]:
    """
    Word-level diff of ``old_text`` against ``new_text``.

    Tokens are encoded as single characters so diff-match-patch works on whole
    words; punctuation stays attached to its word and a paragraph break is a
    token of its own. Concatenating the equal and insert runs gives
    ``new_text`` back; equal and delete runs give ``old_text``.
    """
    settings = settings or DEFAULT_SETTINGS
    dmp = diff_match_patch()
    dmp.Diff_Timeout = settings.diff_timeout
    dmp.Diff_EditCost = settings.diff_edit_cost

    # 1. Tokenize & encode
    chars1, chars2, token_array = _tokens_to_chars(old_text, new_text)
    if not chars1 and not chars2:
        return []

    # 2. Diff the encoded strings
    diffs = dmp.diff_main(chars1, chars2, False)

    # 3. Semantic cleanup
    dmp.diff_cleanupSemantic(diffs)

    # 4. Decode back to text
    dmp.diff_charsToLines(diffs, token_array)

    runs = [DiffRun(_DMP_OPS[op], text) for op, text in diffs if text]
    logger.debug(
        f"Token diff: {sum(1 for r in runs if r.op is DiffOp.INSERT)} insert(s), "
        f"{sum(1 for r in runs if r.op is DiffOp.DELETE)} delete(s)"
    )
    return runs


def _tokens_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits both texts into tokens and encodes each distinct token as one
    Unicode character. ``token_array[ord(c)]`` decodes character ``c``.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}

    def encode_text(text: str) -> str:
        encoded_chars = []
        for token in tokenize(text):
            if token not in token_hash:
                code = len(token_array)
                # Surrogate code points cannot stand alone in a str.
                if 0xD800 <= code < 0xE000:
                    token_array.extend([""] * (0xE000 - code))
                    code = 0xE000
                token_hash[token] = code
                token_array.append(token)
            encoded_chars.append(chr(token_hash[token]))
        return "".join(encoded_chars)

    chars1 = encode_text(text1)
    chars2 = encode_text(text2)
    return chars1, chars2, token_array
