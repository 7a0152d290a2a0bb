from importlib.metadata import PackageNotFoundError, version

from docpatch.errors import AmbiguousMatch, CrossBlockLiteral, EmptyRegion, MalformedTree, PatchError, SpanNotFound
from docpatch.models import AnchorPair, DocumentTree, PatchResult, parse_edit
from docpatch.patch.engine import PatchEngine, apply_edits
from docpatch.patch.rewrite import rewrite_section
from docpatch.settings import PatchSettings

try:
    __version__ = version("docpatch")
except PackageNotFoundError:
    # Loaded straight from the source tree without being installed.
    __version__ = "0.0.0-dev"

__all__ = [
    "apply_edits",
    "rewrite_section",
    "PatchEngine",
    "PatchSettings",
    "DocumentTree",
    "AnchorPair",
    "PatchResult",
    "parse_edit",
    "PatchError",
    "SpanNotFound",
    "CrossBlockLiteral",
    "AmbiguousMatch",
    "EmptyRegion",
    "MalformedTree",
    "__version__",
]
