from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from docpatch.errors import PatchError
from docpatch.models import (
    AddMarkEdit,
    AddParagraphEdit,
    DeleteEdit,
    DocumentTree,
    InsertEdit,
    PatchResult,
    RemoveMarkEdit,
    ReplaceEdit,
    ReplaceMarkEdit,
    SkippedEdit,
    TextRun,
    ensure_tree,
    parse_edit,
    sort_marks,
    validation_reason,
)
from docpatch.patch.locator import Span, locate_all
from docpatch.patch.mapper import DocumentMapper
from docpatch.settings import DEFAULT_SETTINGS, PatchSettings
from docpatch.utils.tree import build_block, canonicalize_runs, children_of, node_at

logger = structlog.get_logger(__name__)


class PatchEngine:
    """
    Applies a batch of edit requests to a private copy of a document tree.

    Edits run in request order. Each one works on a scratch copy of the
    current tree, locates against a fresh projection of it, and is committed
    only if it succeeds; a failed edit leaves the tree as it was and the batch
    moves on.
    """

    def __init__(self, document: Union[DocumentTree, Dict[str, Any]], settings: Optional[PatchSettings] = None):
        self.tree = ensure_tree(document).model_copy(deep=True)
        self.settings = settings or DEFAULT_SETTINGS
        self.warnings: List[str] = []
        self.mapper: Optional[DocumentMapper] = None
        self._handlers: Dict[type, Callable[[Any], None]] = {
            ReplaceEdit: self._apply_replace,
            InsertEdit: self._apply_insert,
            DeleteEdit: self._apply_delete,
            AddMarkEdit: self._apply_add_mark,
            RemoveMarkEdit: self._apply_remove_mark,
            ReplaceMarkEdit: self._apply_replace_mark,
            AddParagraphEdit: self._apply_add_paragraph,
        }

    def apply_edits(self, edits: Iterable[Any]) -> Tuple[int, List[SkippedEdit]]:
        applied = 0
        skipped: List[SkippedEdit] = []

        for index, raw in enumerate(edits):
            try:
                edit = parse_edit(raw)
            except ValidationError as exc:
                reason = validation_reason(exc)
                detail = exc.errors()[0]["msg"]
                logger.warning(f"Skipping edit {index}: {reason}: {detail}")
                skipped.append(SkippedEdit(index=index, reason=reason, detail=detail))
                continue

            committed = self.tree
            self.tree = committed.model_copy(deep=True)
            self.mapper = DocumentMapper(self.tree)
            try:
                self._handlers[type(edit)](edit)
            except PatchError as exc:
                self.tree = committed
                logger.warning(f"Skipping edit {index} ({edit.type}): {exc}")
                skipped.append(SkippedEdit(index=index, reason=exc.reason, detail=str(exc)))
                continue
            finally:
                self.mapper = None

            applied += 1
            logger.info(f"Applied edit {index} ({edit.type})")

        return applied, skipped

    # --- Locating ---

    def _locate(self, edit, literal: str, select_all: bool = False) -> List[Span]:
        if edit.occurrence_index is not None and edit.max_occurrences is not None:
            warning = (
                f"Both occurrenceIndex ({edit.occurrence_index}) and maxOccurrences "
                f"({edit.max_occurrences}) given for '{literal}'; using occurrenceIndex"
            )
            logger.warning(warning)
            self.warnings.append(warning)
        spans = locate_all(self.mapper, edit.to_query(literal), self.settings.context_window, select_all)
        logger.debug(f"Located '{literal}' at {[(s.start, s.end) for s in spans]}")
        return spans

    # --- Text edits ---

    def _apply_replace(self, edit: ReplaceEdit):
        spans = self._locate(edit, edit.find_text, select_all=edit.replace_all)
        # Last to first, so earlier offsets stay valid.
        for span in reversed(spans):
            self._splice(span, edit.replace_text)

    def _apply_delete(self, edit: DeleteEdit):
        for span in reversed(self._locate(edit, edit.delete_text)):
            self._splice(span, "")

    def _splice(self, span: Span, text: str):
        """Replaces the characters of ``span`` with ``text`` carrying the first character's marks."""
        marks = self.mapper.marks_at(span.start)
        paths = self.mapper.isolate(span.start, span.end)
        block = node_at(self.tree, paths[0][:-1])
        first, last = paths[0][-1], paths[-1][-1]
        block.content[first : last + 1] = [TextRun(text=text, marks=marks)] if text else []
        canonicalize_runs(block)
        self.mapper._build_map()

    def _apply_insert(self, edit: InsertEdit):
        after = bool(edit.after_text)
        anchor = edit.after_text if after else edit.before_text
        for span in reversed(self._locate(edit, anchor)):
            self._insert_at(span, edit.insert_text, after)

    def _insert_at(self, anchor: Span, text: str, after: bool):
        # The owning run is the one holding the anchor's last (after) or first (before) character.
        offset = anchor.end if after else anchor.start
        owner = self.mapper.span_at(offset - 1 if after else offset)
        block = node_at(self.tree, owner.block_path)
        run_index = owner.path[-1]
        inside = owner.start < offset < owner.end

        if inside:
            run = block.content[run_index]
            split = offset - owner.start
            run.text = run.text[:split] + text + run.text[split:]
        else:
            block.content.insert(run_index + 1 if after else run_index, TextRun(text=text))

        canonicalize_runs(block)
        self.mapper._build_map()

    # --- Mark edits ---

    def _apply_add_mark(self, edit: AddMarkEdit):
        self._change_marks(edit, add={edit.mark_type})

    def _apply_remove_mark(self, edit: RemoveMarkEdit):
        self._change_marks(edit, remove={edit.mark_type})

    def _apply_replace_mark(self, edit: ReplaceMarkEdit):
        self._change_marks(edit, add={edit.new_mark_type}, remove={edit.old_mark_type})

    def _change_marks(self, edit, add=frozenset(), remove=frozenset()):
        for span in reversed(self._locate(edit, edit.text)):
            paths = self.mapper.isolate(span.start, span.end)
            for path in paths:
                run = node_at(self.tree, path)
                run.marks = sort_marks((set(run.marks) - set(remove)) | set(add))
            canonicalize_runs(node_at(self.tree, paths[0][:-1]))
            self.mapper._build_map()

    # --- Structure edits ---

    def _apply_add_paragraph(self, edit: AddParagraphEdit):
        anchor = edit.after_text or edit.before_text
        if not anchor:
            self.tree.content.append(build_block(edit.paragraph_type, edit.content, edit.heading_level))
            return

        after = bool(edit.after_text)
        for span in reversed(self._locate(edit, anchor)):
            block_path = self.mapper.span_at(span.start).block_path
            siblings = children_of(self.tree, block_path)
            position = block_path[-1] + (1 if after else 0)
            siblings.insert(position, build_block(edit.paragraph_type, edit.content, edit.heading_level))
            self.mapper._build_map()


def apply_edits(
    document: Union[DocumentTree, Dict[str, Any]],
    edits: Iterable[Any],
    settings: Optional[PatchSettings] = None,
) -> PatchResult:
    """
    Applies ``edits`` in order and reports per-edit outcomes.

    The caller's document is never modified. Edits that fail validation or
    cannot be located are listed in ``skipped`` with a reason; the call itself
    succeeds unless the document is malformed (MalformedTree is raised).
    """
    edits = list(edits)
    engine = PatchEngine(document, settings)
    applied, skipped = engine.apply_edits(edits)

    message = f"Applied {applied}/{len(edits)} edits"
    if skipped:
        message += f"; skipped {', '.join(f'#{s.index} ({s.reason})' for s in skipped)}"

    return PatchResult(
        ok=True,
        applied_count=applied,
        skipped=tuple(skipped),
        warnings=tuple(engine.warnings),
        message=message,
        tree=engine.tree,
    )
