import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from docpatch.errors import MalformedTree


class MarkType(str, Enum):
    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    CODE = "code"
    STRIKE = "strike"


# Canonical mark order; mark sets are always stored sorted by it.
MARK_ORDER: Tuple[str, ...] = tuple(m.value for m in MarkType)

TEXT_BLOCK_TYPES = frozenset({"paragraph", "heading", "codeBlock"})
CONTAINER_TYPES = frozenset({"blockquote", "bulletList", "orderedList", "listItem"})

# Node types a caller may ask add_paragraph to create.
PARAGRAPH_TYPES: Tuple[str, ...] = ("paragraph", "heading", "blockquote", "bulletList", "orderedList", "codeBlock")

BlockType = Literal["paragraph", "heading", "blockquote", "bulletList", "orderedList", "listItem", "codeBlock"]


def sort_marks(marks) -> Tuple[str, ...]:
    """Dedupes and orders mark names canonically."""
    unique = {m.value if isinstance(m, MarkType) else m for m in marks}
    return tuple(m for m in MARK_ORDER if m in unique)


# --- Document tree ---


class TextRun(BaseModel):
    type: Literal["text"] = "text"
    text: str
    marks: Tuple[str, ...] = ()

    @field_validator("marks", mode="before")
    @classmethod
    def _coerce_marks(cls, value: Any) -> Any:
        # Wire format is [{"type": "bold"}, ...]; plain names are accepted too.
        if value is None:
            return ()
        names = []
        for mark in value:
            if isinstance(mark, dict):
                mark = mark.get("type")
            if isinstance(mark, MarkType):
                mark = mark.value
            names.append(mark)
        return tuple(names)

    @field_validator("marks")
    @classmethod
    def _canonical_marks(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        unknown = [m for m in value if m not in MARK_ORDER]
        if unknown:
            raise ValueError(f"unsupported mark(s): {', '.join(map(str, unknown))}")
        return sort_marks(value)


class Block(BaseModel):
    type: BlockType
    attrs: Dict[str, Any] = Field(default_factory=dict)
    content: List["Node"] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_shape(self) -> "Block":
        if self.type == "heading":
            level = self.attrs.get("level")
            if not isinstance(level, int) or not 1 <= level <= 6:
                raise ValueError(f"heading level must be 1..6, got {level!r}")
        has_runs = any(isinstance(c, TextRun) for c in self.content)
        has_blocks = any(isinstance(c, Block) for c in self.content)
        if has_runs and has_blocks:
            raise ValueError(f"{self.type} mixes text runs and blocks")
        if has_runs and self.type in CONTAINER_TYPES:
            raise ValueError(f"{self.type} cannot hold text directly")
        return self

    @property
    def is_text_block(self) -> bool:
        return self.type in TEXT_BLOCK_TYPES


Node = Annotated[Union[TextRun, Block], Field(discriminator="type")]

Block.model_rebuild()


class DocumentTree(BaseModel):
    type: Literal["doc"] = "doc"
    content: List[Block] = Field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DocumentTree":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise MalformedTree(f"Invalid document tree: {exc.error_count()} error(s): {exc.errors()[0]['msg']}") from exc

    def to_json(self) -> Dict[str, Any]:
        """Serializes back to the ProseMirror wire shape (empty marks/attrs omitted)."""
        return {"type": "doc", "content": [_node_to_json(b) for b in self.content]}


def _node_to_json(node) -> Dict[str, Any]:
    if isinstance(node, TextRun):
        data: Dict[str, Any] = {"type": "text", "text": node.text}
        if node.marks:
            data["marks"] = [{"type": m} for m in node.marks]
        return data
    data = {"type": node.type}
    if node.attrs:
        data["attrs"] = dict(node.attrs)
    if node.content:
        data["content"] = [_node_to_json(c) for c in node.content]
    return data


def ensure_tree(document: Union[DocumentTree, Dict[str, Any]]) -> DocumentTree:
    if isinstance(document, DocumentTree):
        return document
    if isinstance(document, dict):
        return DocumentTree.from_json(document)
    raise MalformedTree(f"Expected a document tree or dict, got {type(document).__name__}")


# --- Requests ---


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class LocatorQuery(_Request):
    literal: str = Field(..., min_length=1)
    context_before: Optional[str] = None
    context_after: Optional[str] = None
    occurrence_index: Optional[int] = Field(None, ge=1)
    max_occurrences: Optional[int] = Field(None, ge=1)


class _TargetedEdit(_Request):
    """Fields shared by every edit that locates text before acting on it."""

    context_before: Optional[str] = Field(
        None, description="Text appearing shortly before the target, used to narrow repeated phrases."
    )
    context_after: Optional[str] = Field(
        None, description="Text appearing shortly after the target, used to narrow repeated phrases."
    )
    occurrence_index: Optional[int] = Field(None, ge=1, description="Target the Nth occurrence (1-based).")
    max_occurrences: Optional[int] = Field(None, ge=1, description="Apply the edit to the first K occurrences.")

    def to_query(self, literal: str) -> LocatorQuery:
        return LocatorQuery(
            literal=literal,
            context_before=self.context_before or None,
            context_after=self.context_after or None,
            occurrence_index=self.occurrence_index,
            max_occurrences=self.max_occurrences,
        )


def _check_mark_type(value: str) -> str:
    if value not in MARK_ORDER:
        raise PydanticCustomError(
            "InvalidMarkType",
            "Unsupported mark type '{mark}'; expected one of {allowed}",
            {"mark": value, "allowed": ", ".join(MARK_ORDER)},
        )
    return value


MarkName = Annotated[str, AfterValidator(_check_mark_type)]


class ReplaceEdit(_TargetedEdit):
    type: Literal["replace"] = "replace"
    find_text: str = Field(..., min_length=1, description="Exact text to find, within a single paragraph.")
    replace_text: str = Field(..., description="Replacement text. Empty string deletes.")
    replace_all: bool = False


class InsertEdit(_TargetedEdit):
    type: Literal["insert"] = "insert"
    insert_text: str = Field(..., min_length=1)
    after_text: Optional[str] = None
    before_text: Optional[str] = None

    @model_validator(mode="after")
    def _one_anchor(self) -> "InsertEdit":
        if bool(self.after_text) == bool(self.before_text):
            raise ValueError("insert needs exactly one of afterText or beforeText")
        return self


class DeleteEdit(_TargetedEdit):
    type: Literal["delete"] = "delete"
    delete_text: str = Field(..., min_length=1)


class AddMarkEdit(_TargetedEdit):
    type: Literal["add_mark"] = "add_mark"
    text: str = Field(..., min_length=1)
    mark_type: MarkName


class RemoveMarkEdit(_TargetedEdit):
    type: Literal["remove_mark"] = "remove_mark"
    text: str = Field(..., min_length=1)
    mark_type: MarkName


class ReplaceMarkEdit(_TargetedEdit):
    type: Literal["replace_mark"] = "replace_mark"
    text: str = Field(..., min_length=1)
    old_mark_type: MarkName
    new_mark_type: MarkName


class AddParagraphEdit(_TargetedEdit):
    type: Literal["add_paragraph"] = "add_paragraph"
    content: str = ""
    paragraph_type: str = "paragraph"
    heading_level: Optional[int] = None
    after_text: Optional[str] = None
    before_text: Optional[str] = None

    @field_validator("content", "paragraph_type", mode="before")
    @classmethod
    def _default_when_empty(cls, value: Any, info) -> Any:
        if value is None or value == "":
            return "paragraph" if info.field_name == "paragraph_type" else ""
        return value

    @field_validator("paragraph_type")
    @classmethod
    def _check_paragraph_type(cls, value: str) -> str:
        if value not in PARAGRAPH_TYPES:
            raise PydanticCustomError(
                "InvalidParagraphType",
                "Unsupported paragraph type '{kind}'; expected one of {allowed}",
                {"kind": value, "allowed": ", ".join(PARAGRAPH_TYPES)},
            )
        return value

    @model_validator(mode="after")
    def _check_heading_and_anchor(self) -> "AddParagraphEdit":
        if self.paragraph_type == "heading":
            level = self.heading_level
            if level is None or not 1 <= level <= 6:
                raise PydanticCustomError(
                    "InvalidHeadingLevel",
                    "Heading requires headingLevel between 1 and 6, got {level}",
                    {"level": level},
                )
        if self.after_text and self.before_text:
            raise ValueError("add_paragraph accepts afterText or beforeText, not both")
        return self


EditRequest = Annotated[
    Union[ReplaceEdit, InsertEdit, DeleteEdit, AddMarkEdit, RemoveMarkEdit, ReplaceMarkEdit, AddParagraphEdit],
    Field(discriminator="type"),
]

EDIT_TYPES = (ReplaceEdit, InsertEdit, DeleteEdit, AddMarkEdit, RemoveMarkEdit, ReplaceMarkEdit, AddParagraphEdit)

_edit_adapter: TypeAdapter = TypeAdapter(EditRequest)

# Validation error types surfaced as skip reasons; anything else is "InvalidRequest".
VALIDATION_REASONS = ("InvalidMarkType", "InvalidParagraphType", "InvalidHeadingLevel")


def normalize_edit_type(value: str) -> str:
    """'addMark', 'add-mark' and 'ADD_MARK' all become 'add_mark'."""
    value = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", value.strip())
    return value.replace("-", "_").lower()


def parse_edit(raw: Union[BaseModel, Dict[str, Any]]):
    """Validates one edit request. Raises pydantic.ValidationError."""
    if isinstance(raw, EDIT_TYPES):
        return raw
    if isinstance(raw, dict):
        data = dict(raw)
        if isinstance(data.get("type"), str):
            data["type"] = normalize_edit_type(data["type"])
        # Agents sometimes send the replacement under 'content'.
        if data.get("type") == "replace" and "content" in data:
            content = data.pop("content")
            if "replaceText" not in data and "replace_text" not in data:
                data["replaceText"] = content
        raw = data
    return _edit_adapter.validate_python(raw)


def validation_reason(exc: ValidationError) -> str:
    for error in exc.errors():
        if error["type"] in VALIDATION_REASONS:
            return error["type"]
    return "InvalidRequest"


class AnchorPair(_Request):
    """Bounds a region for a section rewrite. With neither anchor the region is the whole document."""

    after_text: Optional[str] = None
    before_text: Optional[str] = None
    occurrence_index: Optional[int] = Field(None, ge=1)

    def describe(self) -> str:
        if self.after_text and self.before_text:
            text = f'between "{self.after_text}" and "{self.before_text}"'
        elif self.after_text:
            text = f'after "{self.after_text}"'
        elif self.before_text:
            text = f'before "{self.before_text}"'
        else:
            text = "entire document"
        if self.occurrence_index:
            text += f" (occurrence {self.occurrence_index})"
        return text


# --- Results ---


class SkippedEdit(_Request):
    index: int
    reason: str
    detail: str = ""


class PatchResult(_Request):
    ok: bool
    applied_count: int
    skipped: Tuple[SkippedEdit, ...] = ()
    warnings: Tuple[str, ...] = ()
    message: str = ""
    tree: DocumentTree

    def to_json(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude={"tree"})
        data["tree"] = self.tree.to_json()
        return data


def skipped_reasons(result: PatchResult) -> List[Tuple[int, str]]:
    return [(s.index, s.reason) for s in result.skipped]
