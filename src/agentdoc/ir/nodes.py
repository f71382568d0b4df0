"""
IR Nodes — The tagged tree every other component operates on.

Nodes are frozen pydantic models discriminated on `kind`. A tree has no
identity beyond position: nodes never reference their parent, and the
same node object may appear in two trees without meaning anything.

Slots the control-flow validator checks for shape (loop bound and
counter, outputs, conditions) accept any value here, so a mis-shaped
value is reported with its tree path instead of failing construction.
"""

from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agentdoc.staging.values import StagedValue
from agentdoc.vocabulary import Alignment, AssignmentSource, ReturnStatus, StepVariant


Content = str | StagedValue


class IRNode(BaseModel):
    """Base for all IR nodes."""
    model_config = ConfigDict(frozen=True)


# =============================================================================
# INLINE NODES
# =============================================================================

class TextNode(IRNode):
    kind: Literal["text"] = "text"
    value: str


class StagedTextNode(IRNode):
    """Staged value interpolated into prose."""
    kind: Literal["staged-text"] = "staged-text"
    value: StagedValue


class BoldNode(IRNode):
    kind: Literal["bold"] = "bold"
    children: list["Inline"] = Field(default_factory=list)


class ItalicNode(IRNode):
    kind: Literal["italic"] = "italic"
    children: list["Inline"] = Field(default_factory=list)


class InlineCodeNode(IRNode):
    kind: Literal["inline-code"] = "inline-code"
    content: Content


class LinkNode(IRNode):
    kind: Literal["link"] = "link"
    url: str
    children: list["Inline"] = Field(default_factory=list)


class LineBreakNode(IRNode):
    kind: Literal["line-break"] = "line-break"


Inline = Annotated[
    Union[
        TextNode,
        StagedTextNode,
        BoldNode,
        ItalicNode,
        InlineCodeNode,
        LinkNode,
        LineBreakNode,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# STATIC BLOCK NODES
# =============================================================================

class HeadingNode(IRNode):
    kind: Literal["heading"] = "heading"
    level: int = Field(..., ge=1, le=6)
    children: list[Inline] = Field(default_factory=list)


class ParagraphNode(IRNode):
    kind: Literal["paragraph"] = "paragraph"
    children: list[Inline] = Field(default_factory=list)


class ListItemNode(IRNode):
    """
    One list entry.

    The first paragraph shares the marker line; every other block is
    indented under it.
    """
    kind: Literal["list-item"] = "list-item"
    children: list["Block"] = Field(default_factory=list)


class ListNode(IRNode):
    kind: Literal["list"] = "list"
    ordered: bool = False
    start: int = Field(default=1, ge=0)
    items: list[ListItemNode] = Field(default_factory=list)


class CodeBlockNode(IRNode):
    kind: Literal["code-block"] = "code-block"
    language: str | None = None
    content: Content = ""


class BlockquoteNode(IRNode):
    kind: Literal["blockquote"] = "blockquote"
    children: list["Block"] = Field(default_factory=list)


class ThematicBreakNode(IRNode):
    kind: Literal["thematic-break"] = "thematic-break"


class TableNode(IRNode):
    """
    Pipe table.

    Without headers the header row is omitted but the separator row is
    still written. Short rows are padded with `empty_cell`.
    """
    kind: Literal["table"] = "table"
    headers: list[Content] | None = None
    rows: list[list[Content]] = Field(default_factory=list)
    align: list[Alignment] | None = None
    empty_cell: str = ""

    @property
    def column_count(self) -> int:
        widths = [len(row) for row in self.rows]
        if self.headers:
            widths.append(len(self.headers))
        if self.align:
            widths.append(len(self.align))
        return max(widths, default=0)


class XmlBlockNode(IRNode):
    kind: Literal["xml-block"] = "xml-block"
    name: str
    attributes: dict[str, Content] = Field(default_factory=dict)
    children: list["Block"] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_is_tag(cls, v: str) -> str:
        if not v or not (v[0].isalpha() or v[0] == "_") or any(c.isspace() or c in "<>/" for c in v):
            raise ValueError(f"invalid tag name: {v!r}")
        return v


class GroupNode(IRNode):
    """Children joined by single newlines instead of blank lines."""
    kind: Literal["group"] = "group"
    children: list["Block"] = Field(default_factory=list)


class RawNode(IRNode):
    """Markdown passed through verbatim."""
    kind: Literal["raw"] = "raw"
    content: str


class IndentNode(IRNode):
    kind: Literal["indent"] = "indent"
    spaces: int = Field(default=2, ge=0)
    children: list["Block"] = Field(default_factory=list)


class ExecutionReferenceNode(IRNode):
    """`<execution_context>` listing files the executor should load."""
    kind: Literal["execution-reference"] = "execution-reference"
    paths: list[str] = Field(default_factory=list)
    prefix: str = "@"
    children: list["Block"] = Field(default_factory=list)


class StepNode(IRNode):
    """Numbered workflow step. Number is a string so `1.1` works."""
    kind: Literal["step"] = "step"
    number: str
    name: str
    variant: StepVariant = StepVariant.HEADING
    children: list["Block"] = Field(default_factory=list)

    @field_validator("number", mode="before")
    @classmethod
    def number_to_str(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class SuccessCriterion(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: Content
    checked: bool = False


class SuccessCriteriaNode(IRNode):
    """`<success_criteria>` checklist."""
    kind: Literal["success-criteria"] = "success-criteria"
    items: list[SuccessCriterion] = Field(default_factory=list)


class OfferNextRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    description: str | None = None


class OfferNextNode(IRNode):
    """`<offer_next>` list of commands to run after this one."""
    kind: Literal["offer-next"] = "offer-next"
    routes: list[OfferNextRoute] = Field(default_factory=list)


# =============================================================================
# AGENT AND STAGED EXECUTION NODES
# =============================================================================

class AgentSpawnNode(IRNode):
    """
    Delegate work to a sub-agent.

    The prompt is either given directly or built from `input` (a staged
    value, a string, or an object whose entries become tagged sections).
    Children are appended to the prompt as extra instructions. The spawned
    agent runs in its own context, so loops do not extend into it.
    """
    kind: Literal["agent-spawn"] = "agent-spawn"
    agent: str
    model: str
    description: str
    prompt: Content | None = None
    input: Any = None
    output: Any = None
    load_from_file: str | None = None
    children: list["Block"] = Field(default_factory=list)


class StatusBranchNode(IRNode):
    """Body taken when an agent's captured result reports `status`."""
    kind: Literal["status-branch"] = "status-branch"
    output: Any
    status: ReturnStatus
    children: list["Block"] = Field(default_factory=list)


class StagedCallNode(IRNode):
    """Invoke a staged function from the side artifact and capture its result."""
    kind: Literal["staged-call"] = "staged-call"
    function: str
    args: Any = Field(default_factory=dict)
    output: Any


class AssignNode(IRNode):
    """
    Fill a shell variable at execution time.

    `content` is a bash command, a literal value or an environment
    variable name depending on `source`. The variable is checked like
    any other output slot.
    """
    kind: Literal["assign"] = "assign"
    variable: Any
    source: AssignmentSource = AssignmentSource.BASH
    content: str
    comment: str | None = None

    @model_validator(mode="after")
    def env_source_names_variable(self) -> "AssignNode":
        if self.source == AssignmentSource.ENV and not self.content.isidentifier():
            raise ValueError(f"env assignment needs a variable name, got {self.content!r}")
        if self.source == AssignmentSource.BASH and not self.content.strip():
            raise ValueError("bash assignment needs a command")
        return self


class AssignGroupNode(IRNode):
    """Several assignments sharing one bash block."""
    kind: Literal["assign-group"] = "assign-group"
    assignments: list[AssignNode] = Field(..., min_length=1)


# =============================================================================
# CONTROL-FLOW NODES
# =============================================================================

class ConditionalNode(IRNode):
    kind: Literal["conditional"] = "conditional"
    condition: Any
    children: list["Block"] = Field(default_factory=list)


class ElseBranchNode(IRNode):
    """False branch; only valid right after a conditional sibling."""
    kind: Literal["else-branch"] = "else-branch"
    children: list["Block"] = Field(default_factory=list)


class LoopNode(IRNode):
    kind: Literal["loop"] = "loop"
    bound: Any
    counter: Any = None
    children: list["Block"] = Field(default_factory=list)


class BreakNode(IRNode):
    kind: Literal["break"] = "break"
    message: Content | None = None


class ReturnNode(IRNode):
    """End the command early, optionally with a status."""
    kind: Literal["return"] = "return"
    status: ReturnStatus | None = None
    message: Content | None = None


class AskUserOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str
    description: str | None = None


class AskUserNode(IRNode):
    kind: Literal["ask-user"] = "ask-user"
    question: Content
    options: list[AskUserOption] = Field(default_factory=list)
    output: Any
    header: str | None = None
    multi_select: bool = False


Block = Annotated[
    Union[
        HeadingNode,
        ParagraphNode,
        ListNode,
        ListItemNode,
        CodeBlockNode,
        BlockquoteNode,
        ThematicBreakNode,
        TableNode,
        XmlBlockNode,
        GroupNode,
        RawNode,
        IndentNode,
        ExecutionReferenceNode,
        StepNode,
        SuccessCriteriaNode,
        OfferNextNode,
        AgentSpawnNode,
        StatusBranchNode,
        StagedCallNode,
        AssignNode,
        AssignGroupNode,
        ConditionalNode,
        ElseBranchNode,
        LoopNode,
        BreakNode,
        ReturnNode,
        AskUserNode,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# DOCUMENT
# =============================================================================

class DocumentNode(IRNode):
    """Root of a compilation unit's tree."""
    kind: Literal["document"] = "document"
    frontmatter: dict[str, Any] | None = None
    children: list[Block] = Field(default_factory=list)

    @field_validator("frontmatter")
    @classmethod
    def frontmatter_is_plain_data(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        if v is not None:
            _check_frontmatter_value(v, "frontmatter")
        return v


_FRONTMATTER_SCALARS = (str, int, float, bool, type(None), StagedValue)


def _check_frontmatter_value(value: Any, where: str) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{where} key {key!r} is not a string")
            _check_frontmatter_value(item, f"{where}.{key}")
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _check_frontmatter_value(item, f"{where}[{index}]")
    elif not isinstance(value, _FRONTMATTER_SCALARS):
        raise ValueError(f"{where} holds {type(value).__name__}, which YAML cannot represent")


for _model in (
    BoldNode,
    ItalicNode,
    LinkNode,
    HeadingNode,
    ParagraphNode,
    ListItemNode,
    ListNode,
    BlockquoteNode,
    XmlBlockNode,
    GroupNode,
    IndentNode,
    ExecutionReferenceNode,
    StepNode,
    AgentSpawnNode,
    StatusBranchNode,
    ConditionalNode,
    ElseBranchNode,
    LoopNode,
    DocumentNode,
):
    _model.model_rebuild()


# =============================================================================
# TRAVERSAL
# =============================================================================

def block_children(node: IRNode) -> list[IRNode]:
    """
    Ordered child blocks of `node`.

    A list's children are its items; inline content is not included.
    """
    if isinstance(node, ListNode):
        return list(node.items)
    if isinstance(node, (HeadingNode, ParagraphNode)):
        return []
    return list(getattr(node, "children", None) or [])


def walk(node: IRNode, path: tuple[int, ...] = ()) -> Iterator[tuple[tuple[int, ...], IRNode]]:
    """Yield `(path, node)` depth-first, pre-order, over block nodes."""
    yield path, node
    for index, child in enumerate(block_children(node)):
        yield from walk(child, path + (index,))


# Containers that run every child in order whenever they run themselves
SEQUENTIAL_KINDS = frozenset({
    "list",
    "list-item",
    "blockquote",
    "xml-block",
    "group",
    "indent",
    "execution-reference",
    "step",
})


def exit_kind(node: IRNode) -> str | None:
    """
    Kind of the break or return that always ends `node`, if any.

    Looks through sequential containers only. A branch, a loop body or
    an agent's prompt may not run, so an exit inside one does not count.
    """
    if isinstance(node, (BreakNode, ReturnNode)):
        return node.kind
    if node.kind in SEQUENTIAL_KINDS:
        for child in block_children(node):
            found = exit_kind(child)
            if found is not None:
                return found
    return None
