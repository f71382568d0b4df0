"""
Vocabulary enums — the shared language of the compiler.

All enumerated types referenced by IR nodes, the staging engine,
the validator and the emitter.
"""

from enum import Enum


# =============================================================================
# IR NODE KINDS
# =============================================================================

class NodeKind(str, Enum):
    """
    Discriminator for every IR node.

    The set is closed: the emitter and validator dispatch exhaustively
    over it, so adding a kind means adding a handler in both.
    """
    # Inline
    TEXT = "text"
    STAGED_TEXT = "staged-text"          # Staged value interpolated into prose
    BOLD = "bold"
    ITALIC = "italic"
    INLINE_CODE = "inline-code"
    LINK = "link"
    LINE_BREAK = "line-break"

    # Static blocks
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    LIST_ITEM = "list-item"
    CODE_BLOCK = "code-block"
    BLOCKQUOTE = "blockquote"
    THEMATIC_BREAK = "thematic-break"
    TABLE = "table"
    XML_BLOCK = "xml-block"
    GROUP = "group"
    RAW = "raw"
    INDENT = "indent"
    EXECUTION_REFERENCE = "execution-reference"
    STEP = "step"
    SUCCESS_CRITERIA = "success-criteria"
    OFFER_NEXT = "offer-next"

    # Agents and staged execution
    AGENT_SPAWN = "agent-spawn"
    STATUS_BRANCH = "status-branch"
    STAGED_CALL = "staged-call"
    ASSIGN = "assign"                    # Shell variable filled from a command, value or env var
    ASSIGN_GROUP = "assign-group"

    # Control flow
    CONDITIONAL = "conditional"
    ELSE_BRANCH = "else-branch"
    LOOP = "loop"
    BREAK = "break"
    RETURN = "return"
    ASK_USER = "ask-user"

    # Root
    DOCUMENT = "document"


class Alignment(str, Enum):
    """Table column alignment."""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ReturnStatus(str, Enum):
    """
    Status tags an agent or command can end with.

    Shared by `return` nodes and `status-branch` matching.
    """
    SUCCESS = "SUCCESS"
    BLOCKED = "BLOCKED"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"
    CHECKPOINT = "CHECKPOINT"


class StepVariant(str, Enum):
    """How a workflow step header is rendered."""
    HEADING = "heading"    # ## Step 1: Name
    BOLD = "bold"          # **Step 1: Name**
    XML = "xml"            # <step number="1" name="Name">


class AssignmentSource(str, Enum):
    """Where an assigned shell variable gets its value."""
    BASH = "bash"      # VAR=$(command)
    VALUE = "value"    # VAR=value
    ENV = "env"        # VAR=$NAME


# =============================================================================
# CONDITIONS
# =============================================================================

class CompareOp(str, Enum):
    """Comparison operators usable in staged conditions."""
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


# =============================================================================
# FUNCTION STAGING
# =============================================================================

class ValueShape(str, Enum):
    """
    JSON shape of a staged function's argument or result.

    Staged functions exchange exactly one JSON value in each direction,
    so NONE is only meaningful to reject void signatures.
    """
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ANY = "any"
    NONE = "none"


# Shapes accepted as the single argument of a staged function
STRUCTURED_SHAPES: frozenset[ValueShape] = frozenset({
    ValueShape.OBJECT,
    ValueShape.ARRAY,
    ValueShape.ANY,
})


# =============================================================================
# COMPONENT CLASSIFICATION
# =============================================================================

class ComponentCategory(str, Enum):
    """Diagnostic grouping of node kinds."""
    INFRASTRUCTURE = "infrastructure"   # Control flow, agents, staging
    PRESENTATION = "presentation"       # Structured formatting blocks
    CONTENT = "content"                 # Plain markdown content
    DOCUMENT = "document"               # Root structure
