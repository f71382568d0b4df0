"""
Component Registry — Diagnostic classification of node kinds.

Infrastructure kinds carry control flow, agents and staging and always
stay compiler primitives. Presentation kinds are formatting blocks that
could move to author-defined composites. Nothing in the pipeline
consults this table for correctness.
"""

from dataclasses import dataclass

from agentdoc.vocabulary import ComponentCategory, NodeKind


@dataclass(frozen=True)
class ComponentInfo:
    """Classification of a single node kind."""
    kind: NodeKind
    category: ComponentCategory
    migration_target: str | None = None

    @property
    def is_primitive(self) -> bool:
        return self.category != ComponentCategory.CONTENT


INFRASTRUCTURE_KINDS: frozenset[NodeKind] = frozenset({
    NodeKind.AGENT_SPAWN,
    NodeKind.STATUS_BRANCH,
    NodeKind.STAGED_CALL,
    NodeKind.ASSIGN,
    NodeKind.ASSIGN_GROUP,
    NodeKind.CONDITIONAL,
    NodeKind.ELSE_BRANCH,
    NodeKind.LOOP,
    NodeKind.BREAK,
    NodeKind.RETURN,
    NodeKind.ASK_USER,
})

PRESENTATION_KINDS: frozenset[NodeKind] = frozenset({
    NodeKind.TABLE,
    NodeKind.LIST,
    NodeKind.INDENT,
    NodeKind.EXECUTION_REFERENCE,
    NodeKind.SUCCESS_CRITERIA,
    NodeKind.OFFER_NEXT,
    NodeKind.XML_BLOCK,
    NodeKind.STEP,
})

DOCUMENT_KINDS: frozenset[NodeKind] = frozenset({
    NodeKind.DOCUMENT,
})


def classify(kind: NodeKind | str) -> ComponentInfo:
    """
    Look up the category of a node kind.

    Raises ValueError for a string that is not a known kind.
    """
    kind = NodeKind(kind)
    if kind in INFRASTRUCTURE_KINDS:
        return ComponentInfo(kind, ComponentCategory.INFRASTRUCTURE)
    if kind in PRESENTATION_KINDS:
        return ComponentInfo(kind, ComponentCategory.PRESENTATION, migration_target="composite")
    if kind in DOCUMENT_KINDS:
        return ComponentInfo(kind, ComponentCategory.DOCUMENT)
    return ComponentInfo(kind, ComponentCategory.CONTENT)


def is_infrastructure(kind: NodeKind | str) -> bool:
    return classify(kind).category == ComponentCategory.INFRASTRUCTURE


def is_presentation(kind: NodeKind | str) -> bool:
    return classify(kind).category == ComponentCategory.PRESENTATION
