"""
IR Builder — Lowers the generic element tree into IR.

Runs inside one build context: `Call` elements resolve staged functions
against that unit's registry, and omitted call outputs get names from
the unit's allocator. Structural rules are left to the validator; the
builder only rejects elements it cannot map and props it cannot read.
"""

from typing import Any, Callable

from pydantic import ValidationError

from agentdoc.compiler.context import BuildContext
from agentdoc.compiler.tree import ElementNode
from agentdoc.errors import (
    InvalidProps,
    LoweringError,
    TreePath,
    UnknownElement,
    UnknownFunction,
)
from agentdoc.ir.conditions import ShellTestCondition
from agentdoc.ir.nodes import (
    AgentSpawnNode,
    AskUserNode,
    AskUserOption,
    AssignGroupNode,
    AssignNode,
    BlockquoteNode,
    BoldNode,
    BreakNode,
    CodeBlockNode,
    ConditionalNode,
    DocumentNode,
    ElseBranchNode,
    ExecutionReferenceNode,
    GroupNode,
    HeadingNode,
    IndentNode,
    InlineCodeNode,
    IRNode,
    ItalicNode,
    LineBreakNode,
    LinkNode,
    ListItemNode,
    ListNode,
    LoopNode,
    OfferNextNode,
    OfferNextRoute,
    ParagraphNode,
    RawNode,
    ReturnNode,
    StagedTextNode,
    StatusBranchNode,
    StepNode,
    SuccessCriteriaNode,
    SuccessCriterion,
    TableNode,
    TextNode,
    ThematicBreakNode,
    XmlBlockNode,
    walk,
)
from agentdoc.observability import get_logger
from agentdoc.staging.functions import StagedFunction, emit_call
from agentdoc.staging.values import StagedValue


logger = get_logger("compiler.builder")


DOCUMENT_ELEMENTS = frozenset({"document", "Command"})
INLINE_ELEMENTS = frozenset({"b", "strong", "i", "em", "code", "a", "br"})
HEADING_ELEMENTS = {f"h{level}": level for level in range(1, 7)}

_MISSING = object()


def _is_blank(child: Any) -> bool:
    return isinstance(child, str) and not child.strip()


class IRBuilder:
    """
    Lowers `ElementNode` trees to IR for one compilation unit.

    Consecutive inline children of a block container (text, staged
    values, inline elements) are gathered into one paragraph.
    """

    def __init__(self, context: BuildContext):
        self.context = context
        self._lowerers: dict[str, Callable[[ElementNode, TreePath], IRNode]] = {
            "p": self._paragraph,
            "Heading": self._heading,
            "ul": self._list,
            "ol": self._list,
            "List": self._list,
            "li": self._list_item,
            "pre": self._code_block,
            "CodeBlock": self._code_block,
            "blockquote": self._blockquote,
            "hr": lambda el, path: ThematicBreakNode(),
            "Table": self._table,
            "XmlBlock": self._xml_block,
            "div": self._div,
            "Markdown": self._markdown,
            "Indent": self._indent,
            "ExecutionContext": self._execution_context,
            "Step": self._step,
            "SpawnAgent": self._spawn_agent,
            "OnStatus": self._on_status,
            "If": self._if,
            "Else": self._else,
            "Loop": self._loop,
            "Break": self._break,
            "Return": self._return,
            "AskUser": self._ask_user,
            "Call": self._call,
            "Assign": self._assign,
            "AssignGroup": self._assign_group,
            "SuccessCriteria": self._success_criteria,
            "OfferNext": self._offer_next,
        }
        for name in HEADING_ELEMENTS:
            self._lowerers[name] = self._heading

    def build(self, source: ElementNode) -> DocumentNode:
        """
        Lower `source` to a document.

        A `document` or `Command` root supplies frontmatter from its
        props; any other root becomes the document's only content.
        """
        self.context.ensure_open()
        if source.name in DOCUMENT_ELEMENTS:
            document = self._make(
                DocumentNode, source, (),
                frontmatter=self._frontmatter(source),
                children=self._blocks(source.children, ()),
            )
        else:
            document = DocumentNode(children=self._blocks([source], ()))

        logger.debug(
            f"Lowered {self.context.name}: "
            f"{sum(1 for _ in walk(document)) - 1} block nodes"
        )
        return document

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _make(self, cls: type, el: ElementNode, path: TreePath, /, **fields: Any) -> Any:
        try:
            return cls(**fields)
        except ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(part) for part in first["loc"])
            raise InvalidProps(f"{where}: {first['msg']}", path=path, element=el.name) from exc

    def _require(self, el: ElementNode, path: TreePath, *names: str) -> Any:
        value = el.prop(*names, default=_MISSING)
        if value is _MISSING:
            raise InvalidProps(f"missing required prop '{names[0]}'", path=path, element=el.name)
        return value

    def _frontmatter(self, el: ElementNode) -> dict[str, Any] | None:
        data = dict(el.prop("frontmatter", default=None) or {})
        data.update({k: v for k, v in el.props.items() if k != "frontmatter"})
        return data or None

    def _text(self, el: ElementNode, path: TreePath) -> str | StagedValue:
        """Plain text content of `el`: one staged value, or joined strings."""
        children = [c for c in el.children if c is not None and not isinstance(c, bool)]
        if len(children) == 1 and isinstance(children[0], StagedValue):
            return children[0]
        parts = []
        for child in children:
            if isinstance(child, str):
                parts.append(child)
            elif isinstance(child, (int, float)):
                parts.append(str(child))
            else:
                raise InvalidProps(
                    "expected text content only", path=path, element=el.name
                )
        return "".join(parts)

    # -------------------------------------------------------------------------
    # Sequences
    # -------------------------------------------------------------------------

    def _blocks(self, children: list[Any], parent: TreePath) -> list[IRNode]:
        blocks: list[IRNode] = []
        run: list[IRNode] = []

        def flush() -> None:
            if run and not all(isinstance(n, TextNode) and not n.value.strip() for n in run):
                blocks.append(ParagraphNode(children=list(run)))
            run.clear()

        for index, child in enumerate(children):
            path = parent + (index,)
            if child is None or isinstance(child, bool):
                continue
            if isinstance(child, ElementNode) and child.name not in INLINE_ELEMENTS:
                flush()
                blocks.append(self._block(child, path))
            elif _is_blank(child) and not run:
                continue
            else:
                run.append(self._inline(child, path))
        flush()
        return blocks

    def _block(self, el: ElementNode, path: TreePath) -> IRNode:
        lower = self._lowerers.get(el.name)
        if lower is None:
            raise UnknownElement("no IR counterpart", path=path, element=el.name)
        return lower(el, path)

    def _inlines(self, children: list[Any], parent: TreePath) -> list[IRNode]:
        return [
            self._inline(child, parent + (index,))
            for index, child in enumerate(children)
            if child is not None and not isinstance(child, bool)
        ]

    def _inline(self, child: Any, path: TreePath) -> IRNode:
        if isinstance(child, str):
            return TextNode(value=child)
        if isinstance(child, (int, float)):
            return TextNode(value=str(child))
        if isinstance(child, StagedValue):
            return StagedTextNode(value=child)
        if not isinstance(child, ElementNode):
            raise InvalidProps(
                f"unsupported child of type {type(child).__name__}", path=path
            )

        name = child.name
        if name in ("b", "strong"):
            return BoldNode(children=self._inlines(child.children, path))
        if name in ("i", "em"):
            return ItalicNode(children=self._inlines(child.children, path))
        if name == "code":
            return self._make(InlineCodeNode, child, path, content=self._text(child, path))
        if name == "a":
            href = self._require(child, path, "href")
            return self._make(
                LinkNode, child, path, url=href, children=self._inlines(child.children, path)
            )
        if name == "br":
            return LineBreakNode()
        if name in self._lowerers:
            raise LoweringError("block element inside inline content", path=path, element=name)
        raise UnknownElement("no IR counterpart", path=path, element=name)

    # -------------------------------------------------------------------------
    # Static blocks
    # -------------------------------------------------------------------------

    def _paragraph(self, el: ElementNode, path: TreePath) -> IRNode:
        return ParagraphNode(children=self._inlines(el.children, path))

    def _heading(self, el: ElementNode, path: TreePath) -> IRNode:
        level = HEADING_ELEMENTS.get(el.name) or el.prop("level", default=2)
        return self._make(
            HeadingNode, el, path, level=level, children=self._inlines(el.children, path)
        )

    def _list(self, el: ElementNode, path: TreePath) -> IRNode:
        ordered = el.name == "ol" or bool(el.prop("ordered", default=False))
        items: list[ListItemNode] = []

        for index, item in enumerate(el.prop("items", default=None) or []):
            items.append(ListItemNode(children=self._blocks([item], path + (index,))))

        for index, child in enumerate(el.children):
            if child is None or isinstance(child, bool) or _is_blank(child):
                continue
            if not (isinstance(child, ElementNode) and child.name == "li"):
                raise InvalidProps("list children must be <li>", path=path + (index,), element=el.name)
            items.append(self._list_item(child, path + (index,)))

        return self._make(
            ListNode, el, path,
            ordered=ordered,
            start=el.prop("start", default=1),
            items=items,
        )

    def _list_item(self, el: ElementNode, path: TreePath) -> ListItemNode:
        return ListItemNode(children=self._blocks(el.children, path))

    def _code_block(self, el: ElementNode, path: TreePath) -> IRNode:
        language = el.prop("language", "lang")
        content = el.prop("content")
        if content is None:
            children = [c for c in el.children if not _is_blank(c)]
            if len(children) == 1 and isinstance(children[0], ElementNode) and children[0].name == "code":
                inner = children[0]
                class_name = inner.prop("className", "class_name", default="") or ""
                if language is None and class_name.startswith("language-"):
                    language = class_name[len("language-"):]
                language = language or inner.prop("language", "lang")
                content = self._text(inner, path + (0,))
            else:
                content = self._text(el, path)
        if isinstance(content, str):
            content = content.strip("\n")
        return self._make(CodeBlockNode, el, path, language=language, content=content)

    def _blockquote(self, el: ElementNode, path: TreePath) -> IRNode:
        return BlockquoteNode(children=self._blocks(el.children, path))

    def _table(self, el: ElementNode, path: TreePath) -> IRNode:
        empty_cell = el.prop("empty_cell", "emptyCell", default="")

        def cell(value: Any) -> Any:
            if value is None:
                return empty_cell
            if isinstance(value, (StagedValue, str)):
                return value
            return str(value)

        headers = el.prop("headers")
        rows = el.prop("rows", default=[]) or []
        return self._make(
            TableNode, el, path,
            headers=[cell(h) for h in headers] if headers else None,
            rows=[[cell(c) for c in row] for row in rows],
            align=el.prop("align"),
            empty_cell=empty_cell,
        )

    def _xml_block(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            XmlBlockNode, el, path,
            name=self._require(el, path, "name"),
            attributes=el.prop("attributes", default={}) or {},
            children=self._blocks(el.children, path),
        )

    def _div(self, el: ElementNode, path: TreePath) -> IRNode:
        if el.prop("name"):
            return self._xml_block(el, path)
        return GroupNode(children=self._blocks(el.children, path))

    def _markdown(self, el: ElementNode, path: TreePath) -> IRNode:
        content = el.prop("content")
        if content is None:
            content = self._text(el, path)
        if not isinstance(content, str):
            raise InvalidProps("markdown content must be a string", path=path, element=el.name)
        return RawNode(content=content)

    def _indent(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            IndentNode, el, path,
            spaces=el.prop("spaces", default=2),
            children=self._blocks(el.children, path),
        )

    def _execution_context(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            ExecutionReferenceNode, el, path,
            paths=el.prop("paths", default=[]) or [],
            prefix=el.prop("prefix", default="@"),
            children=self._blocks(el.children, path),
        )

    def _step(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            StepNode, el, path,
            number=self._require(el, path, "number"),
            name=self._require(el, path, "name"),
            variant=el.prop("variant", default="heading"),
            children=self._blocks(el.children, path),
        )

    def _success_criteria(self, el: ElementNode, path: TreePath) -> IRNode:
        items = []
        for item in el.prop("items", default=[]) or []:
            if isinstance(item, (str, StagedValue)):
                item = {"text": item}
            if isinstance(item, dict):
                item = self._make(SuccessCriterion, el, path, **item)
            if not isinstance(item, SuccessCriterion):
                raise InvalidProps("criteria must be text or mappings with text", path=path, element=el.name)
            items.append(item)
        return SuccessCriteriaNode(items=items)

    def _offer_next(self, el: ElementNode, path: TreePath) -> IRNode:
        routes = []
        for route in el.prop("routes", default=[]) or []:
            if isinstance(route, dict):
                route = self._make(OfferNextRoute, el, path, **route)
            if not isinstance(route, OfferNextRoute):
                raise InvalidProps("routes must be mappings with name and path", path=path, element=el.name)
            routes.append(route)
        return OfferNextNode(routes=routes)

    # -------------------------------------------------------------------------
    # Agents and staged execution
    # -------------------------------------------------------------------------

    def _spawn_agent(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            AgentSpawnNode, el, path,
            agent=self._require(el, path, "agent"),
            model=self._require(el, path, "model"),
            description=self._require(el, path, "description"),
            prompt=el.prop("prompt"),
            input=el.prop("input"),
            output=el.prop("output"),
            load_from_file=el.prop("load_from_file", "loadFromFile"),
            children=self._blocks(el.children, path),
        )

    def _on_status(self, el: ElementNode, path: TreePath) -> IRNode:
        return self._make(
            StatusBranchNode, el, path,
            output=self._require(el, path, "output"),
            status=self._require(el, path, "status"),
            children=self._blocks(el.children, path),
        )

    def _call(self, el: ElementNode, path: TreePath) -> IRNode:
        fn = self._require(el, path, "fn", "function")
        registry = self.context.registry
        if isinstance(fn, StagedFunction):
            handle = registry.get(fn.name)
            if handle is not fn:
                raise UnknownFunction(
                    f"{fn.name} is not registered in this build", path=path, element=el.name
                )
        elif isinstance(fn, str):
            handle = registry.get(fn)
            if handle is None:
                raise UnknownFunction(
                    f"{fn} is not registered in this build", path=path, element=el.name
                )
        else:
            raise InvalidProps(
                f"fn must be a staged function or its name, got {type(fn).__name__}",
                path=path,
                element=el.name,
            )

        output = el.prop("output")
        if output is None:
            output = self.context.allocate_root(handle.name)
        return emit_call(handle, el.prop("args", default={}), output)

    def _assign(self, el: ElementNode, path: TreePath) -> AssignNode:
        sources = [(name, el.props[name]) for name in ("bash", "value", "env") if name in el.props]
        if len(sources) != 1:
            raise InvalidProps(
                "exactly one of 'bash', 'value' or 'env' is required", path=path, element=el.name
            )
        source, content = sources[0]
        if isinstance(content, (int, float)) and not isinstance(content, bool):
            content = str(content)
        return self._make(
            AssignNode, el, path,
            variable=self._require(el, path, "var", "variable"),
            source=source,
            content=content,
            comment=el.prop("comment"),
        )

    def _assign_group(self, el: ElementNode, path: TreePath) -> IRNode:
        assignments: list[AssignNode] = []
        for index, child in enumerate(el.children):
            if child is None or isinstance(child, bool) or _is_blank(child):
                continue
            if not (isinstance(child, ElementNode) and child.name == "Assign"):
                raise InvalidProps(
                    "assign group children must be <Assign>", path=path + (index,), element=el.name
                )
            assignments.append(self._assign(child, path + (index,)))
        return self._make(AssignGroupNode, el, path, assignments=assignments)

    # -------------------------------------------------------------------------
    # Control flow
    # -------------------------------------------------------------------------

    def _if(self, el: ElementNode, path: TreePath) -> IRNode:
        condition = el.prop("condition", default=_MISSING)
        if condition is _MISSING:
            condition = self._require(el, path, "test")
            # A string test is a shell test kept as written
            if isinstance(condition, str):
                condition = self._make(ShellTestCondition, el, path, test=condition)
        return ConditionalNode(condition=condition, children=self._blocks(el.children, path))

    def _else(self, el: ElementNode, path: TreePath) -> IRNode:
        return ElseBranchNode(children=self._blocks(el.children, path))

    def _loop(self, el: ElementNode, path: TreePath) -> IRNode:
        return LoopNode(
            bound=self._require(el, path, "max", "bound"),
            counter=el.prop("counter"),
            children=self._blocks(el.children, path),
        )

    def _break(self, el: ElementNode, path: TreePath) -> IRNode:
        message = el.prop("message")
        if message is None and el.children:
            message = self._text(el, path) or None
        return self._make(BreakNode, el, path, message=message)

    def _return(self, el: ElementNode, path: TreePath) -> IRNode:
        message = el.prop("message")
        if message is None and el.children:
            message = self._text(el, path) or None
        return self._make(
            ReturnNode, el, path, status=el.prop("status"), message=message
        )

    def _ask_user(self, el: ElementNode, path: TreePath) -> IRNode:
        options = []
        for option in el.prop("options", default=[]) or []:
            if isinstance(option, AskUserOption):
                options.append(option)
            elif isinstance(option, dict):
                options.append(self._make(AskUserOption, el, path, **option))
            else:
                raise InvalidProps(
                    "options must be mappings with value and label", path=path, element=el.name
                )
        return self._make(
            AskUserNode, el, path,
            question=self._require(el, path, "question"),
            options=options,
            output=self._require(el, path, "output"),
            header=el.prop("header"),
            multi_select=bool(el.prop("multi_select", "multiSelect", default=False)),
        )


def build_document(source: ElementNode, context: BuildContext) -> DocumentNode:
    """Lower `source` within `context`."""
    return IRBuilder(context).build(source)
