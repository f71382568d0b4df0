"""
Markdown Emitter — Validated IR to the final document text.

Single depth-first pass. Static nodes render directly; staged values
are replaced by their resolved expressions in place; control-flow nodes
render as fixed prose templates describing decisions the compiler
cannot make itself.

The emitter trusts the validator. A tree it cannot render is a compiler
defect and raises InternalInvariantError.
"""

import json
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterator

import yaml

from agentdoc.config import CompilerConfig
from agentdoc.emitter.conditions import render_condition
from agentdoc.errors import InternalInvariantError
from agentdoc.ir.nodes import (
    AgentSpawnNode,
    AskUserNode,
    AssignGroupNode,
    AssignNode,
    BlockquoteNode,
    BreakNode,
    CodeBlockNode,
    ConditionalNode,
    DocumentNode,
    ElseBranchNode,
    ExecutionReferenceNode,
    GroupNode,
    HeadingNode,
    IndentNode,
    IRNode,
    ListItemNode,
    ListNode,
    LoopNode,
    OfferNextNode,
    ParagraphNode,
    RawNode,
    ReturnNode,
    StagedCallNode,
    StatusBranchNode,
    StepNode,
    SuccessCriteriaNode,
    TableNode,
    XmlBlockNode,
    exit_kind,
)
from agentdoc.observability import get_logger
from agentdoc.staging.values import ResolutionCache, StagedValue, project
from agentdoc.vocabulary import Alignment, AssignmentSource, NodeKind, StepVariant


logger = get_logger("emitter")


MAX_HEADING_LEVEL = 6

INLINE_KINDS = frozenset({
    NodeKind.TEXT,
    NodeKind.STAGED_TEXT,
    NodeKind.BOLD,
    NodeKind.ITALIC,
    NodeKind.INLINE_CODE,
    NodeKind.LINK,
    NodeKind.LINE_BREAK,
})

SEPARATORS: dict[Alignment | None, str] = {
    None: "---",
    Alignment.LEFT: ":---",
    Alignment.CENTER: ":---:",
    Alignment.RIGHT: "---:",
}

_BACKTICK_RUN = re.compile(r"`{3,}")

# Values that need no quoting on the right of a shell assignment
_SHELL_WORD = re.compile(r"[A-Za-z0-9_./:@%+,=-]+")


@dataclass(frozen=True)
class EmitState:
    """Context carried down the walk."""
    heading_offset: int = 0    # Added to every heading level below this point
    list_depth: int = 0        # Nesting depth of the innermost list

    def nested(self, **changes: Any) -> "EmitState":
        return replace(self, **changes)


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\r\n", " ").replace("\n", " ")


def _indent_lines(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def _fence(content: str) -> str:
    longest = max((len(m) for m in _BACKTICK_RUN.findall(content)), default=2)
    return "`" * (longest + 1)


def _escape_quotes(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _escape_attribute(text: str) -> str:
    return text.replace("&", "&amp;").replace('"', "&quot;")


def _marker(index: int) -> str:
    return json.dumps(f"\x00{index}\x00")


def _substitute(value: Any, leaves: list[StagedValue]) -> Any:
    """Copy of a composite literal with staged leaves swapped for markers."""
    if isinstance(value, StagedValue):
        leaves.append(value)
        return f"\x00{len(leaves) - 1}\x00"
    if isinstance(value, dict):
        return {str(k): _substitute(v, leaves) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_substitute(v, leaves) for v in value]
    return value


# =============================================================================
# MARKDOWN EMITTER
# =============================================================================

class MarkdownEmitter:
    """
    Renders a validated document to markdown.

    One instance serves one compilation unit at a time; each `emit` call
    starts with an empty resolution cache, so output never depends on
    earlier calls.
    """

    def __init__(self, config: CompilerConfig | None = None):
        self.config = config or CompilerConfig()
        self._cache = ResolutionCache(query_tool=self.config.query_tool)
        self._handlers: dict[NodeKind, Callable[[Any, EmitState], str]] = {
            NodeKind.HEADING: self._emit_heading,
            NodeKind.PARAGRAPH: self._emit_paragraph,
            NodeKind.LIST: self._emit_list,
            NodeKind.LIST_ITEM: self._emit_list_item,
            NodeKind.CODE_BLOCK: self._emit_code_block,
            NodeKind.BLOCKQUOTE: self._emit_blockquote,
            NodeKind.THEMATIC_BREAK: lambda node, state: "---",
            NodeKind.TABLE: self._emit_table,
            NodeKind.XML_BLOCK: self._emit_xml_block,
            NodeKind.GROUP: self._emit_group,
            NodeKind.RAW: self._emit_raw,
            NodeKind.INDENT: self._emit_indent,
            NodeKind.EXECUTION_REFERENCE: self._emit_execution_reference,
            NodeKind.STEP: self._emit_step,
            NodeKind.SUCCESS_CRITERIA: self._emit_success_criteria,
            NodeKind.OFFER_NEXT: self._emit_offer_next,
            NodeKind.AGENT_SPAWN: self._emit_agent_spawn,
            NodeKind.STATUS_BRANCH: self._emit_status_branch,
            NodeKind.STAGED_CALL: self._emit_staged_call,
            NodeKind.ASSIGN: self._emit_assign,
            NodeKind.ASSIGN_GROUP: self._emit_assign_group,
            NodeKind.CONDITIONAL: self._emit_conditional,
            NodeKind.ELSE_BRANCH: self._emit_else_branch,
            NodeKind.LOOP: self._emit_loop,
            NodeKind.BREAK: self._emit_break,
            NodeKind.RETURN: self._emit_return,
            NodeKind.ASK_USER: self._emit_ask_user,
        }
        unhandled = set(NodeKind) - set(self._handlers) - INLINE_KINDS - {NodeKind.DOCUMENT}
        if unhandled:
            raise InternalInvariantError(
                f"no emitter for {', '.join(sorted(k.value for k in unhandled))}"
            )

    def emit(self, document: DocumentNode) -> str:
        """
        Render `document`.

        Blocks are separated by a blank line; non-empty output ends with
        exactly one newline.
        """
        self._cache.clear()
        parts: list[str] = []

        if document.frontmatter:
            parts.append(self._emit_frontmatter(document.frontmatter))

        body = self._emit_blocks(document.children, EmitState())
        if body:
            parts.append(body)

        result = "\n\n".join(parts).rstrip("\n")
        logger.debug(
            f"Emitted {len(result)} chars, "
            f"{self._cache.misses} distinct staged expressions"
        )
        return result + "\n" if result else ""

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _emit_blocks(
        self,
        nodes: list[IRNode],
        state: EmitState,
        separator: str = "\n\n",
    ) -> str:
        parts: list[str] = []
        for node in self._sequence(nodes):
            text = self._emit_block(node, state)
            if text:
                parts.append(text)
        return separator.join(parts)

    def _sequence(self, nodes: list[IRNode]) -> Iterator[IRNode]:
        """Sibling blocks to emit, stopping after an unconditional exit."""
        previous: IRNode | None = None
        for node in nodes:
            if isinstance(node, ElseBranchNode) and not isinstance(previous, ConditionalNode):
                raise InternalInvariantError("else-branch reached the emitter without a conditional")
            yield node
            previous = node
            if self.config.skip_unreachable and exit_kind(node) is not None:
                return

    def _emit_block(self, node: IRNode, state: EmitState) -> str:
        handler = self._handlers.get(node.kind)
        if handler is None:
            raise InternalInvariantError(f"cannot emit {node.kind} as a block")
        return handler(node, state)

    # -------------------------------------------------------------------------
    # Staged content
    # -------------------------------------------------------------------------

    def _text(self, value: Any) -> str:
        """Content slot: literal text or resolved staged value."""
        if value is None:
            return ""
        if isinstance(value, StagedValue):
            return self._cache.resolve(value)
        return str(value)

    def _variable(self, value: Any, slot: str) -> str:
        """External variable name held by an output or counter slot."""
        if isinstance(value, StagedValue) and value.is_root:
            return value.root
        if isinstance(value, str) and value.isidentifier():
            return value
        raise InternalInvariantError(f"{slot} does not name an external variable: {value!r}")

    def _json(self, value: Any, indent: int) -> str:
        """JSON text for a composite literal; staged leaves are resolved in place."""
        leaves: list[StagedValue] = []
        text = json.dumps(_substitute(value, leaves), indent=indent)
        for index, staged in enumerate(leaves):
            text = text.replace(_marker(index), self._cache.resolve(staged), 1)
        return text

    def _shell_json(self, value: Any) -> str:
        """
        Single-quoted shell word holding compact JSON.

        Staged leaves are spliced in as double-quoted command
        substitutions between closed and reopened single quotes.
        """
        leaves: list[StagedValue] = []
        text = json.dumps(_substitute(value, leaves), separators=(",", ":"))
        pieces: list[str] = []
        for index, staged in enumerate(leaves):
            head, _, text = text.partition(_marker(index))
            pieces.append(head.replace("'", "'\\''"))
            pieces.append(f"'\"{self._cache.resolve_json(staged)}\"'")
        pieces.append(text.replace("'", "'\\''"))
        return "'" + "".join(pieces) + "'"

    # -------------------------------------------------------------------------
    # Inline
    # -------------------------------------------------------------------------

    def _emit_inlines(self, nodes: list[IRNode]) -> str:
        return "".join(self._emit_inline(node) for node in nodes)

    def _emit_inline(self, node: IRNode) -> str:
        kind = node.kind
        if kind == NodeKind.TEXT:
            return node.value
        if kind == NodeKind.STAGED_TEXT:
            return self._cache.resolve(node.value)
        if kind == NodeKind.BOLD:
            return f"**{self._emit_inlines(node.children)}**"
        if kind == NodeKind.ITALIC:
            return f"*{self._emit_inlines(node.children)}*"
        if kind == NodeKind.INLINE_CODE:
            return f"`{self._text(node.content)}`"
        if kind == NodeKind.LINK:
            return f"[{self._emit_inlines(node.children)}]({node.url})"
        if kind == NodeKind.LINE_BREAK:
            return "\n"
        raise InternalInvariantError(f"cannot emit {kind} inline")

    # -------------------------------------------------------------------------
    # Static blocks
    # -------------------------------------------------------------------------

    def _plain(self, value: Any) -> Any:
        """Copy of frontmatter data with staged leaves resolved to text."""
        if isinstance(value, StagedValue):
            return self._cache.resolve(value)
        if isinstance(value, dict):
            return {k: self._plain(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._plain(v) for v in value]
        return value

    def _emit_frontmatter(self, data: dict[str, Any]) -> str:
        text = yaml.safe_dump(
            self._plain(data), sort_keys=False, default_flow_style=False, allow_unicode=True
        )
        return f"---\n{text.rstrip()}\n---"

    def _heading_prefix(self, level: int, state: EmitState) -> str:
        return "#" * min(level + state.heading_offset, MAX_HEADING_LEVEL)

    def _emit_heading(self, node: HeadingNode, state: EmitState) -> str:
        return f"{self._heading_prefix(node.level, state)} {self._emit_inlines(node.children)}"

    def _emit_paragraph(self, node: ParagraphNode, state: EmitState) -> str:
        return self._emit_inlines(node.children)

    def _emit_list(self, node: ListNode, state: EmitState) -> str:
        inner = state.nested(list_depth=state.list_depth + 1)
        items = []
        for offset, item in enumerate(self._sequence(node.items)):
            marker = f"{node.start + offset}." if node.ordered else "-"
            items.append(self._render_item(item, marker, inner))
        return "\n".join(items)

    def _emit_list_item(self, node: ListItemNode, state: EmitState) -> str:
        # Only reached for an item outside a list
        return self._render_item(node, "-", state.nested(list_depth=max(state.list_depth, 1)))

    def _render_item(self, item: ListItemNode, marker: str, state: EmitState) -> str:
        """
        Marker line plus continuation.

        The first paragraph shares the marker line. Nested lists indent
        themselves by depth; other blocks are indented under the marker.
        """
        indent = "  " * (state.list_depth - 1)
        first = ""
        rest: list[str] = []
        for index, child in enumerate(self._sequence(item.children)):
            if isinstance(child, ListNode):
                rest.append(self._emit_block(child, state))
            elif index == 0 and isinstance(child, ParagraphNode):
                first = self._emit_block(child, state)
            else:
                text = self._emit_block(child, state)
                if text:
                    rest.append(_indent_lines(text, indent + "  "))

        line = f"{indent}{marker} {first}".rstrip()
        return "\n".join([line] + rest)

    def _emit_code_block(self, node: CodeBlockNode, state: EmitState) -> str:
        content = self._text(node.content)
        fence = _fence(content)
        return f"{fence}{node.language or ''}\n{content}\n{fence}"

    def _emit_blockquote(self, node: BlockquoteNode, state: EmitState) -> str:
        content = self._emit_blocks(node.children, state)
        return "\n".join(f"> {line}" if line else ">" for line in content.split("\n"))

    def _emit_table(self, node: TableNode, state: EmitState) -> str:
        columns = node.column_count
        if columns == 0:
            return ""

        def row(cells: list[Any]) -> str:
            texts = [_escape_cell(self._text(cell)) for cell in cells]
            texts.extend([node.empty_cell] * (columns - len(texts)))
            return "| " + " | ".join(texts) + " |"

        align = list(node.align or [])
        align.extend([None] * (columns - len(align)))

        lines = []
        if node.headers:
            lines.append(row(node.headers))
        lines.append("| " + " | ".join(SEPARATORS[a] for a in align) + " |")
        lines.extend(row(cells) for cells in node.rows)
        return "\n".join(lines)

    def _emit_xml_block(self, node: XmlBlockNode, state: EmitState) -> str:
        attrs = "".join(
            f' {key}="{_escape_attribute(self._text(value))}"'
            for key, value in node.attributes.items()
        )
        content = self._emit_blocks(node.children, state)
        if content:
            return f"<{node.name}{attrs}>\n{content}\n</{node.name}>"
        return f"<{node.name}{attrs}>\n</{node.name}>"

    def _emit_group(self, node: GroupNode, state: EmitState) -> str:
        return self._emit_blocks(node.children, state, separator="\n")

    def _emit_raw(self, node: RawNode, state: EmitState) -> str:
        return node.content.strip("\n")

    def _emit_indent(self, node: IndentNode, state: EmitState) -> str:
        content = self._emit_blocks(node.children, state)
        return _indent_lines(content, " " * node.spaces)

    def _emit_execution_reference(self, node: ExecutionReferenceNode, state: EmitState) -> str:
        lines = ["<execution_context>"]
        for path in node.paths:
            lines.append(path if path.startswith(node.prefix) else f"{node.prefix}{path}")
        content = self._emit_blocks(node.children, state)
        if content:
            lines.append(content)
        lines.append("</execution_context>")
        return "\n".join(lines)

    def _emit_step(self, node: StepNode, state: EmitState) -> str:
        inner = state.nested(heading_offset=state.heading_offset + 1)
        body = self._emit_blocks(node.children, inner)
        title = f"Step {node.number}: {node.name}"

        if node.variant == StepVariant.XML:
            attrs = (
                f' number="{_escape_attribute(node.number)}"'
                f' name="{_escape_attribute(node.name)}"'
            )
            if body:
                return f"<step{attrs}>\n{body}\n</step>"
            return f"<step{attrs}>\n</step>"

        if node.variant == StepVariant.BOLD:
            header = f"**{title}**"
        else:
            header = f"{self._heading_prefix(2, state)} {title}"
        return f"{header}\n\n{body}" if body else header

    def _emit_success_criteria(self, node: SuccessCriteriaNode, state: EmitState) -> str:
        lines = ["<success_criteria>"]
        for item in node.items:
            mark = "x" if item.checked else " "
            lines.append(f"- [{mark}] {self._text(item.text)}")
        lines.append("</success_criteria>")
        return "\n".join(lines)

    def _emit_offer_next(self, node: OfferNextNode, state: EmitState) -> str:
        lines = ["<offer_next>"]
        for route in node.routes:
            title = f"**{route.name}**"
            if route.description:
                title += f": {route.description}"
            lines.append(f"- {title}")
            lines.append(f"  `{route.path}`")
        lines.append("</offer_next>")
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Agents and staged execution
    # -------------------------------------------------------------------------

    def _format_input(self, value: Any) -> str:
        """Prompt text built from an agent's structured input."""
        if isinstance(value, StagedValue):
            return f"<input>\n{self._cache.resolve(value)}\n</input>"
        if isinstance(value, str):
            return value
        if isinstance(value, dict):
            sections = []
            for name, item in value.items():
                sections.append(f"<{name}>\n{self._format_input_value(item)}\n</{name}>")
            return "\n\n".join(sections)
        return self._json(value, self.config.json_indent)

    def _format_input_value(self, value: Any) -> str:
        if isinstance(value, StagedValue):
            return self._cache.resolve(value)
        if isinstance(value, str):
            return value
        return self._json(value, self.config.json_indent)

    def _emit_agent_spawn(self, node: AgentSpawnNode, state: EmitState) -> str:
        if node.prompt is not None:
            prompt = self._text(node.prompt)
        elif node.input is not None:
            prompt = self._format_input(node.input)
        else:
            prompt = ""

        extra = self._emit_blocks(node.children, EmitState())
        if extra:
            prompt = f"{prompt}\n\n{extra}" if prompt else extra

        subagent = node.agent
        if node.load_from_file:
            subagent = "general-purpose"
            prompt = f"First, read {node.load_from_file} for your role and instructions.\n\n{prompt}"

        block = (
            "```\n"
            "Task(\n"
            f'  prompt="{_escape_quotes(prompt)}",\n'
            f'  subagent_type="{_escape_quotes(subagent)}",\n'
            f'  model="{_escape_quotes(node.model)}",\n'
            f'  description="{_escape_quotes(node.description)}"\n'
            ")\n"
            "```"
        )
        if node.output is not None:
            name = self._variable(node.output, "agent-spawn output")
            return f"{block}\n\nStore the agent's result in `${name}`."
        return block

    def _emit_status_branch(self, node: StatusBranchNode, state: EmitState) -> str:
        if not isinstance(node.output, StagedValue):
            raise InternalInvariantError("status-branch output is not a staged value")
        query = self._cache.resolve(project(node.output, "status"))
        status = node.status.value
        header = f'**On {status}** (`{query}` = "{status}"):'
        body = self._emit_blocks(node.children, state)
        return f"{header}\n\n{body}" if body else header

    def _emit_staged_call(self, node: StagedCallNode, state: EmitState) -> str:
        output = self._variable(node.output, "staged-call output")
        if isinstance(node.args, StagedValue):
            argument = f'"{self._cache.resolve_json(node.args)}"'
        else:
            argument = self._shell_json(node.args)
        command = f"{self.config.runtime_command} {self.config.runtime_module} {node.function}"
        return f"```bash\n{output}=$({command} {argument})\n```"

    def _assignment_lines(self, node: AssignNode) -> list[str]:
        name = self._variable(node.variable, "assign variable")
        if node.source == AssignmentSource.BASH:
            line = f"{name}=$({node.content.strip()})"
        elif node.source == AssignmentSource.ENV:
            line = f"{name}=${node.content}"
        elif _SHELL_WORD.fullmatch(node.content):
            line = f"{name}={node.content}"
        else:
            line = f"{name}='" + node.content.replace("'", "'\\''") + "'"
        if node.comment:
            return [f"# {node.comment}", line]
        return [line]

    def _emit_assign(self, node: AssignNode, state: EmitState) -> str:
        return "```bash\n" + "\n".join(self._assignment_lines(node)) + "\n```"

    def _emit_assign_group(self, node: AssignGroupNode, state: EmitState) -> str:
        lines: list[str] = []
        for assignment in node.assignments:
            lines.extend(self._assignment_lines(assignment))
        return "```bash\n" + "\n".join(lines) + "\n```"

    # -------------------------------------------------------------------------
    # Control flow
    # -------------------------------------------------------------------------

    def _branch(self, header: str, children: list[IRNode], state: EmitState) -> str:
        body = self._emit_blocks(children, state)
        return f"{header}\n\n{body}" if body else header

    def _emit_conditional(self, node: ConditionalNode, state: EmitState) -> str:
        assertion = render_condition(node.condition, self._cache.resolve)
        return self._branch(f"**If `{assertion}`:**", node.children, state)

    def _emit_else_branch(self, node: ElseBranchNode, state: EmitState) -> str:
        return self._branch("**Otherwise:**", node.children, state)

    def _emit_loop(self, node: LoopNode, state: EmitState) -> str:
        bound = node.bound
        if isinstance(bound, StagedValue):
            bound_text = self._cache.resolve(bound)
        elif isinstance(bound, int) and not isinstance(bound, bool) and bound >= 0:
            bound_text = str(bound)
        else:
            raise InternalInvariantError(f"loop bound {bound!r} reached the emitter")

        parts = [f"**Loop up to {bound_text} times:**"]
        if node.counter is not None:
            counter = self._variable(node.counter, "loop counter")
            parts.append(
                f"Set `${counter}` to 0 before the first iteration "
                f"and increment it by 1 at the end of each iteration."
            )
        body = self._emit_blocks(node.children, state)
        if body:
            parts.append(body)
        return "\n\n".join(parts)

    def _emit_break(self, node: BreakNode, state: EmitState) -> str:
        if node.message is not None:
            return f"**Break loop:** {self._text(node.message)}"
        return "**Break loop**"

    def _emit_return(self, node: ReturnNode, state: EmitState) -> str:
        label = "End command"
        if node.status is not None:
            label += f" ({node.status.value})"
        if node.message is not None:
            return f"**{label}:** {self._text(node.message)}"
        return f"**{label}**"

    def _emit_ask_user(self, node: AskUserNode, state: EmitState) -> str:
        output = self._variable(node.output, "ask-user output")
        lines = ["Use the AskUserQuestion tool:", ""]
        lines.append(f'- Question: "{_escape_quotes(self._text(node.question))}"')
        if node.header:
            lines.append(f'- Header: "{_escape_quotes(node.header)}"')
        lines.append("- Options:")
        for option in node.options:
            description = f" - {option.description}" if option.description else ""
            lines.append(
                f'  - "{_escape_quotes(option.label)}" '
                f'(value: "{_escape_quotes(option.value)}"){description}'
            )
        if node.multi_select:
            lines.append("- Multiple selections allowed")
        lines.append("")
        lines.append(f"Store the user's response in `${output}`.")
        return "\n".join(lines)


def emit_document(document: DocumentNode, config: CompilerConfig | None = None) -> str:
    """Render a validated document with a fresh emitter."""
    return MarkdownEmitter(config).emit(document)
