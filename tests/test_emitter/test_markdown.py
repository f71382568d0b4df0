"""Tests for static markdown emission."""

import pytest
import yaml

from agentdoc.config import CompilerConfig
from agentdoc.emitter import MarkdownEmitter, emit_document
from agentdoc.errors import InternalInvariantError
from agentdoc.ir import (
    BlockquoteNode,
    BoldNode,
    CodeBlockNode,
    DocumentNode,
    ElseBranchNode,
    ExecutionReferenceNode,
    GroupNode,
    HeadingNode,
    IndentNode,
    InlineCodeNode,
    ItalicNode,
    LineBreakNode,
    LinkNode,
    ListItemNode,
    ListNode,
    OfferNextNode,
    OfferNextRoute,
    ParagraphNode,
    RawNode,
    StagedTextNode,
    StepNode,
    SuccessCriteriaNode,
    SuccessCriterion,
    TableNode,
    TextNode,
    ThematicBreakNode,
    XmlBlockNode,
)
from agentdoc.staging import root


def text(value: str) -> TextNode:
    return TextNode(value=value)


def para(*children) -> ParagraphNode:
    return ParagraphNode(children=[text(c) if isinstance(c, str) else c for c in children])


def item(*blocks) -> ListItemNode:
    return ListItemNode(children=[para(b) if isinstance(b, str) else b for b in blocks])


class TestDocument:
    """Tests for document-level layout."""

    def test_empty_document(self, emit):
        """An empty document emits nothing."""
        assert emit() == ""

    def test_blocks_separated_by_blank_line(self, emit):
        """Blocks are joined with one blank line and end with a newline."""
        assert emit(para("one"), para("two")) == "one\n\ntwo\n"

    def test_frontmatter(self, emit):
        """Frontmatter renders as YAML between fences, in insertion order."""
        out = emit(para("body"), frontmatter={"name": "deploy", "allowed-tools": ["Read", "Bash"]})
        assert out == (
            "---\n"
            "name: deploy\n"
            "allowed-tools:\n"
            "- Read\n"
            "- Bash\n"
            "---\n"
            "\n"
            "body\n"
        )

    def test_staged_frontmatter_resolved(self, emit):
        """Staged frontmatter values render as their resolved expressions."""
        out = emit(para("body"), frontmatter={"description": root("CTX").at("d"), "tags": [root("TAG")]})
        header = out.split("---\n")[1]
        assert yaml.safe_load(header) == {
            "description": "$(echo \"$CTX\" | jq -r '.d')",
            "tags": ["$TAG"],
        }

    def test_idempotent(self, emit):
        """Emitting twice yields identical text."""
        blocks = [
            HeadingNode(level=1, children=[text("Title")]),
            para("Value: ", StagedTextNode(value=root("CTX").at("value"))),
            TableNode(headers=["a"], rows=[[root("ROW").at("a")]]),
        ]
        assert emit(*blocks) == emit(*blocks)

    def test_same_emitter_twice(self):
        """A reused emitter starts each pass with an empty cache."""
        emitter = MarkdownEmitter()
        document = DocumentNode(children=[para(StagedTextNode(value=root("X").at("a")))])
        first = emitter.emit(document)
        misses = emitter.cache.misses
        assert emitter.emit(document) == first
        assert emitter.cache.misses == misses

    def test_emit_document_helper(self):
        """emit_document renders with a fresh emitter."""
        document = DocumentNode(children=[para("hi")])
        assert emit_document(document, CompilerConfig()) == "hi\n"


class TestInline:
    """Tests for inline formatting."""

    def test_formatting(self, emit):
        """Bold, italic, code and links render in markdown syntax."""
        node = para(
            BoldNode(children=[text("b")]), " ",
            ItalicNode(children=[text("i")]), " ",
            InlineCodeNode(content="c"), " ",
            LinkNode(url="https://example.com", children=[text("l")]),
        )
        assert emit(node) == "**b** *i* `c` [l](https://example.com)\n"

    def test_line_break(self, emit):
        """Line breaks split the paragraph."""
        assert emit(para("a", LineBreakNode(), "b")) == "a\nb\n"

    def test_staged_text(self, emit):
        """Staged text is replaced by its resolved expression."""
        out = emit(para("Status: ", StagedTextNode(value=root("RESULT").at("status"))))
        assert out == "Status: $(echo \"$RESULT\" | jq -r '.status')\n"

    def test_staged_inline_code(self, emit):
        """Inline code may hold a staged value."""
        assert emit(para(InlineCodeNode(content=root("FILE")))) == "`$FILE`\n"


class TestHeadings:
    """Tests for headings and steps."""

    @pytest.mark.parametrize("level", range(1, 7))
    def test_levels(self, emit, level):
        """ATX headings use one # per level."""
        assert emit(HeadingNode(level=level, children=[text("T")])) == "#" * level + " T\n"

    def test_step_heading(self, emit):
        """Heading steps render as level-2 headings."""
        step = StepNode(number=1, name="Setup", children=[para("Do it.")])
        assert emit(step) == "## Step 1: Setup\n\nDo it.\n"

    def test_step_offsets_child_headings(self, emit):
        """Headings inside a step are pushed one level down."""
        step = StepNode(number="2.1", name="Build", children=[HeadingNode(level=2, children=[text("Sub")])])
        assert emit(step) == "## Step 2.1: Build\n\n### Sub\n"

    def test_offset_capped(self, emit):
        """Heading offset never exceeds level 6."""
        step = StepNode(number=1, name="Deep", children=[HeadingNode(level=6, children=[text("X")])])
        assert emit(step).endswith("###### X\n")

    def test_bold_step(self, emit):
        """Bold steps use strong emphasis."""
        assert emit(StepNode(number=3, name="Ship", variant="bold")) == "**Step 3: Ship**\n"

    def test_xml_step(self, emit):
        """XML steps wrap their body."""
        step = StepNode(number=1, name="Plan", variant="xml", children=[para("Think.")])
        assert emit(step) == '<step number="1" name="Plan">\nThink.\n</step>\n'


class TestLists:
    """Tests for list rendering."""

    def test_unordered(self, emit):
        """Unordered items use dashes."""
        assert emit(ListNode(items=[item("a"), item("b")])) == "- a\n- b\n"

    def test_ordered_start(self, emit):
        """Ordered items count from start."""
        assert emit(ListNode(ordered=True, start=3, items=[item("a"), item("b")])) == "3. a\n4. b\n"

    def test_nested(self, emit):
        """Nested lists indent by two spaces per level."""
        inner = ListNode(items=[item("child")])
        outer = ListNode(items=[item("parent", inner), item("next")])
        assert emit(outer) == "- parent\n  - child\n- next\n"

    def test_continuation_blocks(self, emit):
        """Later blocks in an item are indented under the marker."""
        node = ListNode(items=[item("first", CodeBlockNode(language="bash", content="ls"))])
        assert emit(node) == "- first\n  ```bash\n  ls\n  ```\n"


class TestTables:
    """Tests for table rendering."""

    def test_header_separator_row(self, emit):
        """Header row, plain separator, one data row."""
        table = TableNode(headers=["Name", "Age"], rows=[["Alice", "30"]])
        assert emit(table) == "| Name | Age |\n| --- | --- |\n| Alice | 30 |\n"

    def test_alignment(self, emit):
        """Alignment markers appear in the separator row."""
        table = TableNode(headers=["L", "C", "R", "N"], align=["left", "center", "right"])
        assert emit(table).splitlines()[1] == "| :--- | :---: | ---: | --- |"

    def test_escaping(self, emit):
        """Pipes are escaped and newlines flattened in cells."""
        table = TableNode(headers=["x"], rows=[["a|b\nc"]])
        assert emit(table).splitlines()[2] == "| a\\|b c |"

    def test_short_rows_padded(self, emit):
        """Missing cells use the empty-cell filler."""
        table = TableNode(headers=["a", "b"], rows=[["1"]], empty_cell="-")
        assert emit(table).splitlines()[2] == "| 1 | - |"

    def test_no_headers(self, emit):
        """Without headers the separator row still comes first."""
        table = TableNode(rows=[["1", "2"]])
        assert emit(table) == "| --- | --- |\n| 1 | 2 |\n"

    def test_staged_cell(self, emit):
        """Staged cells are resolved."""
        table = TableNode(headers=["v"], rows=[[root("ROW")]])
        assert emit(table).splitlines()[2] == "| $ROW |"

    def test_empty_table(self, emit):
        """A table with no columns renders nothing."""
        assert emit(TableNode()) == ""


class TestBlocks:
    """Tests for the remaining static blocks."""

    def test_code_block(self, emit):
        """Code blocks are fenced with their language."""
        assert emit(CodeBlockNode(language="bash", content="echo hi")) == "```bash\necho hi\n```\n"

    def test_code_fence_grows(self, emit):
        """Content containing a fence gets a longer fence."""
        out = emit(CodeBlockNode(content="```\nx\n```"))
        assert out.startswith("````\n")
        assert out.endswith("\n````\n")

    def test_blockquote(self, emit):
        """Every line is quoted, blank lines included."""
        node = BlockquoteNode(children=[para("a"), para("b")])
        assert emit(node) == "> a\n>\n> b\n"

    def test_thematic_break(self, emit):
        """Thematic break renders as three dashes."""
        assert emit(ThematicBreakNode()) == "---\n"

    def test_xml_block(self, emit):
        """XML blocks wrap content in tags with escaped attributes."""
        node = XmlBlockNode(name="objective", attributes={"id": 'a"b'}, children=[para("Ship it.")])
        assert emit(node) == '<objective id="a&quot;b">\nShip it.\n</objective>\n'

    def test_group(self, emit):
        """Groups join children with single newlines."""
        assert emit(GroupNode(children=[para("a"), para("b")])) == "a\nb\n"

    def test_raw(self, emit):
        """Raw markdown passes through."""
        assert emit(RawNode(content="\n| raw |\n")) == "| raw |\n"

    def test_indent(self, emit):
        """Indent prefixes each non-empty line."""
        node = IndentNode(spaces=4, children=[para("a"), para("b")])
        assert emit(node) == "    a\n\n    b\n"

    def test_nested_indent(self, emit):
        """Nested indents add their widths."""
        node = IndentNode(spaces=2, children=[
            para("outer"),
            IndentNode(spaces=3, children=[para("inner")]),
        ])
        assert emit(node) == "  outer\n\n     inner\n"

    def test_success_criteria(self, emit):
        """Criteria render as a checklist inside their tag."""
        node = SuccessCriteriaNode(items=[
            SuccessCriterion(text="Tests pass", checked=True),
            SuccessCriterion(text=root("GOAL")),
        ])
        assert emit(node) == (
            "<success_criteria>\n"
            "- [x] Tests pass\n"
            "- [ ] $GOAL\n"
            "</success_criteria>\n"
        )

    def test_offer_next(self, emit):
        """Each route names its command path on the following line."""
        node = OfferNextNode(routes=[
            OfferNextRoute(name="Plan", path="/plan-phase", description="Break the work down"),
            OfferNextRoute(name="Verify", path="/verify"),
        ])
        assert emit(node) == (
            "<offer_next>\n"
            "- **Plan**: Break the work down\n"
            "  `/plan-phase`\n"
            "- **Verify**\n"
            "  `/verify`\n"
            "</offer_next>\n"
        )

    def test_execution_reference(self, emit):
        """Execution context lists prefixed paths."""
        node = ExecutionReferenceNode(paths=["docs/plan.md", "@notes.md"])
        assert emit(node) == "<execution_context>\n@docs/plan.md\n@notes.md\n</execution_context>\n"


class TestInvariants:
    """Trees the validator should have rejected."""

    def test_dangling_else_is_internal_error(self, emit):
        """An else without a conditional is a compiler defect here."""
        with pytest.raises(InternalInvariantError):
            emit(ElseBranchNode(children=[para("x")]))

    def test_dangling_else_in_list_item(self, emit):
        """List items apply the same check as any other sequence."""
        node = ListNode(items=[item("a", ElseBranchNode(children=[para("x")]))])
        with pytest.raises(InternalInvariantError):
            emit(node)
