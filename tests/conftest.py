"""
Shared fixtures for agentdoc tests.
"""

import pytest

from agentdoc.compiler import BuildContext, create_build_context
from agentdoc.config import CompilerConfig
from agentdoc.emitter import MarkdownEmitter
from agentdoc.ir.nodes import DocumentNode


@pytest.fixture
def config() -> CompilerConfig:
    """Default compiler configuration."""
    return CompilerConfig()


@pytest.fixture
def context(config: CompilerConfig) -> BuildContext:
    """Fresh build context, closed after the test."""
    ctx = create_build_context(name="test", config=config)
    yield ctx
    ctx.close()


@pytest.fixture
def emit(config: CompilerConfig):
    """Emit a list of blocks as a document body."""
    def _emit(*blocks, frontmatter=None) -> str:
        document = DocumentNode(frontmatter=frontmatter, children=list(blocks))
        return MarkdownEmitter(config).emit(document)
    return _emit
