"""
Compiler — Element trees to markdown documents and their runtime.

Lowers the front end's element tree into IR, validates it, emits
markdown and renders the side artifact for staged functions.
"""

from agentdoc.compiler.tree import (
    ElementNode,
    element,
)
from agentdoc.compiler.context import (
    BuildContext,
    create_build_context,
)
from agentdoc.compiler.builder import (
    IRBuilder,
    build_document,
)
from agentdoc.compiler.compiler import (
    CompilationResult,
    DocumentCompiler,
    compile_batch,
    create_compiler,
)

__all__ = [
    # Input tree
    "ElementNode",
    "element",
    # Context
    "BuildContext",
    "create_build_context",
    # Lowering
    "IRBuilder",
    "build_document",
    # Compiler
    "CompilationResult",
    "DocumentCompiler",
    "compile_batch",
    "create_compiler",
]
