"""
agentdoc — Compile component trees into agent-executable markdown.

Values known only at execution time are staged: they render as jq
queries over shell variables, and staged functions are relocated into
a runtime module the document invokes.
"""

__version__ = "0.1.0"

from agentdoc.config import CompilerConfig, create_config
from agentdoc.errors import (
    AgentDocError,
    StructuralError,
    RegistrationError,
    LoweringError,
    InternalInvariantError,
)
from agentdoc.staging import (
    StagedValue,
    StagedSignature,
    StagedFunction,
    root,
    project,
)
from agentdoc.compiler import (
    ElementNode,
    element,
    BuildContext,
    create_build_context,
    CompilationResult,
    DocumentCompiler,
    compile_batch,
    create_compiler,
)

__all__ = [
    "__version__",
    "CompilerConfig",
    "create_config",
    "AgentDocError",
    "StructuralError",
    "RegistrationError",
    "LoweringError",
    "InternalInvariantError",
    "StagedValue",
    "StagedSignature",
    "StagedFunction",
    "root",
    "project",
    "ElementNode",
    "element",
    "BuildContext",
    "create_build_context",
    "CompilationResult",
    "DocumentCompiler",
    "compile_batch",
    "create_compiler",
]
