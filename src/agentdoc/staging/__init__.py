"""
Staging — Values and functions that only exist at execution time.

Staged values are symbolic references into JSON held by external
variables; staged functions are relocated into a side artifact and
invoked by the emitted document.
"""

from agentdoc.staging.values import (
    StagedValue,
    ResolutionCache,
    DEFAULT_QUERY_TOOL,
    root,
    project,
    is_staged,
    iter_staged,
    query_path,
    resolve,
    resolve_json,
    truthiness,
)
from agentdoc.staging.functions import (
    StagedSignature,
    StagedFunction,
    FunctionStagingRegistry,
    shape_of,
    signature_of,
    relocate_source,
    collect_dependencies,
    emit_call,
    create_registry,
)
from agentdoc.staging.artifact import render_runtime_module

__all__ = [
    # Values
    "StagedValue",
    "ResolutionCache",
    "DEFAULT_QUERY_TOOL",
    "root",
    "project",
    "is_staged",
    "iter_staged",
    "query_path",
    "resolve",
    "resolve_json",
    "truthiness",
    # Functions
    "StagedSignature",
    "StagedFunction",
    "FunctionStagingRegistry",
    "shape_of",
    "signature_of",
    "relocate_source",
    "collect_dependencies",
    "emit_call",
    "create_registry",
    # Artifact
    "render_runtime_module",
]
