"""
Configuration — Output conventions shared by every unit of a build.
"""

from dataclasses import dataclass
from typing import Any

from agentdoc.staging.values import DEFAULT_QUERY_TOOL


@dataclass
class CompilerConfig:
    """Compiler settings. Immutable in practice: units only read it."""
    runtime_module: str = "runtime.py"    # Side artifact referenced by staged calls
    runtime_command: str = "python3"      # Interpreter that runs the side artifact
    query_tool: str = DEFAULT_QUERY_TOOL  # JSON query tool used in resolution
    json_indent: int = 2                  # Indent for JSON literals in agent input
    skip_unreachable: bool = True         # Drop siblings after break/return

    def __post_init__(self) -> None:
        if self.json_indent < 0:
            raise ValueError("json_indent must be non-negative")
        if not self.runtime_module:
            raise ValueError("runtime_module cannot be empty")


def create_config(**overrides: Any) -> CompilerConfig:
    """Factory for compiler configuration."""
    return CompilerConfig(**overrides)
