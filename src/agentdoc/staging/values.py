"""
Staged Values — Symbolic references to data that exists only at execution time.

A staged value names an external variable that will hold JSON when the
emitted document runs, plus a path into that JSON. It never holds data.
Resolution lowers it to the shell expression the execution environment
evaluates to fetch the real value.

    ctx = root("CTX")
    resolve(ctx)                      # $CTX
    resolve(project(ctx, "error"))    # $(echo "$CTX" | jq -r '.error')
    resolve(ctx.at("items", 0))       # $(echo "$CTX" | jq -r '.items[0]')
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field


Segment = str | int

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_QUERY_TOOL = "jq"


class StagedValue(BaseModel):
    """
    Immutable (root, path) reference.

    Two values with the same root and path resolve to the same
    expression; identity carries no meaning.
    """
    model_config = ConfigDict(frozen=True)

    root: str = Field(..., description="External variable holding JSON at execution time")
    path: tuple[Segment, ...] = Field(
        default=(),
        description="Property names and indices selected from the root",
    )

    @property
    def is_root(self) -> bool:
        """True when no path has been projected."""
        return not self.path

    def at(self, *segments: Segment) -> "StagedValue":
        """Project several segments in order."""
        value = self
        for segment in segments:
            value = project(value, segment)
        return value

    def describe(self) -> str:
        """Readable dotted form for diagnostics, e.g. `CTX.items[0].name`."""
        text = self.root
        for segment in self.path:
            text += f"[{segment}]" if isinstance(segment, int) else f".{segment}"
        return text


# =============================================================================
# CONSTRUCTORS
# =============================================================================

def root(name: str) -> StagedValue:
    """Staged value for the whole external variable `name`."""
    return StagedValue(root=name)


def project(value: StagedValue, segment: Segment) -> StagedValue:
    """
    Staged value for one more property or index below `value`.

    Pure: `value` is not modified.
    """
    if isinstance(segment, bool) or not isinstance(segment, (str, int)):
        raise TypeError(
            f"path segment must be str or int, got {type(segment).__name__}"
        )
    return StagedValue(root=value.root, path=value.path + (segment,))


def is_staged(obj: Any) -> bool:
    return isinstance(obj, StagedValue)


def iter_staged(obj: Any) -> Iterator[StagedValue]:
    """Yield every staged value embedded in a composite literal."""
    if isinstance(obj, StagedValue):
        yield obj
    elif isinstance(obj, dict):
        for item in obj.values():
            yield from iter_staged(item)
    elif isinstance(obj, (list, tuple)):
        for item in obj:
            yield from iter_staged(item)


# =============================================================================
# RESOLUTION
# =============================================================================

def query_path(value: StagedValue) -> str:
    """
    jq path selecting `value.path` from its root.

    Identifiers use `.name`, indices `[n]`, and any other key the quoted
    `["key"]` form, so distinct paths never collide.
    """
    if not value.path:
        return "."
    parts = []
    for segment in value.path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif _IDENTIFIER.match(segment):
            parts.append(f".{segment}")
        else:
            parts.append(f"[{json.dumps(segment)}]")
    text = "".join(parts)
    return text if text.startswith(".") else "." + text


def _shell_single_quote(text: str) -> str:
    return "'" + text.replace("'", "'\\''") + "'"


def _query(value: StagedValue, flag: str, query_tool: str) -> str:
    return (
        f'$(echo "${value.root}" | {query_tool} {flag} '
        f"{_shell_single_quote(query_path(value))})"
    )


def resolve(value: StagedValue, query_tool: str = DEFAULT_QUERY_TOOL) -> str:
    """
    Textual expression fetching the raw value at execution time.

    Bare `$ROOT` for an empty path; otherwise a command substitution
    running the query tool over the root's JSON. Never fails.
    """
    if not value.path:
        return f"${value.root}"
    return _query(value, "-r", query_tool)


def resolve_json(value: StagedValue, query_tool: str = DEFAULT_QUERY_TOOL) -> str:
    """Like `resolve`, but yields a JSON-encoded value for splicing into JSON."""
    if not value.path:
        return f"${value.root}"
    return _query(value, "-c", query_tool)


def truthiness(expression: str) -> str:
    """Shell assertion that a resolved expression is truthy."""
    return f'{expression} != "" && {expression} != "null" && {expression} != "false"'


@dataclass
class ResolutionCache:
    """
    Memoized resolution for one emission pass.

    Owned by a single emitter; raw and JSON forms are cached separately.
    """
    query_tool: str = DEFAULT_QUERY_TOOL
    _entries: dict[tuple[str, StagedValue], str] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    def resolve(self, value: StagedValue) -> str:
        return self._lookup("raw", value)

    def resolve_json(self, value: StagedValue) -> str:
        return self._lookup("json", value)

    def _lookup(self, mode: str, value: StagedValue) -> str:
        key = (mode, value)
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        if mode == "json":
            text = resolve_json(value, self.query_tool)
        else:
            text = resolve(value, self.query_tool)
        self._entries[key] = text
        return text

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
