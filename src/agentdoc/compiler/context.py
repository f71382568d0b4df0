"""
Build Context — Per-unit state threaded through one compilation.

Everything that used to be process-wide (name counters, the staged
function table) lives here instead, so concurrent or repeated builds
never see each other's numbering or registrations.
"""

from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID, uuid4

from agentdoc.config import CompilerConfig
from agentdoc.errors import RegistryClosedError
from agentdoc.staging.functions import (
    FunctionStagingRegistry,
    StagedFunction,
    StagedSignature,
    create_registry,
)
from agentdoc.staging.values import StagedValue, root


@dataclass
class BuildContext:
    """
    State owned by exactly one compilation unit.

    Holds the unit's staged function registry and name allocator.
    Discard with `close()` when the unit finishes; a closed context
    refuses further registrations.
    """
    name: str = "document"
    config: CompilerConfig = field(default_factory=CompilerConfig)
    unit_id: UUID = field(default_factory=uuid4)
    registry: FunctionStagingRegistry = field(default_factory=create_registry)
    _counters: dict[str, int] = field(default_factory=dict)

    def allocate_name(self, prefix: str) -> str:
        """Next unused name for `prefix` in this unit: `PREFIX_1`, `PREFIX_2`, ..."""
        key = prefix.upper()
        self._counters[key] = self._counters.get(key, 0) + 1
        return f"{key}_{self._counters[key]}"

    def allocate_root(self, prefix: str) -> StagedValue:
        """Fresh staged root with an allocated name."""
        return root(self.allocate_name(prefix))

    def register(
        self,
        name: str,
        body: Callable[..., Any],
        signature: StagedSignature | None = None,
    ) -> StagedFunction:
        """Register a staged function in this unit's registry."""
        return self.registry.register(name, signature, body)

    def stage(self, name: str | None = None, signature: StagedSignature | None = None):
        """Decorator registering a staged function in this unit."""
        return self.registry.stage(name, signature)

    def close(self) -> None:
        """Discard the registry and counters."""
        self.registry.close()
        self._counters.clear()

    @property
    def closed(self) -> bool:
        return self.registry.closed

    def ensure_open(self) -> None:
        if self.closed:
            raise RegistryClosedError(self.name, "build context already closed")


def create_build_context(
    name: str = "document",
    config: CompilerConfig | None = None,
    **kwargs: Any,
) -> BuildContext:
    """Factory for a fresh per-unit build context."""
    return BuildContext(name=name, config=config or CompilerConfig(), **kwargs)
