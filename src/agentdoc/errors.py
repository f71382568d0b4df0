"""
Errors — Exception taxonomy for a compilation unit.

Every failure is fatal to the unit that raised it. Nothing in the core
retries: compilation is pure, so the same input fails the same way.
"""

from typing import Any


TreePath = tuple[int, ...]


def format_path(path: TreePath) -> str:
    """Render a tree path as `/0/2/1` (`/` is the document root)."""
    return "/" + "/".join(str(i) for i in path)


class AgentDocError(Exception):
    """Base class for all compiler errors."""
    pass


# =============================================================================
# STRUCTURAL ERRORS (control-flow validator)
# =============================================================================

class StructuralError(AgentDocError):
    """
    A tree violates a control-flow rule.

    Carries the index path of the offending node from the document root,
    and for shape problems the expected and actual shapes.
    """
    rule = "structural"

    def __init__(
        self,
        message: str,
        path: TreePath = (),
        kind: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
    ):
        self.message = message
        self.path = tuple(path)
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.rule} at {format_path(self.path)}: {self.message}"
        if self.expected is not None:
            text += f" (expected {self.expected}, got {self.actual})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "path": list(self.path),
            "kind": self.kind,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
        }


class DanglingElse(StructuralError):
    """else-branch not immediately preceded by a conditional sibling."""
    rule = "dangling_else"


class BreakOutsideLoop(StructuralError):
    """break with no enclosing loop in the same execution context."""
    rule = "break_outside_loop"


class InvalidOptionCount(StructuralError):
    """ask-user with fewer than 2 or more than 4 options."""
    rule = "invalid_option_count"


class TypeMismatch(StructuralError):
    """A literal or staged slot holds a value of the wrong shape."""
    rule = "type_mismatch"


# =============================================================================
# REGISTRATION ERRORS (function staging registry)
# =============================================================================

class RegistrationError(AgentDocError):
    """A staged function could not be registered."""

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


class DuplicateRegistration(RegistrationError):
    """Name already registered in this build."""
    pass


class UnsupportedSignatureShape(RegistrationError):
    """Function does not take one structured argument and return one result."""
    pass


class RegistryClosedError(RegistrationError):
    """Registration attempted after the build that owns the registry ended."""
    pass


# =============================================================================
# LOWERING ERRORS (element tree -> IR)
# =============================================================================

class LoweringError(AgentDocError):
    """The generic element tree could not be turned into IR."""

    def __init__(self, message: str, path: TreePath = (), element: str | None = None):
        self.message = message
        self.path = tuple(path)
        self.element = element
        super().__init__(f"<{element}> at {format_path(self.path)}: {message}")


class UnknownElement(LoweringError):
    """Element name has no IR counterpart."""
    pass


class InvalidProps(LoweringError):
    """Element props are missing or malformed."""
    pass


class UnknownFunction(LoweringError):
    """Call references a function not registered in this build."""
    pass


# =============================================================================
# INTERNAL ERRORS
# =============================================================================

class InternalInvariantError(AgentDocError):
    """
    The emitter met a tree the validator should have rejected.

    This is a compiler defect, never a user error.
    """
    pass
