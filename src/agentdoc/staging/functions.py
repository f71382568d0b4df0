"""
Function Staging — Host functions relocated into a side artifact.

A staged function is never run by the compiler. Its source is lifted
into the runtime module, and the document instructs the execution
environment to invoke it by name and capture its JSON output into a
staged root.

Registries are scoped to one build. Create one per compilation unit
(`BuildContext` does this) and close it when the unit finishes.
"""

import ast
import inspect
import keyword
import textwrap
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from agentdoc.errors import (
    DuplicateRegistration,
    RegistrationError,
    RegistryClosedError,
    UnsupportedSignatureShape,
)
from agentdoc.observability import get_logger
from agentdoc.vocabulary import STRUCTURED_SHAPES, ValueShape

if TYPE_CHECKING:
    from agentdoc.ir.nodes import StagedCallNode
    from agentdoc.staging.values import StagedValue


logger = get_logger("staging")


# Module-level names the runtime artifact binds for its own entry point
RUNTIME_NAMES = frozenset({"REGISTRY", "main", "_asyncio", "_inspect", "_json", "_sys"})


# =============================================================================
# SIGNATURES
# =============================================================================

class StagedSignature(BaseModel):
    """Declared input and output shape of a staged function."""
    model_config = ConfigDict(frozen=True)

    inputs: tuple[ValueShape, ...] = Field(..., description="Shape of each positional argument")
    output: ValueShape = Field(..., description="Shape of the returned value")

    @property
    def is_single_argument(self) -> bool:
        """One structured argument in, one value out."""
        return (
            len(self.inputs) == 1
            and self.inputs[0] in STRUCTURED_SHAPES
            and self.output != ValueShape.NONE
        )


_NAMED_SHAPES: dict[str, ValueShape] = {
    "dict": ValueShape.OBJECT,
    "Dict": ValueShape.OBJECT,
    "Mapping": ValueShape.OBJECT,
    "list": ValueShape.ARRAY,
    "List": ValueShape.ARRAY,
    "tuple": ValueShape.ARRAY,
    "Sequence": ValueShape.ARRAY,
    "str": ValueShape.STRING,
    "int": ValueShape.NUMBER,
    "float": ValueShape.NUMBER,
    "bool": ValueShape.BOOLEAN,
    "None": ValueShape.NONE,
    "NoneType": ValueShape.NONE,
    "Any": ValueShape.ANY,
}


def shape_of(annotation: Any) -> ValueShape:
    """Map a Python annotation onto a JSON value shape."""
    if annotation is inspect.Parameter.empty or annotation is Any:
        return ValueShape.ANY
    if annotation is None or annotation is type(None):
        return ValueShape.NONE
    if isinstance(annotation, str):
        head = annotation.split("[", 1)[0].strip().rsplit(".", 1)[-1]
        return _NAMED_SHAPES.get(head, ValueShape.ANY)

    origin = typing.get_origin(annotation) or annotation
    if isinstance(origin, type):
        if issubclass(origin, BaseModel) or typing.is_typeddict(origin):
            return ValueShape.OBJECT
        if issubclass(origin, bool):
            return ValueShape.BOOLEAN
        if issubclass(origin, dict):
            return ValueShape.OBJECT
        if issubclass(origin, (list, tuple)):
            return ValueShape.ARRAY
        if issubclass(origin, str):
            return ValueShape.STRING
        if issubclass(origin, (int, float)):
            return ValueShape.NUMBER
    return _NAMED_SHAPES.get(getattr(origin, "__name__", ""), ValueShape.ANY)


def signature_of(fn: Callable[..., Any]) -> StagedSignature:
    """
    Derive a staged signature from a Python callable.

    Variadic parameters and required keyword-only parameters each count
    as an extra input, so they can never pass the single-argument check.
    """
    sig = inspect.signature(fn)
    inputs: list[ValueShape] = []
    for param in sig.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            inputs.append(ValueShape.NONE)
        elif param.kind == param.KEYWORD_ONLY:
            if param.default is param.empty:
                inputs.append(ValueShape.NONE)
        else:
            inputs.append(shape_of(param.annotation))
    return StagedSignature(inputs=tuple(inputs), output=shape_of(sig.return_annotation))


# =============================================================================
# SOURCE RELOCATION
# =============================================================================

def relocate_source(name: str, body: Callable[..., Any]) -> str:
    """
    Source text of `body` as a top-level function called `name`.

    Decorators and annotations are dropped. Raises
    UnsupportedSignatureShape when the function cannot stand alone in
    the side artifact.
    """
    if getattr(body, "__name__", "") == "<lambda>":
        raise UnsupportedSignatureShape(name, "lambdas cannot be relocated; use a def")
    code = getattr(body, "__code__", None)
    if code is not None and code.co_freevars:
        raise UnsupportedSignatureShape(
            name, f"function closes over {', '.join(code.co_freevars)}"
        )
    try:
        source = textwrap.dedent(inspect.getsource(body))
    except (OSError, TypeError) as exc:
        raise UnsupportedSignatureShape(name, f"source unavailable: {exc}") from exc

    module = ast.parse(source)
    for statement in module.body:
        if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef)):
            statement.name = name
            statement.decorator_list = []
            # Annotations may name types the artifact never imports
            statement.returns = None
            arguments = statement.args
            for arg in arguments.posonlyargs + arguments.args + arguments.kwonlyargs:
                arg.annotation = None
            for arg in (arguments.vararg, arguments.kwarg):
                if arg is not None:
                    arg.annotation = None
            return ast.unparse(statement)
    raise UnsupportedSignatureShape(name, "no function definition found in source")


def _global_names(code: Any) -> set[str]:
    names = set(code.co_names)
    for const in code.co_consts:
        if inspect.iscode(const):
            names |= _global_names(const)
    return names


def _is_literal(obj: Any) -> bool:
    if not isinstance(obj, (str, int, float, bool, type(None), list, tuple, dict)):
        return False
    try:
        return ast.literal_eval(repr(obj)) == obj
    except (ValueError, SyntaxError):
        return False


def collect_dependencies(name: str, body: Callable[..., Any]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """
    Module-level names `body` needs in the side artifact.

    Returns `(imports, constants)` as source lines. Modules become
    imports, literal constants are copied by value, and objects defined
    in other modules are imported by name. Anything else defined next to
    `body` cannot follow it and is rejected.
    """
    code = getattr(body, "__code__", None)
    namespace = getattr(body, "__globals__", None)
    if code is None or namespace is None:
        return (), ()

    imports: list[str] = []
    constants: list[str] = []
    home = getattr(body, "__module__", None)
    for ref in sorted(_global_names(code)):
        if ref not in namespace:
            continue
        obj = namespace[ref]
        if inspect.ismodule(obj):
            module = obj.__name__
            imports.append(f"import {module}" if module == ref else f"import {module} as {ref}")
        elif _is_literal(obj):
            constants.append(f"{ref} = {obj!r}")
        elif isinstance(obj, StagedFunction):
            continue
        else:
            origin = getattr(obj, "__module__", None)
            if origin is None or origin == home or getattr(obj, "__name__", None) is None:
                raise UnsupportedSignatureShape(
                    name, f"references {ref}, which cannot be relocated with it"
                )
            if obj.__name__ == ref:
                imports.append(f"from {origin} import {ref}")
            else:
                imports.append(f"from {origin} import {obj.__name__} as {ref}")
    return tuple(imports), tuple(constants)


def bound_name(line: str) -> str:
    """Module-level name bound by an import or constant line."""
    if line.startswith(("import ", "from ")):
        target = line.rsplit(" as ", 1)[-1] if " as " in line else line.rsplit(" ", 1)[-1]
        return target.split(".", 1)[0]
    return line.split("=", 1)[0].strip()


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass(frozen=True)
class StagedFunction:
    """
    Handle returned by registration.

    Holds everything the side artifact needs; the original callable is
    kept only for introspection and is never invoked.
    """
    name: str
    signature: StagedSignature
    source: str
    is_async: bool = False
    imports: tuple[str, ...] = ()
    constants: tuple[str, ...] = ()
    body: Callable[..., Any] | None = field(default=None, compare=False, repr=False)

    def call(self, args: Any, output: "StagedValue") -> "StagedCallNode":
        """Build a staged-call node invoking this function."""
        return emit_call(self, args, output)


@dataclass
class FunctionStagingRegistry:
    """
    Staged functions of one build, in registration order.

    Never shared between builds: a second build gets a fresh registry,
    so identical names in different builds do not collide.
    """
    _functions: dict[str, StagedFunction] = field(default_factory=dict)
    _closed: bool = False

    def register(
        self,
        name: str,
        signature: StagedSignature | None,
        body: Callable[..., Any],
    ) -> StagedFunction:
        """
        Register `body` under `name`.

        Raises:
            RegistryClosedError: the owning build already finished
            DuplicateRegistration: `name` already registered in this build
            UnsupportedSignatureShape: not one structured argument and one result
        """
        if self._closed:
            raise RegistryClosedError(name, "registry belongs to a finished build")
        if not name.isidentifier() or keyword.iskeyword(name):
            raise RegistrationError(name, "name must be a valid identifier")
        if name in RUNTIME_NAMES:
            raise UnsupportedSignatureShape(name, "name is reserved by the runtime module")
        if name in self._functions:
            raise DuplicateRegistration(name, "already registered in this build")
        if not callable(body):
            raise UnsupportedSignatureShape(name, "body is not callable")

        actual = signature_of(body)
        declared = signature or actual
        if not declared.is_single_argument:
            raise UnsupportedSignatureShape(
                name,
                f"expected one structured argument and one result, "
                f"got ({', '.join(s.value for s in declared.inputs)}) -> {declared.output.value}",
            )
        if len(actual.inputs) != 1:
            raise UnsupportedSignatureShape(
                name, f"body takes {len(actual.inputs)} arguments, expected 1"
            )

        source = relocate_source(name, body)
        imports, constants = collect_dependencies(name, body)
        self._check_module_names(name, imports + constants)
        handle = StagedFunction(
            name=name,
            signature=declared,
            source=source,
            is_async=inspect.iscoroutinefunction(body),
            imports=imports,
            constants=constants,
            body=body,
        )
        self._functions[name] = handle
        logger.debug(f"Staged function {name} registered")
        return handle

    def _check_module_names(self, name: str, dependencies: tuple[str, ...]) -> None:
        # Every function shares one module namespace in the artifact
        needed = {bound_name(line) for line in dependencies}
        clashes = needed & (RUNTIME_NAMES | set(self._functions) | {name})
        for other in self._functions.values():
            if name in {bound_name(line) for line in other.imports + other.constants}:
                clashes.add(name)
        if clashes:
            raise UnsupportedSignatureShape(
                name, f"module-level name clash in the runtime module: {', '.join(sorted(clashes))}"
            )

    def stage(
        self,
        name: str | None = None,
        signature: StagedSignature | None = None,
    ) -> Callable[[Callable[..., Any]], StagedFunction]:
        """
        Decorator form of `register`.

            @registry.stage()
            def init(args: dict) -> dict: ...
        """
        def decorator(fn: Callable[..., Any]) -> StagedFunction:
            return self.register(name or fn.__name__, signature, fn)
        return decorator

    def get(self, name: str) -> StagedFunction | None:
        return self._functions.get(name)

    def names(self) -> list[str]:
        return list(self._functions.keys())

    def functions(self) -> list[StagedFunction]:
        return list(self._functions.values())

    def close(self) -> None:
        """Discard all registrations; later registrations fail."""
        self._functions.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)


def emit_call(handle: StagedFunction, args: Any, output: "StagedValue | str") -> "StagedCallNode":
    """
    IR node that invokes `handle` at execution time.

    `args` may be a literal, a staged value, or a composite literal with
    staged leaves. The function body is not executed.
    """
    from agentdoc.ir.nodes import StagedCallNode

    return StagedCallNode(function=handle.name, args=args, output=output)


def create_registry() -> FunctionStagingRegistry:
    """Factory for a build-scoped registry."""
    return FunctionStagingRegistry()
