"""
Document Compiler — Turns an element tree into markdown plus its runtime.

Pipeline per compilation unit:
1. Lower the element tree to IR
2. Validate control flow (fails fast on the first structural error)
3. Emit markdown
4. Render the side artifact from the unit's staged functions
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence, Union
from uuid import UUID

from agentdoc.compiler.builder import IRBuilder
from agentdoc.compiler.context import BuildContext, create_build_context
from agentdoc.compiler.tree import ElementNode
from agentdoc.config import CompilerConfig
from agentdoc.emitter import MarkdownEmitter
from agentdoc.ir.nodes import DocumentNode
from agentdoc.observability import LogContext, get_logger
from agentdoc.staging.artifact import render_runtime_module
from agentdoc.validation import ControlFlowValidator, ValidationWarning


logger = get_logger("compiler")


Tree = Union[ElementNode, DocumentNode]
Source = Union[Tree, Callable[[BuildContext], Tree]]


@dataclass
class CompilationResult:
    """Output of one compilation unit."""
    name: str
    unit_id: UUID
    document: DocumentNode
    text: str
    runtime: str | None = None
    functions: list[str] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)

    @property
    def has_runtime(self) -> bool:
        return self.runtime is not None


class DocumentCompiler:
    """
    Compiles element trees into markdown documents.

    A source is an element tree, an already-lowered document, or a
    callable that receives the unit's build context (to register staged
    functions) and returns either of those.
    """

    def __init__(
        self,
        config: CompilerConfig | None = None,
        validator: ControlFlowValidator | None = None,
    ):
        self.config = config or CompilerConfig()
        self.validator = validator or ControlFlowValidator()

    def compile(
        self,
        source: Source,
        context: BuildContext | None = None,
        name: str | None = None,
    ) -> CompilationResult:
        """
        Compile one unit.

        When no context is given a fresh one is created and closed once
        the unit finishes, whether or not it succeeded.
        """
        owns_context = context is None
        if context is None:
            context = create_build_context(name=name or "document", config=self.config)

        try:
            with LogContext(context.unit_id, name=context.name):
                return self._compile(source, context)
        finally:
            if owns_context:
                context.close()

    def _compile(self, source: Source, context: BuildContext) -> CompilationResult:
        with LogContext(stage="lower"):
            tree = source(context) if callable(source) else source
            if isinstance(tree, DocumentNode):
                document = tree
            else:
                document = IRBuilder(context).build(tree)

        with LogContext(stage="validate"):
            validation = self.validator.validate(document)
            logger.debug(
                f"Validated {context.name}: {len(validation.warnings)} warnings"
            )
            for warning in validation.warnings:
                logger.warning(str(warning))

        with LogContext(stage="emit"):
            text = MarkdownEmitter(context.config).emit(document)
            logger.debug(f"Emitted {context.name}: {len(text)} characters")

        with LogContext(stage="render"):
            runtime = render_runtime_module(
                context.registry,
                title=context.name,
                command=context.config.runtime_command,
                module=context.config.runtime_module,
            )
            if runtime is not None:
                logger.debug(
                    f"Rendered {context.config.runtime_module} with "
                    f"{len(context.registry)} staged functions"
                )

        functions = context.registry.names()
        logger.info(
            f"Compiled {context.name}",
            extra={"fields": {
                "characters": len(text),
                "functions": len(functions),
                "warnings": len(validation.warnings),
            }},
        )

        return CompilationResult(
            name=context.name,
            unit_id=context.unit_id,
            document=document,
            text=text,
            runtime=runtime,
            functions=functions,
            warnings=list(validation.warnings),
        )


def compile_batch(
    sources: Sequence[Source] | Mapping[str, Source],
    config: CompilerConfig | None = None,
    max_workers: int | None = None,
) -> list[CompilationResult]:
    """
    Compile independent units in parallel.

    Each unit gets its own build context. Results follow input order; the
    first failing unit's error is raised. A mapping names each unit by its
    key, otherwise units are named `document-<index>`.
    """
    if isinstance(sources, Mapping):
        units = list(sources.items())
    else:
        units = [(f"document-{index}", source) for index, source in enumerate(sources)]

    if not units:
        return []

    compiler = DocumentCompiler(config)
    logger.debug(f"Compiling {len(units)} units")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(compiler.compile, source, None, name)
            for name, source in units
        ]
        return [future.result() for future in futures]


def create_compiler(
    config: CompilerConfig | None = None,
    validator: ControlFlowValidator | None = None,
) -> DocumentCompiler:
    """Factory for document compiler."""
    return DocumentCompiler(config=config, validator=validator)
