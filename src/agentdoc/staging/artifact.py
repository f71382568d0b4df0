"""
Runtime Artifact — Standalone module holding a build's staged functions.

The emitted document invokes it as

    python3 runtime.py <function> '<json-args>'

and reads the JSON result from stdout. Output is a pure function of the
registry's contents and order.
"""

from agentdoc.observability import get_logger
from agentdoc.staging.functions import FunctionStagingRegistry


logger = get_logger("staging.artifact")


_ENTRY_POINT = '''def main(argv=None):
    argv = _sys.argv[1:] if argv is None else argv
    if not argv:
        print(_json.dumps({"error": "usage: runtime.py <function> [json-args]"}))
        return 2
    fn = REGISTRY.get(argv[0])
    if fn is None:
        print(_json.dumps({"error": f"unknown function: {argv[0]}"}))
        return 2
    args = _json.loads(argv[1]) if len(argv) > 1 and argv[1] else {}
    result = fn(args)
    if _inspect.isawaitable(result):
        result = _asyncio.run(result)
    print(_json.dumps(result))
    return 0


if __name__ == "__main__":
    _sys.exit(main())
'''

_RUNTIME_IMPORTS = (
    "import asyncio as _asyncio",
    "import inspect as _inspect",
    "import json as _json",
    "import sys as _sys",
)


def render_runtime_module(
    registry: FunctionStagingRegistry,
    title: str | None = None,
    command: str = "python3",
    module: str = "runtime.py",
) -> str | None:
    """
    Render the side artifact for `registry`.

    Returns None when nothing was registered. Imports and constants the
    functions depend on are merged and deduplicated; functions appear in
    registration order.
    """
    functions = registry.functions()
    if not functions:
        return None

    imports: list[str] = list(_RUNTIME_IMPORTS)
    constants: list[str] = []
    for handle in functions:
        for line in handle.imports:
            if line not in imports:
                imports.append(line)
        for line in handle.constants:
            if line not in constants:
                constants.append(line)

    heading = f"{title} runtime" if title else "Runtime"
    sections = [
        f'"""\n{heading} — Staged functions invoked by the compiled document.\n\n'
        f"Usage: {command} {module} <function> '<json-args>'\n\"\"\"",
        "\n".join(sorted(line for line in imports if line.startswith("import ")) +
                  sorted(line for line in imports if line.startswith("from "))),
    ]
    if constants:
        sections.append("\n".join(constants))
    sections.extend(handle.source for handle in functions)

    registry_lines = ["REGISTRY = {"]
    registry_lines.extend(f'    "{handle.name}": {handle.name},' for handle in functions)
    registry_lines.append("}")
    sections.append("\n".join(registry_lines))
    sections.append(_ENTRY_POINT.rstrip("\n"))

    logger.debug(f"Rendered runtime module with {len(functions)} functions")
    return "\n\n\n".join(sections) + "\n"
