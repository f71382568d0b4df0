"""Tests for the runtime side artifact."""

import ast
import json

from agentdoc.staging import create_registry, render_runtime_module


GREETING = "hello"


def greet(args: dict) -> dict:
    return {"message": f"{GREETING}, {args['name']}"}


def encode(args: dict) -> dict:
    return {"text": json.dumps(args, sort_keys=True)}


async def wait_for(args: dict) -> dict:
    return {"waited": args.get("seconds", 0)}


def _registry(*pairs):
    registry = create_registry()
    for name, body in pairs:
        registry.register(name, None, body)
    return registry


def test_empty_registry_has_no_artifact():
    """No staged functions means no side artifact."""
    assert render_runtime_module(create_registry()) is None


def test_artifact_is_valid_python():
    """Rendered module parses."""
    text = render_runtime_module(_registry(("greet", greet), ("encode", encode)))
    ast.parse(text)


def test_functions_in_registration_order():
    """Functions appear in registration order under their names."""
    text = render_runtime_module(_registry(("encode", encode), ("greet", greet)))
    assert text.index("def encode(args):") < text.index("def greet(args):")


def test_registry_table():
    """Every function is exposed by name."""
    text = render_runtime_module(_registry(("greet", greet), ("encode", encode)))
    assert '    "greet": greet,' in text
    assert '    "encode": encode,' in text


def test_dependencies_included():
    """Imports and constants the bodies need are rendered once."""
    text = render_runtime_module(_registry(("greet", greet), ("encode", encode)))
    assert "GREETING = 'hello'" in text
    assert text.count("import json\n") == 1


def test_entry_point():
    """Module runs as a script with a main() entry point."""
    text = render_runtime_module(_registry(("greet", greet)))
    assert "def main(argv=None):" in text
    assert 'if __name__ == "__main__":' in text
    assert text.endswith("sys.exit(main())\n")


def test_async_functions_awaited():
    """Async bodies are run to completion by the entry point."""
    text = render_runtime_module(_registry(("wait_for", wait_for)))
    assert "async def wait_for(args):" in text
    assert "asyncio.run(result)" in text


def test_docstring_names_command():
    """Module docstring documents the invocation."""
    text = render_runtime_module(
        _registry(("greet", greet)), title="deploy", command="python3.12", module="deploy_runtime.py"
    )
    assert text.startswith('"""\ndeploy runtime')
    assert "Usage: python3.12 deploy_runtime.py <function> '<json-args>'" in text


def test_deterministic():
    """Same registrations render the same text."""
    first = render_runtime_module(_registry(("greet", greet), ("encode", encode)))
    second = render_runtime_module(_registry(("greet", greet), ("encode", encode)))
    assert first == second


def test_main_dispatches():
    """Executing the module's main() invokes a staged function."""
    text = render_runtime_module(_registry(("greet", greet)))
    namespace: dict = {"__name__": "runtime"}
    exec(compile(text, "runtime.py", "exec"), namespace)
    assert namespace["main"](["greet", json.dumps({"name": "Ada"})]) == 0
    assert namespace["main"](["missing"]) == 2
    assert namespace["main"]([]) == 2


def echo(args: dict) -> dict:
    return {"echo": args}


def test_function_named_like_a_runtime_import():
    """A function may share a name with a module the entry point uses."""
    text = render_runtime_module(_registry(("json", echo), ("sys", greet)))
    namespace: dict = {"__name__": "runtime"}
    exec(compile(text, "runtime.py", "exec"), namespace)
    assert namespace["main"](["json", json.dumps({"a": 1})]) == 0
    assert namespace["main"](["sys", json.dumps({"name": "Ada"})]) == 0


def test_main_prints_result(capsys):
    """The result is written to stdout as JSON."""
    text = render_runtime_module(_registry(("json", echo)))
    namespace: dict = {"__name__": "runtime"}
    exec(compile(text, "runtime.py", "exec"), namespace)
    namespace["main"](["json", '{"a": 1}'])
    assert json.loads(capsys.readouterr().out) == {"echo": {"a": 1}}
