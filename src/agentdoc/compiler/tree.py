"""
Element Tree — Generic node tree handed over by the authoring front end.

Each element carries a name, a prop mapping and ordered children. Prop
values are literals, nested objects and arrays of literals, staged
values, or staged function handles. Children are elements, strings,
numbers or staged values; None and booleans are ignored.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ElementNode:
    """One element of the input tree."""
    name: str
    props: dict[str, Any] = field(default_factory=dict)
    children: list[Any] = field(default_factory=list)

    def prop(self, *names: str, default: Any = None) -> Any:
        """First present prop among `names` (snake_case and camelCase spellings)."""
        for name in names:
            if name in self.props:
                return self.props[name]
        return default


def element(name: str, props: dict[str, Any] | None = None, *children: Any) -> ElementNode:
    """
    Build an element the way a front end would.

        element("If", {"condition": ctx.at("error")},
            element("p", None, "Error!"),
        )
    """
    flat: list[Any] = []
    for child in children:
        if isinstance(child, (list, tuple)):
            flat.extend(child)
        else:
            flat.append(child)
    return ElementNode(name=name, props=dict(props or {}), children=flat)
