"""Built-in object types."""

from trace_diagnostics.types.layout_tree import register_layout_tree
from trace_diagnostics.types.screenshot import register_screenshot


def register_builtin_types(registry) -> None:
    register_layout_tree(registry)
    register_screenshot(registry)


__all__ = ["register_builtin_types"]
