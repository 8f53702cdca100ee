"""Find the template element under a clicked position."""

from __future__ import annotations

from typing import Any, Optional, Tuple

from .coordinates import offset_to_line_col, to_template_position
from .template_ast import ParsedComponent, children_of, is_element

DEFAULT_MAX_LINES = 30
DEFAULT_MAX_CHARS = 2000


def node_span(parsed: ParsedComponent, node: Any) -> Optional[Tuple[int, int, int, int]]:
    """``(start_line, start_column, end_line, end_column)`` in template coordinates."""
    loc = getattr(node, "loc", None)
    if loc is not None:
        return loc.start_line, loc.start_column, loc.end_line, loc.end_column
    if not hasattr(node, "start"):
        return None
    start_line, start_col = offset_to_line_col(parsed.template_line_starts, node.start)
    end_line, end_col = offset_to_line_col(parsed.template_line_starts, node.end)
    return start_line, start_col, end_line, end_col


def _contains(span: Tuple[int, int, int, int], line: int, column: int) -> bool:
    start_line, start_col, end_line, end_col = span
    if line < start_line or line > end_line:
        return False
    if line == start_line and column < start_col:
        return False
    if line == end_line and column > end_col:
        return False
    return True


def _find(parsed: ParsedComponent, node: Any, line: int, column: int) -> Optional[Any]:
    span = node_span(parsed, node)
    if span is None or not _contains(span, line, column):
        return None
    for child in children_of(node):
        found = _find(parsed, child, line, column)
        if found is not None:
            return found
    return node if is_element(node) else None


def locate(parsed: ParsedComponent, line: int, column: int) -> Optional[Any]:
    """Innermost element containing a template-relative position.

    Children are searched before their parent, in source order, so the
    first and deepest match wins.  Text and interpolation matches resolve
    to their enclosing element.
    """
    return _find(parsed, parsed.root, line, column)


def locate_in_file(parsed: ParsedComponent, file_line: int, file_column: int) -> Optional[Any]:
    line, column = to_template_position(parsed, file_line, file_column)
    return locate(parsed, line, column)


def get_node_source(
    parsed: ParsedComponent,
    node: Any,
    max_lines: int = DEFAULT_MAX_LINES,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """Source text of *node*, reduced to its opening tag when oversized."""
    start, end = parsed.offsets(node)
    source = parsed.template_source[start:end]
    if getattr(node, "self_closing", False) or not is_element(node):
        return source
    lines = source.split("\n")
    if len(lines) <= max_lines and len(source) <= max_chars:
        return source

    opening = parsed.template_source[start:node.open_end]
    omitted = max(len(lines) - opening.count("\n") - 2, 0)
    return f"{opening}\n  <!-- ... {omitted} lines omitted ... -->\n</{node.tag}>"
