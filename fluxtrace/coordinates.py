"""Line/column <-> offset conversions between file and template coordinates.

Lines are 1-based and columns 0-based everywhere.  A file position is
mapped into the coordinate system of the template tree it will be looked
up in: the modern dialect keeps the raw template content, the legacy one
works on the de-indented content and therefore also shifts columns.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from typing import TYPE_CHECKING, List, Sequence, Tuple

from .template_ast import Dialect

if TYPE_CHECKING:
    from .template_ast import ParsedComponent

_NEWLINE = re.compile(r"\n")
_TRAILING_WS = " \t\r"


def compute_line_starts(source: str) -> List[int]:
    return [0] + [m.end() for m in _NEWLINE.finditer(source)]


def line_col_to_offset(line_starts: Sequence[int], line: int, column: int, length: int | None = None) -> int:
    line = min(max(line, 1), len(line_starts))
    offset = line_starts[line - 1] + max(column, 0)
    if line < len(line_starts):
        offset = min(offset, line_starts[line] - 1)
    if length is not None:
        offset = min(offset, length)
    return offset


def offset_to_line_col(line_starts: Sequence[int], offset: int) -> Tuple[int, int]:
    offset = max(offset, 0)
    index = bisect_right(line_starts, offset) - 1
    return index + 1, offset - line_starts[index]


def normalize_line_column(source: str, line: int, column: int) -> Tuple[int, int]:
    """Clamp a position onto the text actually present on its line.

    The line is clamped to the file; the column to the last
    non-whitespace character of that line, or 0 for a blank line.
    """
    lines = source.split("\n")
    line = min(max(line, 1), len(lines))
    text = lines[line - 1].rstrip(_TRAILING_WS)
    if not text:
        return line, 0
    return line, min(max(column, 0), len(text) - 1)


def base_indent(text: str) -> int:
    """Smallest indentation over the non-blank lines of *text*."""
    widths = [len(line) - len(line.lstrip()) for line in text.split("\n") if line.strip()]
    return min(widths) if widths else 0


def deindent(text: str) -> str:
    indent = base_indent(text)
    if not indent:
        return text
    return "\n".join(line[indent:] for line in text.split("\n"))


def to_template_position(parsed: "ParsedComponent", file_line: int, file_column: int) -> Tuple[int, int]:
    """Map a clicked file position into the component's template tree."""
    line, column = normalize_line_column(parsed.file_text, file_line, file_column)
    template_line = line - parsed.template_start_line + 1
    if parsed.dialect is Dialect.VUE2:
        column = max(0, column - parsed.base_indent)
        if 1 <= template_line <= len(parsed.template_line_starts):
            template_line, column = normalize_line_column(parsed.template_source, template_line, column)
    return template_line, column


def to_file_position(parsed: "ParsedComponent", template_line: int, template_column: int) -> Tuple[int, int]:
    """Inverse of :func:`to_template_position`."""
    file_line = template_line + parsed.template_start_line - 1
    if template_line == 1:
        return file_line, template_column + parsed.template_start_column
    if parsed.dialect is Dialect.VUE2:
        return file_line, template_column + parsed.base_indent
    return file_line, template_column
