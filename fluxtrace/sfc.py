"""Split a single-file component into its top-level blocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

from .coordinates import compute_line_starts

_BLOCK_TAGS = ("template", "script", "style")


@dataclass(frozen=True)
class SFCBlock:
    kind: str
    content: str
    start: int
    end: int
    attrs: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def lang(self) -> Optional[str]:
        return self.attrs.get("lang")


@dataclass(frozen=True)
class SFCDescriptor:
    template: Optional[SFCBlock]
    script: Optional[SFCBlock]
    script_setup: Optional[SFCBlock]
    styles: Tuple[SFCBlock, ...] = ()

    @property
    def active_script(self) -> Optional[SFCBlock]:
        return self.script_setup or self.script


class _BlockScanner(HTMLParser):
    """Records depth-0 blocks; nested ``<template>`` tags are counted."""

    def __init__(self, source: str):
        super().__init__(convert_charrefs=False)
        self._source = source
        self._line_starts = compute_line_starts(source)
        self._open: Optional[Tuple[str, Dict[str, Optional[str]], int]] = None
        self._nesting = 0
        self.blocks: List[SFCBlock] = []

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column

    def handle_starttag(self, tag, attrs):
        if self._open is None:
            if tag in _BLOCK_TAGS:
                start = self._offset() + len(self.get_starttag_text() or "")
                self._open = (tag, dict(attrs), start)
                self._nesting = 0
        elif tag == "template" and self._open[0] == "template":
            self._nesting += 1

    def handle_startendtag(self, tag, attrs):
        # <template /> and <script src="..." /> carry no content
        pass

    def handle_endtag(self, tag):
        if self._open is None or tag != self._open[0]:
            return
        if self._nesting:
            self._nesting -= 1
            return
        kind, attrs, start = self._open
        end = self._offset()
        self.blocks.append(SFCBlock(kind, self._source[start:end], start, end, attrs))
        self._open = None


def split_sfc(source: str) -> SFCDescriptor:
    scanner = _BlockScanner(source)
    scanner.feed(source)
    scanner.close()

    template = script = script_setup = None
    styles: List[SFCBlock] = []
    for block in scanner.blocks:
        if block.kind == "template" and template is None:
            template = block
        elif block.kind == "script":
            if "setup" in block.attrs:
                script_setup = script_setup or block
            else:
                script = script or block
        elif block.kind == "style":
            styles.append(block)
    return SFCDescriptor(template, script, script_setup, tuple(styles))
