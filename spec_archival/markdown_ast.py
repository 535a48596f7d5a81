"""A small markdown tree for task documents.

Only the constructs needed to find checklist tasks are modelled: nested
lists with GFM task checkboxes, paragraphs and inline emphasis. Headings
close every open list and fenced code blocks are skipped entirely.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import ClassVar, Iterator, List, Optional, Union


@dataclass(slots=True)
class Text:
    value: str
    line: int
    kind: ClassVar[str] = "text"


@dataclass(slots=True)
class Emphasis:
    children: List["Inline"]
    line: int
    marker: str = "_"
    kind: ClassVar[str] = "emphasis"


Inline = Union[Text, Emphasis]


@dataclass(slots=True)
class Paragraph:
    children: List[Inline]
    line: int
    kind: ClassVar[str] = "paragraph"


@dataclass(slots=True)
class ListItem:
    children: List["Block"]
    line: int
    checked: Optional[bool] = None
    checkbox: Optional[str] = None
    kind: ClassVar[str] = "list_item"


@dataclass(slots=True)
class ListNode:
    children: List[ListItem]
    line: int
    ordered: bool = False
    start: int = 1
    kind: ClassVar[str] = "list"


Block = Union[Paragraph, ListNode]


@dataclass(slots=True)
class Document:
    children: List[Block] = field(default_factory=list)
    line: int = 1
    kind: ClassVar[str] = "document"


Node = Union[Document, ListNode, ListItem, Paragraph, Text, Emphasis]

_FENCE = re.compile(r"^\s*(```|~~~)")
_HEADING = re.compile(r"^\s{0,3}#{1,6}(?:\s|$)")
_LIST_ITEM = re.compile(
    r"^(?P<indent>[ ]*)(?:(?P<bullet>[-*+])|(?P<number>\d{1,9})[.)])(?:[ ]+(?P<rest>.*))?$"
)
_BARE_CHECKBOX = re.compile(r"^(?P<indent>[ ]*)(?P<rest>\[[ xX✓]\](?:[ ]+.*)?)$")
_CHECKBOX = re.compile(r"^\[(?P<mark>[ xX✓])\](?:[ ]+(?P<text>.*))?$")
_EMPHASIS = re.compile(r"(?<![\w*_])(\*\*|__|\*|_)(?![\s*_])(.+?)(?<!\s)\1(?![\w*_])")


def parse_inline(text: str, line: int) -> List[Inline]:
    """Split ``text`` into Text and Emphasis nodes."""
    nodes: List[Inline] = []
    position = 0
    for match in _EMPHASIS.finditer(text):
        if match.start() > position:
            nodes.append(Text(text[position:match.start()], line + text.count("\n", 0, position)))
        inner_line = line + text.count("\n", 0, match.start())
        nodes.append(Emphasis(parse_inline(match.group(2), inner_line), inner_line, match.group(1)))
        position = match.end()
    if position < len(text):
        nodes.append(Text(text[position:], line + text.count("\n", 0, position)))
    return nodes


def to_text(node: Node) -> str:
    """Render a node's text. Single-marker emphasis is written as ``_text_``."""
    if isinstance(node, Text):
        return node.value
    if isinstance(node, Emphasis):
        marker = "_" if len(node.marker) == 1 else node.marker
        return marker + "".join(to_text(child) for child in node.children) + marker
    if isinstance(node, Paragraph):
        return "".join(to_text(child) for child in node.children)
    return "\n".join(to_text(child) for child in node.children)


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants depth-first."""
    yield node
    for child in getattr(node, "children", ()):
        yield from walk(child)


@dataclass(slots=True)
class _OpenList:
    node: ListNode
    marker_indent: int
    item: ListItem


class _TreeBuilder:
    def __init__(self) -> None:
        self.document = Document()
        self.stack: List[_OpenList] = []
        self.paragraph: Optional[Paragraph] = None
        self.paragraph_lines: List[str] = []

    def close_paragraph(self) -> None:
        self.paragraph = None
        self.paragraph_lines = []

    def open_paragraph(self, container: Union[Document, ListItem], text: str, line: int) -> None:
        self.paragraph = Paragraph([], line)
        self.paragraph_lines = []
        container.children.append(self.paragraph)
        self.extend_paragraph(text)

    def extend_paragraph(self, text: str) -> None:
        assert self.paragraph is not None
        self.paragraph_lines.append(text)
        self.paragraph.children = parse_inline("\n".join(self.paragraph_lines), self.paragraph.line)

    def add_item(self, indent: int, ordered: bool, start: int, rest: str, line: int) -> None:
        self.close_paragraph()
        while self.stack and indent < self.stack[-1].marker_indent:
            self.stack.pop()

        item = ListItem([], line)
        checkbox = _CHECKBOX.match(rest)
        if checkbox:
            item.checkbox = checkbox.group("mark")
            item.checked = item.checkbox != " "
            rest = checkbox.group("text") or ""

        top = self.stack[-1] if self.stack else None
        if top and indent > top.marker_indent:
            container: Union[Document, ListItem] = top.item
            self._start_list(container, indent, ordered, start, item, line)
        elif top and indent == top.marker_indent and top.node.ordered == ordered:
            top.node.children.append(item)
            top.item = item
        else:
            if top:
                self.stack.pop()
            container = self.stack[-1].item if self.stack else self.document
            self._start_list(container, indent, ordered, start, item, line)

        if rest.strip():
            self.open_paragraph(item, rest.strip(), line)

    def _start_list(
        self,
        container: Union[Document, ListItem],
        indent: int,
        ordered: bool,
        start: int,
        item: ListItem,
        line: int,
    ) -> None:
        node = ListNode([item], line, ordered=ordered, start=start)
        container.children.append(node)
        self.stack.append(_OpenList(node, indent, item))

    def add_text(self, indent: int, text: str, line: int, after_blank: bool) -> None:
        if self.paragraph is not None and not after_blank:
            self.extend_paragraph(text)
            return
        while self.stack and indent <= self.stack[-1].marker_indent:
            self.stack.pop()
        container = self.stack[-1].item if self.stack else self.document
        self.open_paragraph(container, text, line)


def parse_markdown(content: str) -> Document:
    """Parse markdown ``content`` into a Document tree."""
    builder = _TreeBuilder()
    in_fence: Optional[str] = None
    after_blank = False

    for index, raw_line in enumerate(content.splitlines()):
        line_number = index + 1
        line = raw_line.expandtabs(4).rstrip()

        fence = _FENCE.match(line)
        if in_fence:
            if fence and fence.group(1) == in_fence:
                in_fence = None
            continue
        if fence:
            in_fence = fence.group(1)
            builder.close_paragraph()
            continue

        if not line.strip():
            builder.close_paragraph()
            after_blank = True
            continue

        if _HEADING.match(line):
            builder.close_paragraph()
            builder.stack.clear()
            after_blank = False
            continue

        item = _LIST_ITEM.match(line)
        if item:
            number = item.group("number")
            builder.add_item(
                len(item.group("indent")),
                ordered=number is not None,
                start=int(number) if number is not None else 1,
                rest=item.group("rest") or "",
                line=line_number,
            )
        else:
            bare = _BARE_CHECKBOX.match(line)
            if bare:
                builder.add_item(len(bare.group("indent")), False, 1, bare.group("rest"), line_number)
            else:
                builder.add_text(len(line) - len(line.lstrip()), line.strip(), line_number, after_blank)
        after_blank = False

    return builder.document
