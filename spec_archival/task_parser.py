"""Hierarchical task extraction from a tasks document.

The parser walks the markdown tree produced by ``markdown_ast`` and turns
every numbered checkbox item into a ``ParsedTask``. Depth is the number of
enclosing lists, so a top-level task has depth 1. Ancestors are passed down
the recursion as an immutable tuple, so sibling subtrees never share state.

Annotations written as emphasis inside a task item are read into the task's
metadata::

    - [ ] 2. Build the importer
      _Requirements: 1.1, 1.2_
      _Priority: high_
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .archival_logging import get_logger
from .errors import ErrorType
from .markdown_ast import Document, ListItem, ListNode, Paragraph, parse_markdown, to_text
from .models import (
    ChildSummary,
    ParsedTask,
    ParsedTaskMetadata,
    ParseIssue,
    ParseResult,
    Task,
    TaskMetadata,
    utc_now,
)

logger = get_logger("task_parser")

DEFAULT_MAX_DEPTH = 3

_TASK_NUMBER_PATTERN = re.compile(r"^(\d+(?:\.\d+)*)\.\s+(.+)$")
_NUMBER_GRAMMAR = re.compile(r"^\d+(\.\d+)*$")
_ANNOTATION_PATTERNS: Dict[str, re.Pattern[str]] = {
    key: re.compile(rf"_{key.capitalize()}:\s*([^_]+)_")
    for key in ("requirements", "dependencies", "priority", "effort", "assignee", "tags")
}
_LIST_KEYS = {"requirements", "dependencies", "tags"}
_ANNOTATION_ONLY = re.compile(r"^_[A-Z][A-Za-z]*:[^_]*_$")

_CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("testing", ("test", "spec", "coverage")),
    ("documentation", ("doc", "readme", "guide")),
    ("design", ("design", "architecture", "plan")),
    ("analysis", ("analyze", "research", "investigate")),
)
_PRIORITY_ALIASES = {
    "critical": "critical",
    "urgent": "critical",
    "high": "high",
    "important": "high",
    "low": "low",
}


class MarkdownTaskParser:
    """Extract hierarchical tasks from tasks documents."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, extract_metadata: bool = True):
        self.max_depth = max_depth
        self.extract_metadata = extract_metadata

    def parse(self, content: str) -> ParseResult:
        """Parse markdown text into tasks and collected issues."""
        return self.parse_tree(parse_markdown(content))

    def parse_file(self, path: Path | str) -> ParseResult:
        path = Path(path)
        if not path.is_file():
            return ParseResult(errors=[ParseIssue(
                type=ErrorType.FILE_NOT_FOUND,
                line=0,
                message=f"Tasks file not found: {path}",
            )])
        return self.parse(path.read_text(encoding="utf-8"))

    def parse_tree(self, document: Document) -> ParseResult:
        result = ParseResult()
        self._visit_blocks(document.children, (), 0, result)
        if result.errors:
            logger.debug(f"Task parse finished with {len(result.errors)} issue(s)")
        return result

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _visit_blocks(
        self,
        blocks: List,
        ancestors: Tuple[ParsedTask, ...],
        depth: int,
        result: ParseResult,
    ) -> List[ParsedTask]:
        """Visit blocks and return the accepted tasks nearest to this level."""
        found: List[ParsedTask] = []
        for block in blocks:
            if isinstance(block, ListNode):
                for item in block.children:
                    found.extend(self._visit_item(item, block, ancestors, depth + 1, result))
        return found

    def _visit_item(
        self,
        item: ListItem,
        list_node: ListNode,
        ancestors: Tuple[ParsedTask, ...],
        depth: int,
        result: ParseResult,
    ) -> List[ParsedTask]:
        task: Optional[ParsedTask] = None
        if item.checked is not None:
            try:
                task = self._analyze_item(item, list_node, ancestors, depth)
            except Exception as e:
                logger.warning(f"Failed to parse task at line {item.line}: {e}")
                result.errors.append(ParseIssue(
                    type=ErrorType.PARSE_ERROR,
                    line=item.line,
                    message=str(e),
                    task_text="Failed to extract text",
                ))

            if task is not None:
                problem = self._validate(task)
                if problem:
                    result.errors.append(ParseIssue(
                        type=ErrorType.VALIDATION_ERROR,
                        line=task.line_number,
                        message=problem,
                        task_text=task.raw,
                    ))
                    task = None

        if task is None:
            return self._visit_blocks(item.children, ancestors, depth, result)

        result.tasks.append(task)
        nested = self._visit_blocks(item.children, ancestors + (task,), depth, result)
        task.children = [
            ChildSummary(number=child.number, title=child.title, completed=child.completed)
            for child in nested
            if child.depth == task.depth + 1
        ]
        return [task]

    # ------------------------------------------------------------------
    # Item analysis
    # ------------------------------------------------------------------

    def _analyze_item(
        self,
        item: ListItem,
        list_node: ListNode,
        ancestors: Tuple[ParsedTask, ...],
        depth: int,
    ) -> Optional[ParsedTask]:
        if not item.children or not isinstance(item.children[0], Paragraph):
            return None

        text = to_text(item.children[0])
        if not text:
            return None
        title_line, *rest_lines = text.split("\n")
        match = _TASK_NUMBER_PATTERN.match(title_line.strip())
        if not match:
            return None

        extra_lines = [line.strip() for line in rest_lines if line.strip()]
        extra_lines.extend(self._annotation_lines(item.children[1:]))

        metadata = (
            self._extract_metadata([title_line, *extra_lines]) if self.extract_metadata else ParsedTaskMetadata()
        )

        hierarchy = [ancestor.reference() for ancestor in ancestors]
        parent = next(
            (ancestor.reference() for ancestor in reversed(ancestors) if ancestor.depth == depth - 1),
            None,
        )

        return ParsedTask(
            number=match.group(1),
            title=match.group(2).strip(),
            raw=text,
            completed=bool(item.checked),
            checkbox=item.checkbox or " ",
            line_number=item.line,
            description=[line for line in extra_lines if not _ANNOTATION_ONLY.match(line)],
            metadata=metadata,
            depth=depth,
            hierarchy=hierarchy,
            parent=parent,
            list_type="ordered" if list_node.ordered else "unordered",
            list_start=list_node.start,
        )

    def _annotation_lines(self, blocks: List) -> List[str]:
        """Text lines of later paragraphs and non-task bullets, skipping nested tasks."""
        lines: List[str] = []
        for block in blocks:
            if isinstance(block, Paragraph):
                lines.extend(line.strip() for line in to_text(block).split("\n") if line.strip())
            elif isinstance(block, ListNode):
                for item in block.children:
                    if self._is_task_item(item):
                        continue
                    lines.extend(self._annotation_lines(item.children))
        return lines

    @staticmethod
    def _is_task_item(item: ListItem) -> bool:
        if item.checked is None or not item.children or not isinstance(item.children[0], Paragraph):
            return False
        first_line = to_text(item.children[0]).split("\n", 1)[0].strip()
        return bool(_TASK_NUMBER_PATTERN.match(first_line))

    def _extract_metadata(self, lines: List[str]) -> ParsedTaskMetadata:
        metadata = ParsedTaskMetadata()
        for line in lines:
            for key, pattern in _ANNOTATION_PATTERNS.items():
                match = pattern.search(line)
                if not match:
                    continue
                value = match.group(1).strip()
                if key in _LIST_KEYS:
                    setattr(metadata, key, [part.strip() for part in value.split(",") if part.strip()])
                elif value:
                    setattr(metadata, key, value)
        return metadata

    def _validate(self, task: ParsedTask) -> Optional[str]:
        if not task.number or not task.number.strip():
            return "Task number is missing or empty"
        if not task.title or not task.title.strip():
            return "Task title is missing or empty"
        if self.max_depth and task.depth > self.max_depth:
            return f"Task depth ({task.depth}) exceeds maximum allowed depth ({self.max_depth})"
        if not _NUMBER_GRAMMAR.match(task.number):
            return f'Invalid task number format: "{task.number}"'
        return None


# ---------------------------------------------------------------------------
# Task construction
# ---------------------------------------------------------------------------


def normalize_priority(priority: Optional[str]) -> str:
    if not priority:
        return "medium"
    return _PRIORITY_ALIASES.get(priority.strip().lower(), "medium")


def categorize_task(title: str, description: List[str]) -> str:
    """Infer a task category from keywords in its title and description."""
    content = (title + " " + " ".join(description)).lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return category
    return "implementation"


def estimate_effort(description: List[str]) -> str:
    """Estimate effort from the number and length of description lines."""
    total_lines = len(description)
    total_chars = len("".join(description))
    if total_lines <= 1 and total_chars < 50:
        return "xs"
    if total_lines <= 2 and total_chars < 150:
        return "s"
    if total_lines <= 4 and total_chars < 300:
        return "m"
    if total_lines <= 6 and total_chars < 500:
        return "l"
    return "xl"


def build_task(parsed: ParsedTask, spec_name: str) -> Task:
    """Build a ``Task`` for ``spec_name`` from a parser record."""
    now = utc_now()
    annotations = parsed.metadata
    return Task(
        id=f"{spec_name}-{parsed.number}",
        title=parsed.title,
        description="\n".join(parsed.description),
        spec_name=spec_name,
        line_number=parsed.line_number,
        status="completed" if parsed.completed else "pending",
        priority=normalize_priority(annotations.priority),
        category=categorize_task(parsed.title, parsed.description),
        requirements=list(annotations.requirements),
        dependencies=list(annotations.dependencies),
        estimated_effort=estimate_effort(parsed.description),
        assignee=annotations.assignee,
        created_at=now,
        updated_at=now,
        completed_at=now if parsed.completed else None,
        metadata=TaskMetadata(
            depth=parsed.depth,
            parent=parsed.parent,
            hierarchy=list(parsed.hierarchy),
            children=list(parsed.children),
            tags=list(annotations.tags),
            list_type=parsed.list_type,
            list_start=parsed.list_start,
            requirement_refs=list(annotations.requirements),
            cross_spec_deps=[dep for dep in annotations.dependencies if "-" in dep],
            original_task_number=parsed.number,
            effort_text=annotations.effort,
        ),
    )
