"""Unit tests for hierarchical task extraction."""

from unittest.mock import patch

from spec_archival.errors import ErrorType
from spec_archival.task_parser import (
    MarkdownTaskParser,
    build_task,
    categorize_task,
    estimate_effort,
    normalize_priority,
)

NESTED_TASKS = """# Implementation Plan

- [ ] 1. Set up the project
  - [x] 1.1. Create the repository
  - [ ] 1.2. Configure CI
    - [ ] 1.2.1. Add the lint job
- [x] 2. Write the importer
"""


class TestTaskRecognition:
    """Test cases for which list items become tasks."""

    def setup_method(self):
        self.parser = MarkdownTaskParser()

    def test_numbered_checkbox_items(self):
        """Test that numbered checkbox items become tasks."""
        result = self.parser.parse("- [x] 1. Setup\n- [ ] 2. Build\n")

        assert [task.number for task in result.tasks] == ["1", "2"]
        assert [task.completed for task in result.tasks] == [True, False]
        assert result.tasks[0].title == "Setup"
        assert result.errors == []

    def test_unnumbered_checkbox_is_not_a_task(self):
        """Test that unnumbered checkboxes are ignored."""
        result = self.parser.parse("- [ ] Write docs\n")

        assert result.tasks == []
        assert result.errors == []

    def test_numbered_line_without_checkbox_is_not_a_task(self):
        """Test that numbered lines without checkboxes are ignored."""
        result = self.parser.parse("1. Missing checkbox\n")

        assert result.tasks == []

    def test_uppercase_and_check_mark_count_as_completed(self):
        """Test the alternative completion markers."""
        result = self.parser.parse("- [X] 1. Upper\n- [✓] 2. Tick\n")

        assert all(task.completed for task in result.tasks)
        assert [task.checkbox for task in result.tasks] == ["X", "✓"]

    def test_line_numbers_are_one_based(self):
        """Test task line numbers."""
        result = self.parser.parse("# Plan\n\n- [ ] 1. First\n")

        assert result.tasks[0].line_number == 3

    def test_ordered_list_style_is_recorded(self):
        """Test recording the list style."""
        result = self.parser.parse("5. [ ] 1. Numbered list task\n")

        task = result.tasks[0]
        assert task.list_type == "ordered"
        assert task.list_start == 5

    def test_failure_in_one_item_is_recorded_and_parsing_continues(self):
        """Test that an error while reading one item becomes a parse_error issue."""
        analyze = MarkdownTaskParser._analyze_item

        def fail_on_second_line(parser, item, list_node, ancestors, depth):
            if item.line == 2:
                raise ValueError("unreadable item")
            return analyze(parser, item, list_node, ancestors, depth)

        with patch.object(MarkdownTaskParser, "_analyze_item", fail_on_second_line):
            result = self.parser.parse("- [x] 1. First\n- [ ] 2. Second\n- [ ] 3. Third\n")

        assert [task.number for task in result.tasks] == ["1", "3"]
        assert len(result.errors) == 1
        issue = result.errors[0]
        assert issue.type == "parse_error"
        assert issue.line == 2
        assert issue.message == "unreadable item"
        assert issue.task_text == "Failed to extract text"


class TestHierarchy:
    """Test cases for depth, parent and children."""

    def setup_method(self):
        self.parser = MarkdownTaskParser()
        self.tasks = {task.number: task for task in self.parser.parse(NESTED_TASKS).tasks}

    def test_depth_counts_enclosing_lists(self):
        """Test task depth."""
        assert self.tasks["1"].depth == 1
        assert self.tasks["1.2"].depth == 2
        assert self.tasks["1.2.1"].depth == 3

    def test_parent_is_immediate_ancestor(self):
        """Test the parent reference."""
        assert self.tasks["1"].parent is None
        assert self.tasks["1.1"].parent.number == "1"
        assert self.tasks["1.2.1"].parent.number == "1.2"

    def test_hierarchy_lists_all_ancestors(self):
        """Test the ancestor list."""
        hierarchy = [ref.number for ref in self.tasks["1.2.1"].hierarchy]

        assert hierarchy == ["1", "1.2"]

    def test_children_summaries(self):
        """Test the child summaries."""
        children = self.tasks["1"].children

        assert [child.number for child in children] == ["1.1", "1.2"]
        assert children[0].completed is True
        assert self.tasks["2"].children == []

    def test_siblings_do_not_share_ancestors(self):
        """Test that siblings do not inherit each other."""
        assert self.tasks["2"].hierarchy == []
        assert self.tasks["1.1"].hierarchy == self.tasks["1.2"].hierarchy

    def test_depth_over_maximum_is_rejected(self):
        """Test rejecting tasks nested too deeply."""
        content = (
            "- [ ] 1. A\n"
            "  - [ ] 1.1. B\n"
            "    - [ ] 1.1.1. C\n"
            "      - [ ] 1.1.1.1. Too deep\n"
        )

        result = MarkdownTaskParser(max_depth=3).parse(content)

        assert "1.1.1.1" not in [task.number for task in result.tasks]
        assert result.errors[0].type == ErrorType.VALIDATION_ERROR
        assert result.errors[0].line == 4
        assert result.errors[0].message == "Task depth (4) exceeds maximum allowed depth (3)"

    def test_rejected_task_is_not_counted_as_child(self):
        """Test that rejected tasks are not children."""
        content = "- [ ] 1. Top\n  - [ ] 1.1. Mid\n    - [ ] 1.1.1. Low\n"
        parser = MarkdownTaskParser(max_depth=2)

        result = parser.parse(content)

        tasks = {task.number: task for task in result.tasks}
        assert list(tasks) == ["1", "1.1"]
        assert tasks["1.1"].children == []
        assert len(result.errors) == 1


class TestMetadata:
    """Test cases for annotation extraction."""

    def setup_method(self):
        self.parser = MarkdownTaskParser()

    def test_requirements_on_following_line(self):
        """Test a requirements annotation on the next line."""
        result = self.parser.parse("- [ ] 1. Build\n  _Requirements: FR1, FR2_\n")

        assert result.tasks[0].metadata.requirements == ["FR1", "FR2"]

    def test_all_annotation_keys(self):
        """Test every annotation key."""
        content = (
            "- [ ] 1. Build the importer\n"
            "  Reads CSV exports.\n"
            "  _Requirements: 1.1, 1.2_\n"
            "  _Dependencies: 0.1, auth-spec_\n"
            "  _Priority: high_\n"
            "  _Effort: 2 days_\n"
            "  _Assignee: sam_\n"
            "  _Tags: backend, io_\n"
        )

        task = self.parser.parse(content).tasks[0]

        assert task.metadata.requirements == ["1.1", "1.2"]
        assert task.metadata.dependencies == ["0.1", "auth-spec"]
        assert task.metadata.priority == "high"
        assert task.metadata.effort == "2 days"
        assert task.metadata.assignee == "sam"
        assert task.metadata.tags == ["backend", "io"]
        assert task.description == ["Reads CSV exports."]

    def test_annotation_in_bullet_child(self):
        """Test an annotation inside a child bullet."""
        content = "- [ ] 1. Build\n  - _Priority: low_\n"

        task = self.parser.parse(content).tasks[0]

        assert task.metadata.priority == "low"

    def test_nested_task_annotations_stay_with_child(self):
        """Test that nested annotations belong to the child."""
        content = "- [ ] 1. Parent\n  - [ ] 1.1. Child\n    _Priority: critical_\n"

        tasks = {task.number: task for task in self.parser.parse(content).tasks}

        assert tasks["1"].metadata.priority is None
        assert tasks["1.1"].metadata.priority == "critical"

    def test_metadata_extraction_can_be_disabled(self):
        """Test disabling metadata extraction."""
        parser = MarkdownTaskParser(extract_metadata=False)

        task = parser.parse("- [ ] 1. Build\n  _Priority: high_\n").tasks[0]

        assert task.metadata.priority is None


class TestParseFile:
    def test_missing_file(self, tmp_path):
        """Test parsing a missing file."""
        result = MarkdownTaskParser().parse_file(tmp_path / "tasks.md")

        assert result.tasks == []
        assert result.errors[0].type == ErrorType.FILE_NOT_FOUND

    def test_reads_file(self, tmp_path):
        """Test parsing a file."""
        path = tmp_path / "tasks.md"
        path.write_text("- [x] 1. Done\n", encoding="utf-8")

        result = MarkdownTaskParser().parse_file(path)

        assert result.tasks[0].completed


class TestTaskConstruction:
    """Test cases for turning parsed tasks into Task records."""

    def test_build_task(self):
        """Test building a Task from a parsed task."""
        content = "- [x] 3. Write tests for login\n  _Requirements: 2.1_\n  _Dependencies: 1, billing-spec_\n  _Priority: urgent_\n"
        parsed = MarkdownTaskParser().parse(content).tasks[0]

        task = build_task(parsed, "auth")

        assert task.id == "auth-3"
        assert task.status == "completed"
        assert task.completed_at is not None
        assert task.priority == "critical"
        assert task.category == "testing"
        assert task.requirements == ["2.1"]
        assert task.metadata.cross_spec_deps == ["billing-spec"]
        assert task.metadata.original_task_number == "3"
        assert task.validate() == []

    def test_pending_task_has_no_completion_time(self):
        """Test that pending tasks have no completion time."""
        parsed = MarkdownTaskParser().parse("- [ ] 1. Build\n").tasks[0]

        task = build_task(parsed, "auth")

        assert task.status == "pending"
        assert task.completed_at is None

    def test_normalize_priority(self):
        """Test priority normalization."""
        assert normalize_priority(None) == "medium"
        assert normalize_priority("High") == "high"
        assert normalize_priority("important") == "high"
        assert normalize_priority("whenever") == "medium"

    def test_categorize_task(self):
        """Test task categorization."""
        assert categorize_task("Update README", []) == "documentation"
        assert categorize_task("Research caching", []) == "analysis"
        assert categorize_task("Add endpoint", []) == "implementation"

    def test_estimate_effort(self):
        """Test effort estimation."""
        assert estimate_effort([]) == "xs"
        assert estimate_effort(["a" * 60]) == "s"
        assert estimate_effort(["line"] * 3) == "m"
        assert estimate_effort(["line"] * 10) == "xl"
