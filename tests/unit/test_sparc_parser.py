"""Tests for SPARC markdown plan parsing."""

import pytest

from agent_epics.core.sparc_parser import (
    detect_phase,
    find_matching_title,
    infer_dependencies,
    parse_sparc_markdown,
    parse_task_line,
)
from agent_epics.core.task import SparcPhase, TaskDefinition

PLAN = """# Payments Platform

Build a payments service
for the checkout team.

## Requirements
- [ ] Gather requirements [skills: Research, requirements] -> docs/requirements.md
- [x] Define user stories

## System Architecture
1. Design API contract (depends on: Gather requirements) [skills: api, design]
   Covers REST endpoints and error codes.
2. Design data model (depends on: Design API contract, Gather requirements)

## Implementation
* Build payment API [skills: api, python] -> src/payments/api.py

```python
- this is code, not a task
```

## Notes
- Write runbook
"""


class TestParseSparcMarkdown:

    def test_title_and_description(self):
        definition = parse_sparc_markdown(PLAN)

        assert definition.title == "Payments Platform"
        assert definition.description == "Build a payments service\nfor the checkout team."

    def test_tasks_in_document_order(self):
        definition = parse_sparc_markdown(PLAN)

        assert [t.title for t in definition.tasks] == [
            "Gather requirements",
            "Define user stories",
            "Design API contract",
            "Design data model",
            "Build payment API",
            "Write runbook",
        ]

    def test_phases_from_section_headings(self):
        phases = [t.phase for t in parse_sparc_markdown(PLAN).tasks]

        assert phases == [
            SparcPhase.SPECIFICATION,
            SparcPhase.SPECIFICATION,
            SparcPhase.ARCHITECTURE,
            SparcPhase.ARCHITECTURE,
            SparcPhase.REFINEMENT,
            # "Notes" matches no phase and keeps the previous one
            SparcPhase.REFINEMENT,
        ]

    def test_dependencies_skills_and_paths(self):
        tasks = parse_sparc_markdown(PLAN).tasks

        assert tasks[0].required_skills == ["research", "requirements"]
        assert tasks[0].expected_path == "docs/requirements.md"
        assert tasks[2].dependencies == ["Gather requirements"]
        assert tasks[2].required_skills == ["api", "design"]
        assert tasks[3].dependencies == ["Design API contract", "Gather requirements"]
        assert tasks[4].expected_path == "src/payments/api.py"

    def test_continuation_lines_become_description(self):
        tasks = parse_sparc_markdown(PLAN).tasks

        assert tasks[2].description == "Covers REST endpoints and error codes."
        assert tasks[3].description == ""

    def test_code_blocks_ignored(self):
        titles = [t.title for t in parse_sparc_markdown(PLAN).tasks]

        assert "this is code, not a task" not in titles

    def test_default_title_without_heading(self):
        definition = parse_sparc_markdown("## Pseudocode\n- Sketch algorithm\n", default_title="plan")

        assert definition.title == "plan"
        assert definition.tasks[0].phase == SparcPhase.PSEUDOCODE

    def test_no_sections_means_no_tasks(self):
        definition = parse_sparc_markdown("# Idea\n\n- just a bullet in the intro\n")

        assert definition.tasks == []
        assert "just a bullet" in definition.description


class TestDetectPhase:

    @pytest.mark.parametrize(
        "heading, expected",
        [
            ("Functional Requirements", SparcPhase.SPECIFICATION),
            ("User Stories", SparcPhase.SPECIFICATION),
            ("Process Flow", SparcPhase.PSEUDOCODE),
            ("Algorithm Design", SparcPhase.PSEUDOCODE),
            ("Components", SparcPhase.ARCHITECTURE),
            ("Development Plan", SparcPhase.REFINEMENT),
            ("Deployment", SparcPhase.COMPLETION),
            ("Open Questions", None),
        ],
    )
    def test_keyword_mapping(self, heading, expected):
        assert detect_phase(heading) == expected


def test_parse_task_line_plain():
    task = parse_task_line("Write   integration tests", SparcPhase.COMPLETION)

    assert task.title == "Write integration tests"
    assert task.dependencies == []
    assert task.expected_path is None


@pytest.mark.parametrize(
    "text, title, path",
    [
        ("Map request -> response", "Map request -> response", None),
        ("Emit report -> out/report.md", "Emit report", "out/report.md"),
        ("Write config -> settings.yaml", "Write config", "settings.yaml"),
    ],
)
def test_arrow_only_marks_path_like_targets(text, title, path):
    task = parse_task_line(text, SparcPhase.REFINEMENT)

    assert task.title == title
    assert task.expected_path == path


def test_indented_checklist_becomes_acceptance_criteria():
    plan = (
        "## Implementation\n"
        "- Build checkout endpoint\n"
        "  Accepts a cart id.\n"
        "  - [ ] Returns 201 with an order id\n"
        "  - [x] Rejects empty carts\n"
        "- Write runbook\n"
    )

    tasks = parse_sparc_markdown(plan).tasks

    assert tasks[0].description == "Accepts a cart id."
    assert tasks[0].acceptance_criteria == ["Returns 201 with an order id", "Rejects empty carts"]
    assert tasks[1].acceptance_criteria == []


def _defs(*specs):
    return [
        TaskDefinition(title=title, description=description, phase=phase)
        for title, description, phase in specs
    ]


class TestInferDependencies:

    def test_keyword_mentions_resolve_to_titles(self):
        tasks = _defs(
            ("Define schema", "", SparcPhase.ARCHITECTURE),
            ("Document rollout", "Requires Define schema to be merged.", SparcPhase.COMPLETION),
            ("Announce launch", "Start once document rollout is complete.", SparcPhase.COMPLETION),
        )

        infer_dependencies(tasks)

        assert tasks[1].dependencies == ["Define schema"]
        assert tasks[2].dependencies == ["Document rollout"]

    def test_acceptance_criteria_are_searched(self):
        tasks = _defs(
            ("Collect metrics", "", SparcPhase.REFINEMENT),
            ("Publish report", "", SparcPhase.COMPLETION),
        )
        tasks[1].acceptance_criteria = ["Only after collect metrics has run"]

        infer_dependencies(tasks)

        assert tasks[1].dependencies == ["Collect metrics"]

    def test_explicit_dependencies_are_kept(self):
        tasks = _defs(
            ("Collect metrics", "", SparcPhase.REFINEMENT),
            ("Tune alerts", "", SparcPhase.REFINEMENT),
            ("Publish report", "Needs tune alerts.", SparcPhase.REFINEMENT),
        )
        tasks[2].dependencies = ["Collect metrics"]

        assert infer_dependencies(tasks) == 0
        assert tasks[2].dependencies == ["Collect metrics"]

    def test_follow_up_in_same_phase_depends_on_previous(self):
        tasks = _defs(
            ("Collect metrics", "", SparcPhase.REFINEMENT),
            ("Publish report", "Then share it with the team.", SparcPhase.REFINEMENT),
        )

        infer_dependencies(tasks)

        assert tasks[1].dependencies == ["Collect metrics"]

    def test_follow_up_across_phases_is_independent(self):
        tasks = _defs(
            ("Collect metrics", "", SparcPhase.REFINEMENT),
            ("Publish report", "Then share it with the team.", SparcPhase.COMPLETION),
        )

        infer_dependencies(tasks)

        assert tasks[1].dependencies == []

    def test_component_layering(self):
        tasks = _defs(
            ("Create database schema", "", SparcPhase.ARCHITECTURE),
            ("Build REST endpoints", "", SparcPhase.REFINEMENT),
            ("Render checkout page", "", SparcPhase.REFINEMENT),
        )

        infer_dependencies(tasks)

        assert tasks[0].dependencies == []
        assert tasks[1].dependencies == ["Create database schema"]
        assert tasks[2].dependencies == ["Build REST endpoints"]

    def test_secured_work_waits_on_auth(self):
        tasks = _defs(
            ("Add login flow", "", SparcPhase.REFINEMENT),
            ("Show protected reports", "", SparcPhase.REFINEMENT),
        )

        infer_dependencies(tasks)

        assert tasks[1].dependencies == ["Add login flow"]

    def test_no_self_or_mutual_dependencies(self):
        tasks = _defs(
            ("Write guide", "Needs write guide review.", SparcPhase.COMPLETION),
            ("Record demo", "After write guide.", SparcPhase.PSEUDOCODE),
            ("Edit video", "After record demo.", SparcPhase.ARCHITECTURE),
        )
        tasks[0].description = "Needs write guide review. After edit video."

        infer_dependencies(tasks)

        assert tasks[0].dependencies == ["Edit video"]
        assert tasks[1].dependencies == ["Write guide"]
        # "Record demo" is reachable but not a direct back edge, so it is kept
        assert tasks[2].dependencies == ["Record demo"]

    def test_parse_infers_by_default(self):
        tasks = parse_sparc_markdown(PLAN).tasks

        assert tasks[4].dependencies == ["Design data model"]
        assert tasks[5].dependencies == []

    def test_parse_without_inference(self):
        tasks = parse_sparc_markdown(PLAN, infer=False).tasks

        assert tasks[4].dependencies == []


class TestFindMatchingTitle:

    TITLES = ["Define schema", "Build API (v2)", "Deploy"]

    def test_exact_and_punctuation_insensitive(self):
        assert find_matching_title("define schema", self.TITLES) == 0
        assert find_matching_title("build api v2", self.TITLES) == 1

    def test_containment(self):
        assert find_matching_title("the deploy step", self.TITLES) == 2
        assert find_matching_title("schema", self.TITLES) == 0

    def test_no_match(self):
        assert find_matching_title("coffee", self.TITLES) is None
        assert find_matching_title("!!", self.TITLES) is None
