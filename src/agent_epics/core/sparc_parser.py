"""Parse SPARC planning output (markdown) into an epic definition.

Layout understood::

    # Epic title
    Free text description.

    ## Requirements                      <- section mapped to a SPARC phase
    - [ ] Define API contract [skills: api, design] -> docs/api.md
    - Write schema (depends on: Define API contract)
      Continuation lines become the task description.
      - [ ] Indented checklist lines become acceptance criteria

Sections are mapped to phases by keyword; a section matching no keyword keeps
the previous section's phase. Bullets, checklists and numbered items become
tasks. Fenced code blocks are ignored. Tasks with no explicit dependencies
get inferred ones (see ``infer_dependencies``).
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from .task import EpicDefinition, SparcPhase, TaskDefinition

logger = logging.getLogger(__name__)

# Checked in order; the first match wins
PHASE_PATTERNS: List[Tuple[SparcPhase, re.Pattern]] = [
    (SparcPhase.SPECIFICATION, re.compile(r"requirements|specifications?|user stories", re.IGNORECASE)),
    (SparcPhase.PSEUDOCODE, re.compile(r"pseudocode|algorithm|process flow", re.IGNORECASE)),
    (SparcPhase.ARCHITECTURE, re.compile(r"architecture|design|modules?|components?", re.IGNORECASE)),
    (SparcPhase.REFINEMENT, re.compile(r"refinement|implementation|development", re.IGNORECASE)),
    (SparcPhase.COMPLETION, re.compile(r"completion|integration|deployment", re.IGNORECASE)),
]

TITLE_PATTERN = re.compile(r"^#\s+(.+?)\s*$")
SECTION_PATTERN = re.compile(r"^##\s+(.+?)\s*$")
LIST_ITEM_PATTERN = re.compile(r"^(?:[-*+]|\d+[.)])\s+(?:\[[ xX]\]\s+)?(.+?)\s*$")
DEPENDS_PATTERN = re.compile(r"\(\s*depends\s+on:\s*([^)]*)\)", re.IGNORECASE)
SKILLS_PATTERN = re.compile(r"\[\s*skills:\s*([^\]]*)\]", re.IGNORECASE)
# Only targets that look like a file path: "Map request -> response" stays a title
PATH_PATTERN = re.compile(r"\s*->\s*(\S*[/.]\S*)\s*$")
CRITERION_PATTERN = re.compile(r"^[-*+]\s+\[[ xX]\]\s+(.+?)\s*$")
FENCE = "```"

DEPENDENCY_PHRASE_PATTERN = re.compile(
    r"\b(?:depends?\s+on|requires?|needs?|after|once)\s+"
    r"([^.;,:\n]+?)(?:\s+(?:is|are)\s+(?:complete|completed|done))?\s*(?=[.;,:\n]|$)",
    re.IGNORECASE,
)
SEQUENTIAL_PATTERN = re.compile(r"\b(?:then|next|after|following|subsequently)\b", re.IGNORECASE)
SECURED_PATTERN = re.compile(r"\b(?:secure|secured|protected)\b", re.IGNORECASE)

# First match wins, so "API view" counts as UI work
COMPONENT_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("ui", re.compile(r"\b(?:frontend|ui|interfaces?|components?|views?|pages?)\b", re.IGNORECASE)),
    ("api", re.compile(r"\b(?:api|apis|endpoints?|services?|backend|server)\b", re.IGNORECASE)),
    ("database", re.compile(r"\b(?:database|db|schemas?|models?|migrations?)\b", re.IGNORECASE)),
    ("auth", re.compile(r"\b(?:authentication|authorization|auth|login)\b", re.IGNORECASE)),
]
COMPONENT_PREREQUISITES: Dict[str, str] = {"ui": "api", "api": "database"}


def detect_phase(heading: str) -> Optional[SparcPhase]:
    """Map a section heading to a SPARC phase, or None if no keyword matches."""
    for phase, pattern in PHASE_PATTERNS:
        if pattern.search(heading):
            return phase
    return None


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_task_line(text: str, phase: SparcPhase) -> TaskDefinition:
    """Build a task definition from one list item's text."""
    expected_path = None
    match = PATH_PATTERN.search(text)
    if match:
        expected_path = match.group(1)
        text = text[:match.start()]

    skills: List[str] = []
    match = SKILLS_PATTERN.search(text)
    if match:
        skills = [s.lower() for s in _split_list(match.group(1))]
        text = text[:match.start()] + text[match.end():]

    dependencies: List[str] = []
    match = DEPENDS_PATTERN.search(text)
    if match:
        dependencies = _split_list(match.group(1))
        text = text[:match.start()] + text[match.end():]

    return TaskDefinition(
        title=" ".join(text.split()),
        phase=phase,
        dependencies=dependencies,
        required_skills=skills,
        expected_path=expected_path,
    )


def _simplify(text: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9\s]", "", text.lower()).split())


def find_matching_title(phrase: str, titles: Sequence[str]) -> Optional[int]:
    """Index of the title a free-text phrase refers to, or None.

    Tries an exact match, then a match ignoring punctuation, then containment
    either way (a phrase must be at least four characters to match part of a
    title).
    """
    wanted = phrase.strip().lower()
    simplified = _simplify(phrase)
    if not simplified:
        return None
    for i, title in enumerate(titles):
        if title.strip().lower() == wanted:
            return i
    simple_titles = [_simplify(t) for t in titles]
    for i, title in enumerate(simple_titles):
        if title == simplified:
            return i
    for i, title in enumerate(simple_titles):
        if title and (title in simplified or (len(simplified) >= 4 and simplified in title)):
            return i
    return None


def component_of(definition: TaskDefinition) -> Optional[str]:
    text = f"{definition.title} {definition.description}"
    for component, pattern in COMPONENT_PATTERNS:
        if pattern.search(text):
            return component
    return None


def infer_dependencies(tasks: List[TaskDefinition]) -> int:
    """Fill in dependencies for tasks that declare none.

    Three sources, all resolved to titles of other tasks in the plan:

    - phrases such as "depends on X", "requires X", "after X" or "once X is
      complete" in the description or acceptance criteria
    - the previous task of the same phase, when nothing was mentioned and the
      description reads as a follow-up ("then", "next", ...)
    - component layering: UI work waits on an earlier API task, API work on an
      earlier database task, and secured work on an earlier auth task

    Returns the number of tasks that gained dependencies.
    """
    titles = [t.title for t in tasks]
    components = [component_of(t) for t in tasks]
    inferred = 0
    for index, task in enumerate(tasks):
        if task.dependencies:
            continue

        found: List[str] = []
        text = " ".join([task.description, *task.acceptance_criteria])
        for match in DEPENDENCY_PHRASE_PATTERN.finditer(text):
            other = find_matching_title(match.group(1), titles)
            if other is not None and other != index:
                found.append(titles[other])

        if not found and index > 0:
            previous = tasks[index - 1]
            if previous.phase == task.phase and SEQUENTIAL_PATTERN.search(task.description):
                found.append(previous.title)

        wanted = COMPONENT_PREREQUISITES.get(components[index])
        if SECURED_PATTERN.search(f"{task.title} {task.description}") and components[index] != "auth":
            wanted = wanted or "auth"
        if wanted is not None:
            for other in range(index):
                if components[other] == wanted:
                    found.append(titles[other])
                    break

        deps = [title for title in dict.fromkeys(found) if task.title not in _dependencies_of(tasks, title)]
        if deps:
            logger.debug(f"Inferred dependencies for '{task.title}': {', '.join(deps)}")
            task.dependencies = deps
            inferred += 1
    return inferred


def _dependencies_of(tasks: Sequence[TaskDefinition], title: str) -> List[str]:
    for task in tasks:
        if task.title == title:
            return task.dependencies
    return []


def parse_sparc_markdown(
    text: str,
    default_title: str = "Untitled epic",
    infer: bool = True,
) -> EpicDefinition:
    """Parse SPARC markdown into an ``EpicDefinition``.

    Dependencies are kept as titles; they are resolved to task ids when the
    epic is created. With ``infer``, tasks without an explicit
    ``(depends on: ...)`` get dependencies from ``infer_dependencies``.
    """
    title: Optional[str] = None
    description_lines: List[str] = []
    tasks: List[TaskDefinition] = []
    phase = SparcPhase.SPECIFICATION
    in_sections = False
    in_fence = False
    current: Optional[TaskDefinition] = None
    current_notes: List[str] = []

    def flush() -> None:
        nonlocal current, current_notes
        if current is not None:
            if current_notes:
                current.description = "\n".join(current_notes)
            tasks.append(current)
        current = None
        current_notes = []

    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(FENCE):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        title_match = TITLE_PATTERN.match(stripped)
        if title_match and title is None and not in_sections:
            title = title_match.group(1)
            continue

        section_match = SECTION_PATTERN.match(stripped)
        if section_match:
            flush()
            in_sections = True
            detected = detect_phase(section_match.group(1))
            if detected is not None:
                phase = detected
            else:
                logger.debug(f"Section '{section_match.group(1)}' matches no phase, keeping {phase.value}")
            continue

        if not in_sections:
            description_lines.append(line)
            continue

        item_match = LIST_ITEM_PATTERN.match(line)
        if item_match:
            flush()
            current = parse_task_line(item_match.group(1), phase)
            if not current.title:
                current = None
            continue

        if current is not None and line[:1].isspace() and stripped:
            criterion = CRITERION_PATTERN.match(stripped)
            if criterion:
                current.acceptance_criteria.append(criterion.group(1))
            else:
                current_notes.append(stripped)
        elif stripped.startswith("#"):
            # sub-heading ends the current item
            flush()

    flush()
    inferred = infer_dependencies(tasks) if infer else 0

    description = "\n".join(description_lines).strip()
    logger.info(
        f"Parsed SPARC plan '{title or default_title}' with {len(tasks)} tasks"
        f" ({inferred} with inferred dependencies)"
    )
    return EpicDefinition(title=title or default_title, description=description, tasks=tasks)
