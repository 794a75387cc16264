"""Todo checklist generation for a single subtask."""

import logging
import re
from typing import Dict, List, Optional

from ..models.subtask_models import Subtask, SubtaskType
from ..models.todo_models import (
    ComplexityLevel,
    SubtaskTodoList,
    TaskComplexityProfile,
    TodoItem,
)

logger = logging.getLogger(__name__)


TASK_PATTERNS: Dict[SubtaskType, Dict] = {
    SubtaskType.CREATION: {
        "operations": [
            "understand_brief", "brainstorm_concepts", "select_approach",
            "create_draft", "refine_content", "final_review",
        ],
        "avg_duration_ms": 150000,
        "dependencies": {
            "create_draft": ["understand_brief", "select_approach"],
            "refine_content": ["create_draft"],
            "final_review": ["refine_content"],
        },
    },
    SubtaskType.RESEARCH: {
        "operations": [
            "define_scope", "identify_sources", "gather_data",
            "analyze_findings", "synthesize_results", "format_output",
        ],
        "avg_duration_ms": 180000,
        "dependencies": {
            "gather_data": ["define_scope", "identify_sources"],
            "analyze_findings": ["gather_data"],
            "synthesize_results": ["analyze_findings"],
            "format_output": ["synthesize_results"],
        },
    },
    SubtaskType.ANALYSIS: {
        "operations": [
            "examine_input", "identify_patterns", "compare_elements",
            "draw_conclusions", "validate_findings", "present_results",
        ],
        "avg_duration_ms": 120000,
        "dependencies": {
            "identify_patterns": ["examine_input"],
            "compare_elements": ["identify_patterns"],
            "draw_conclusions": ["compare_elements"],
            "validate_findings": ["draw_conclusions"],
            "present_results": ["validate_findings"],
        },
    },
    SubtaskType.VALIDATION: {
        "operations": [
            "review_requirements", "check_accuracy", "test_functionality",
            "verify_compliance", "document_results", "recommend_improvements",
        ],
        "avg_duration_ms": 100000,
        "dependencies": {
            "check_accuracy": ["review_requirements"],
            "test_functionality": ["check_accuracy"],
            "verify_compliance": ["test_functionality"],
            "document_results": ["verify_compliance"],
            "recommend_improvements": ["document_results"],
        },
    },
}

OPERATION_DESCRIPTIONS = {
    "understand_brief": "Carefully read and comprehend the task requirements",
    "brainstorm_concepts": "Generate multiple creative approaches and ideas",
    "select_approach": "Choose the most suitable approach based on requirements",
    "create_draft": "Develop the initial version of the deliverable",
    "refine_content": "Improve and polish the content for quality",
    "final_review": "Conduct final quality check and validation",
    "define_scope": "Establish clear boundaries and objectives for research",
    "identify_sources": "Find reliable and relevant information sources",
    "gather_data": "Collect comprehensive information from identified sources",
    "analyze_findings": "Process and interpret the collected data",
    "synthesize_results": "Combine findings into coherent insights",
    "format_output": "Present results in the required format",
    "examine_input": "Read the material under analysis in full",
    "identify_patterns": "Look for recurring trends and relationships",
    "compare_elements": "Contrast the relevant elements against each other",
    "draw_conclusions": "Derive conclusions supported by the evidence",
    "validate_findings": "Double-check conclusions against the source material",
    "present_results": "Summarize the analysis in the required format",
    "review_requirements": "List the requirements the output must satisfy",
    "check_accuracy": "Verify facts and figures for correctness",
    "test_functionality": "Exercise the deliverable and record any failures",
    "verify_compliance": "Confirm the output meets the stated constraints",
    "document_results": "Write down what was checked and what was found",
    "recommend_improvements": "Suggest concrete fixes for every issue found",
}

LEVEL_MULTIPLIERS = {
    ComplexityLevel.SIMPLE: 0.75,
    ComplexityLevel.MODERATE: 1.0,
    ComplexityLevel.COMPLEX: 1.25,
    ComplexityLevel.EXPERT: 1.5,
}

# (min words, min indicators, level, total ms), checked top-down
COMPLEXITY_LEVELS = [
    (500, 3, ComplexityLevel.EXPERT, 1200000),
    (300, 2, ComplexityLevel.COMPLEX, 900000),
    (150, 1, ComplexityLevel.MODERATE, 600000),
]
SIMPLE_DURATION_MS = 300000

COMPLEXITY_INDICATORS = ["implement", "analyze", "integrate", "optimize", "validate", "test"]

RISK_KEYWORDS = {
    "external": "external_dependencies",
    "integrate": "integration_complexity",
    "performance": "performance_requirements",
}

_STEP_PATTERNS = [
    re.compile(r"^\s*\d+[.)]\s+(.+?)\s*$"),
    re.compile(r"^\s*[-*•]\s+(.+?)\s*$"),
    re.compile(r"^\s*step\s*\d*\s*[:.)-]?\s+(.+?)\s*$", re.IGNORECASE),
]
MIN_STEP_LENGTH = 5
MAX_STEP_LENGTH = 100

_SEQUENTIAL_WORDS = re.compile(r"\b(then|next|after|afterwards)\b", re.IGNORECASE)
_FINAL_WORDS = re.compile(r"\b(finally|lastly)\b", re.IGNORECASE)

PROGRESS_TEMPLATE = """
PROGRESS TRACKING REQUIRED:
Mark completion of each step with: [CHECKPOINT:{todoId}:COMPLETED]
Report progress updates with: [PROGRESS:{todoId}:{percentage}]
Flag issues with: [ISSUE:{todoId}:{errorDescription}]
Request assistance with: [HELP:{todoId}:{question}]

TODO CHECKLIST:
{generatedTodoItems}

Complete each item sequentially. Report progress after each step.
"""


class TodoGenerator:
    """
    Breaks a subtask into an ordered checklist of atomic operations.

    PATTERN: Explicit steps in the text win, otherwise a per-type operation pattern
    CRITICAL: Todo IDs are todo-{index}, stable and unique within one list
    GOTCHA: Durations scale with the complexity level of the whole subtask
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def analyze_task_complexity(
        self,
        text: str,
        task_type: SubtaskType,
    ) -> TaskComplexityProfile:
        """
        Analyze how demanding a subtask is.

        Args:
            text: Subtask text
            task_type: Subtask type

        Returns:
            TaskComplexityProfile
        """
        text = text or ""
        lowered = text.lower()
        word_count = len(text.split())
        indicators = sum(1 for keyword in COMPLEXITY_INDICATORS if keyword in lowered)

        level = ComplexityLevel.SIMPLE
        estimated_duration = SIMPLE_DURATION_MS
        for min_words, min_indicators, candidate, duration in COMPLEXITY_LEVELS:
            if word_count > min_words or indicators > min_indicators:
                level = candidate
                estimated_duration = duration
                break

        explicit_steps = self.parse_explicit_steps(text)
        operation_count = len(explicit_steps) or len(self._pattern(task_type)["operations"])

        risk_factors = [risk for keyword, risk in RISK_KEYWORDS.items() if keyword in lowered]

        return TaskComplexityProfile(
            level=level,
            operation_count=operation_count,
            estimated_duration=estimated_duration,
            requires_external_data="external" in lowered or "api" in lowered,
            has_iterative_steps="refine" in lowered or "iterate" in lowered,
            risk_factors=risk_factors,
            explicit_steps=explicit_steps,
        )

    def parse_explicit_steps(self, text: str) -> List[str]:
        """
        Find numbered, bulleted and "Step N:" lines.

        Args:
            text: Text to scan

        Returns:
            Distinct step texts in document order
        """
        steps: List[str] = []
        seen = set()

        for line in (text or "").splitlines():
            for pattern in _STEP_PATTERNS:
                match = pattern.match(line)
                if not match:
                    continue
                step = match.group(1).strip()
                key = step.lower()
                if MIN_STEP_LENGTH < len(step) < MAX_STEP_LENGTH and key not in seen:
                    seen.add(key)
                    steps.append(step)
                break

        return steps

    def extract_atomic_operations(
        self,
        text: str,
        task_type: SubtaskType,
        profile: Optional[TaskComplexityProfile] = None,
    ) -> List[TodoItem]:
        """
        Turn the steps of a subtask into todo items with dependency edges.

        Args:
            text: Subtask text
            task_type: Subtask type
            profile: Precomputed complexity profile

        Returns:
            Todo items in execution order
        """
        profile = profile or self.analyze_task_complexity(text, task_type)

        if profile.explicit_steps:
            todos = [
                TodoItem(
                    id=f"todo-{index}",
                    title=self._title_from_step(step),
                    description=f"Complete the step: {step.rstrip('.')}",
                    estimated_duration_ms=self.estimate_operation_duration(
                        step, task_type, profile.level
                    ),
                )
                for index, step in enumerate(profile.explicit_steps)
            ]
            self._link_explicit_steps(todos, profile.explicit_steps)
            return todos

        operations = self._pattern(task_type)["operations"]
        todos = [
            TodoItem(
                id=f"todo-{index}",
                title=self.humanize_operation_name(operation),
                description=OPERATION_DESCRIPTIONS.get(
                    operation, f"Complete the {operation.replace('_', ' ')} step"
                ),
                estimated_duration_ms=self.estimate_operation_duration(
                    operation, task_type, profile.level
                ),
            )
            for index, operation in enumerate(operations)
        ]
        self._link_pattern_operations(todos, operations, task_type)
        return todos

    def estimate_operation_duration(
        self,
        operation: str,
        task_type: SubtaskType,
        level: ComplexityLevel = ComplexityLevel.MODERATE,
    ) -> int:
        """Per-type base duration scaled by complexity level and operation keywords."""
        duration = self._pattern(task_type)["avg_duration_ms"] * LEVEL_MULTIPLIERS[level]

        lowered = operation.lower()
        if "implement" in lowered or "create" in lowered:
            duration *= 1.5
        elif "review" in lowered or "check" in lowered:
            duration *= 0.7
        elif "research" in lowered or "analyze" in lowered:
            duration *= 1.2

        return int(round(duration))

    def generate_todo_list(
        self,
        subtask: Subtask,
        text: Optional[str] = None,
        profile: Optional[TaskComplexityProfile] = None,
        agent_id: Optional[str] = None,
    ) -> SubtaskTodoList:
        """
        Build the checklist owned by one subtask.

        Args:
            subtask: Owning subtask
            text: Text to mine for steps, defaults to the subtask description
            profile: Precomputed complexity profile
            agent_id: Agent the list is handed to

        Returns:
            SubtaskTodoList with derived totals
        """
        text = subtask.description if text is None else text
        todos = self.extract_atomic_operations(text, subtask.type, profile)

        todo_list = SubtaskTodoList(
            subtask_id=subtask.id,
            agent_id=agent_id or subtask.assigned_agent_id or "unassigned",
            todos=todos,
        )

        self.logger.debug(
            f"Generated {todo_list.total_items} todos for {subtask.id} "
            f"({todo_list.estimated_total_duration}ms estimated)"
        )
        return todo_list

    def generate_progress_instructions(self, todo_list: SubtaskTodoList) -> str:
        """Render the marker syntax and the TODO CHECKLIST block."""
        todo_items = "\n".join(
            f"- [{todo.id}] {todo.title}: {todo.description} "
            f"(Est: {round(todo.estimated_duration_ms / 60000)}min)"
            for todo in todo_list.todos
        )
        return PROGRESS_TEMPLATE.replace("{generatedTodoItems}", todo_items)

    def create_checkpoint_markers(self, todo_list: SubtaskTodoList) -> List[str]:
        """One rendered completion marker per todo ID."""
        return [f"[CHECKPOINT:{todo.id}:COMPLETED]" for todo in todo_list.todos]

    def humanize_operation_name(self, operation: str) -> str:
        return operation.replace("_", " ").title()

    def _pattern(self, task_type: SubtaskType) -> Dict:
        return TASK_PATTERNS.get(task_type, TASK_PATTERNS[SubtaskType.CREATION])

    def _title_from_step(self, step: str) -> str:
        title = step.rstrip(" .;:")
        return title[:1].upper() + title[1:]

    def _link_explicit_steps(self, todos: List[TodoItem], steps: List[str]) -> None:
        """
        Ordering words decide the edges when present, otherwise a linear chain.

        GOTCHA: Once any step uses an ordering word, steps without one are independent
        """
        has_ordering = any(
            _SEQUENTIAL_WORDS.search(step) or _FINAL_WORDS.search(step) for step in steps
        )

        for index in range(1, len(todos)):
            step = steps[index]
            previous_ids = [todo.id for todo in todos[:index]]
            if not has_ordering:
                todos[index].dependencies = [previous_ids[-1]]
            elif _FINAL_WORDS.search(step):
                todos[index].dependencies = previous_ids
            elif _SEQUENTIAL_WORDS.search(step):
                todos[index].dependencies = [previous_ids[-1]]

    def _link_pattern_operations(
        self,
        todos: List[TodoItem],
        operations: List[str],
        task_type: SubtaskType,
    ) -> None:
        id_by_operation = {op: todo.id for op, todo in zip(operations, todos)}
        dependency_map = self._pattern(task_type)["dependencies"]

        for index, (operation, todo) in enumerate(zip(operations, todos)):
            mapped = [
                id_by_operation[name]
                for name in dependency_map.get(operation, [])
                if name in id_by_operation
            ]
            if mapped:
                todo.dependencies = mapped
            elif index > 0:
                todo.dependencies = [todos[index - 1].id]
