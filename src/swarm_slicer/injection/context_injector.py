"""Builds the isolated, progress-tracked prompt handed to one agent."""

import logging
from typing import Dict, List, Optional

from ..models.subtask_models import Subtask, SubtaskType, WorkflowScaffold
from ..models.todo_models import (
    ContextualMetadata,
    EnhancedInjectedPrompt,
    InjectionConfig,
    InjectionMetadata,
)
from .compression import ContextCompressor
from .context_extractor import UNSPECIFIED, ContextExtractor
from .todo_generator import TodoGenerator

logger = logging.getLogger(__name__)

UNASSIGNED_AGENT = "unassigned"

TRACKING_HEADER = "=== PROGRESS TRACKING ENABLED ==="
TRACKING_FOOTER = "=== END TRACKING SECTION ==="

TASK_INSTRUCTIONS: Dict[SubtaskType, List[str]] = {
    SubtaskType.RESEARCH: [
        "Provide comprehensive information with credible sources",
        "Include relevant data, statistics, and evidence",
        "Organize findings logically",
        "Cite sources when possible",
        "Flag any uncertainties or conflicting information",
    ],
    SubtaskType.ANALYSIS: [
        "Break down complex information into digestible parts",
        "Identify patterns, trends, and relationships",
        "Provide clear reasoning for conclusions",
        "Consider multiple perspectives",
        "Support findings with evidence from the context",
    ],
    SubtaskType.CREATION: [
        "Follow the specified format and style requirements",
        "Ensure content aligns with the tone and audience",
        "Be creative while staying within constraints",
        "Provide well-structured, coherent output",
        "Include relevant details from the context",
    ],
    SubtaskType.VALIDATION: [
        "Check for accuracy and completeness",
        "Verify alignment with requirements and constraints",
        "Identify any inconsistencies or errors",
        "Provide specific feedback and recommendations",
        "Ensure quality standards are met",
    ],
}

INJECTION_PRESETS: Dict[str, Dict] = {
    "minimal": {
        "include_tone": False,
        "include_format": False,
        "include_original_prompt": True,
        "include_style_guide": False,
        "max_context_length": 2000,
    },
    "standard": {
        "include_tone": True,
        "include_format": True,
        "include_original_prompt": True,
        "include_style_guide": True,
        "max_context_length": 4000,
    },
    "comprehensive": {
        "include_tone": True,
        "include_format": True,
        "include_original_prompt": True,
        "include_style_guide": True,
        "max_context_length": 8000,
    },
}


def get_injection_preset(name: str) -> InjectionConfig:
    """
    Get a named injection preset.

    Args:
        name: minimal, standard or comprehensive

    Returns:
        InjectionConfig, the standard preset for unknown names
    """
    if name not in INJECTION_PRESETS:
        logger.warning(f"Unknown injection preset '{name}', using standard")
        name = "standard"
    return InjectionConfig(**INJECTION_PRESETS[name])


class ContextInjector:
    """
    Enriches a subtask with context from the original prompt and a todo checklist.

    PATTERN: Extract, filter, render, compress, then append tracking instructions
    CRITICAL: Never raises on empty prompts or unassigned agents
    GOTCHA: The tracking section is appended after compression and is never truncated
    """

    def __init__(
        self,
        extractor: Optional[ContextExtractor] = None,
        compressor: Optional[ContextCompressor] = None,
        todo_generator: Optional[TodoGenerator] = None,
        config: Optional[InjectionConfig] = None,
    ):
        """
        Initialize injector.

        Args:
            extractor: Contextual metadata extractor
            compressor: Length-budget compressor
            todo_generator: Checklist generator
            config: Default injection config
        """
        self.extractor = extractor or ContextExtractor()
        self.compressor = compressor or ContextCompressor()
        self.todo_generator = todo_generator or TodoGenerator()
        self.config = config or InjectionConfig()
        self.logger = logging.getLogger(__name__)

    def inject_context_to_subtask_prompt(
        self,
        subtask: Subtask,
        workflow_scaffold: Optional[WorkflowScaffold],
        original_prompt: str,
        config: Optional[InjectionConfig] = None,
    ) -> EnhancedInjectedPrompt:
        """
        Produce the isolated prompt for one subtask.

        Args:
            subtask: Subtask to render
            workflow_scaffold: Workflow the subtask belongs to
            original_prompt: The user's original request
            config: Overrides the injector's default config

        Returns:
            EnhancedInjectedPrompt with todo list and checkpoint markers
        """
        config = config or self.config
        if not original_prompt and workflow_scaffold:
            original_prompt = workflow_scaffold.original_prompt
        original_prompt = original_prompt or ""

        agent_id = (
            subtask.assigned_agent_id
            or (workflow_scaffold.agent_id if workflow_scaffold else None)
            or UNASSIGNED_AGENT
        )

        contextual = self.extractor.extract_all(original_prompt)
        relevant = self.extractor.extract_relevant_context(original_prompt, subtask.type)

        by_id = (
            {s.id: s for s in workflow_scaffold.subtasks} if workflow_scaffold else None
        )
        rendered = self.build_contextual_prompt(
            subtask, relevant, contextual, config, by_id
        )
        compressed_prompt, ratio = self.compressor.compress(
            rendered, config.max_context_length
        )

        todo_source = self.build_todo_source(subtask, relevant, original_prompt)
        profile = self.todo_generator.analyze_task_complexity(todo_source, subtask.type)
        todo_list = self.todo_generator.generate_todo_list(
            subtask, todo_source, profile, agent_id=agent_id
        )
        instructions = self.todo_generator.generate_progress_instructions(todo_list)
        markers = self.todo_generator.create_checkpoint_markers(todo_list)

        injected_prompt = self.embed_progress_tracking(compressed_prompt, instructions)

        metadata = InjectionMetadata(
            original_length=len(rendered),
            injected_length=len(compressed_prompt),
            compression_ratio=ratio,
            compressed=len(compressed_prompt) < len(rendered),
        )

        if metadata.compressed:
            self.logger.info(
                f"Compressed context for {subtask.id} "
                f"({metadata.original_length} -> {metadata.injected_length} chars)"
            )

        return EnhancedInjectedPrompt(
            subtask_id=subtask.id,
            agent_id=agent_id,
            injected_prompt=injected_prompt,
            contextual_metadata=contextual,
            todo_list=todo_list,
            progress_instructions=instructions,
            checkpoint_markers=markers,
            complexity=profile,
            metadata=metadata,
            extra={
                "workflow_id": workflow_scaffold.workflow_id if workflow_scaffold else None,
                "relevant_context_length": len(relevant),
            },
        )

    def build_isolated_prompt(
        self,
        subtask: Subtask,
        original_prompt: str,
        subtasks_by_id: Optional[Dict[str, Subtask]] = None,
        config: Optional[InjectionConfig] = None,
    ) -> str:
        """
        Render the context-only prompt attached to a batch group member.

        Args:
            subtask: Subtask to render
            original_prompt: The user's original request
            subtasks_by_id: Sibling subtasks, used to name dependencies
            config: Overrides the injector's default config

        Returns:
            Compressed prompt text without progress tracking
        """
        config = config or self.config
        contextual = self.extractor.extract_all(original_prompt or "")
        relevant = self.extractor.extract_relevant_context(
            original_prompt or "", subtask.type
        )
        rendered = self.build_contextual_prompt(
            subtask, relevant, contextual, config, subtasks_by_id
        )
        compressed, _ = self.compressor.compress(rendered, config.max_context_length)
        return compressed

    def build_contextual_prompt(
        self,
        subtask: Subtask,
        relevant_context: str,
        contextual: ContextualMetadata,
        config: InjectionConfig,
        subtasks_by_id: Optional[Dict[str, Subtask]] = None,
    ) -> str:
        """
        Render context sections followed by the task itself.

        Args:
            subtask: Subtask to render
            relevant_context: Filtered sentences of the original prompt
            contextual: Extracted metadata
            config: Controls which sections are rendered
            subtasks_by_id: Sibling subtasks, used to name dependencies

        Returns:
            Markdown prompt text
        """
        sections: List[str] = []

        if config.custom_prefix:
            sections.append(config.custom_prefix)

        if config.include_original_prompt and relevant_context:
            sections.append(f"# Original Context\n{relevant_context}")

        optional_sections = [
            (config.include_tone, "Tone & Style", contextual.tone),
            (config.include_format, "Format Requirements", contextual.format),
            (config.include_style_guide, "Style Guidelines", contextual.style_guide),
            (True, "Domain Context", contextual.domain),
            (True, "Target Audience", contextual.audience),
        ]
        for enabled, heading, value in optional_sections:
            if enabled and value and value != UNSPECIFIED:
                sections.append(f"# {heading}\n{value}")

        if contextual.constraints:
            lines = "\n".join(f"- {c}" for c in contextual.constraints)
            sections.append(f"# Constraints\n{lines}")

        if contextual.examples:
            sections.append("# Examples\n" + "\n\n".join(contextual.examples))

        task_lines = [
            f"# Your Specific Task ({subtask.type.value})",
            f"**Title:** {subtask.title}",
            "",
            f"**Description:** {subtask.description}",
            "",
            f"**Priority:** {subtask.priority.value}",
        ]
        if subtask.dependencies:
            task_lines.extend(
                ["", f"**Dependencies:** This task depends on: "
                 f"{self._describe_dependencies(subtask, subtasks_by_id)}"]
            )
        sections.append("\n".join(task_lines))

        instructions = TASK_INSTRUCTIONS.get(subtask.type)
        if instructions:
            heading = f"# {subtask.type.value.capitalize()} Instructions"
            sections.append(heading + "\n" + "\n".join(f"- {i}" for i in instructions))

        if config.custom_suffix:
            sections.append(config.custom_suffix)

        return "\n\n".join(sections).strip()

    def build_todo_source(
        self,
        subtask: Subtask,
        relevant_context: str,
        original_prompt: str,
    ) -> str:
        """
        Text the checklist is mined from.

        CRITICAL: Numbered and bulleted steps of the user's prompt are kept one per line,
                  relevant_context joins sentences and would lose them

        Args:
            subtask: Subtask being rendered
            relevant_context: Filtered sentences of the original prompt
            original_prompt: The user's original request

        Returns:
            Description, relevant context and the user's explicit steps
        """
        steps = self.todo_generator.parse_explicit_steps(original_prompt)
        parts = [
            subtask.description,
            relevant_context,
            "\n".join(f"- {step}" for step in steps),
        ]
        return "\n".join(part for part in parts if part)

    def embed_progress_tracking(self, prompt: str, instructions: str) -> str:
        """Append the delimited tracking section to a prompt."""
        return f"{prompt}\n\n{TRACKING_HEADER}\n{instructions}\n{TRACKING_FOOTER}\n\n"

    def _describe_dependencies(
        self,
        subtask: Subtask,
        subtasks_by_id: Optional[Dict[str, Subtask]],
    ) -> str:
        names = []
        for dependency in subtask.dependencies:
            sibling = (subtasks_by_id or {}).get(dependency.subtask_id)
            if sibling:
                names.append(f"{dependency.subtask_id} ({sibling.title})")
            else:
                names.append(dependency.subtask_id)
        return ", ".join(names)
