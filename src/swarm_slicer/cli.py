"""Command line entry point."""

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config.settings import SwarmSlicerSettings, get_settings
from .dispatch.agents import BaseAgent, OpenAIAgent
from .exceptions import SwarmSlicerError
from .services.pipeline_service import SlicingPipeline

logger = logging.getLogger(__name__)

console = Console()


def _read_prompt(prompt: Optional[str]) -> str:
    if prompt == "-" or (prompt is None and not sys.stdin.isatty()):
        return sys.stdin.read()
    if not prompt:
        raise click.UsageError("Provide a prompt argument or pipe one on stdin")
    return prompt


def _load_settings(preset: Optional[str]) -> SwarmSlicerSettings:
    return SwarmSlicerSettings.from_preset(preset) if preset else get_settings()


class _NullAgent(BaseAgent):
    """Placeholder for commands that never dispatch."""

    def __init__(self):
        super().__init__("offline")

    async def invoke(self, subtask, prompt):
        raise SwarmSlicerError("offline agent cannot execute subtasks")


def _build_pipeline(settings: SwarmSlicerSettings) -> SlicingPipeline:
    agent = OpenAIAgent(
        "openai",
        api_key=settings.openai_api_key,
        model=settings.openai_model,
    )
    return SlicingPipeline([agent], settings=settings)


@click.group()
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.option(
    "--preset",
    type=click.Choice(
        ["development", "production", "high_throughput", "cost_optimized", "quality_focused"]
    ),
    help="Dispatch preset to start from",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, preset: Optional[str]) -> None:
    """
    Swarm Slicer - split prompts into batched, progress-tracked subtasks.

    Analyze a prompt:
        swarm-slicer analyze "research competitors then write a report"

    Show the batch plan:
        swarm-slicer slice "..."

    Run against OpenAI:
        swarm-slicer run "..."
    """
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["preset"] = preset
    ctx.obj["verbose"] = verbose


@main.command()
@click.argument("prompt", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def analyze(ctx: click.Context, prompt: Optional[str], as_json: bool) -> None:
    """Show heuristic statistics for a prompt."""
    settings = _load_settings(ctx.obj["preset"])
    pipeline = SlicingPipeline([_NullAgent()], settings=settings)
    analysis = pipeline.slicer.analyze(_read_prompt(prompt))

    if as_json:
        click.echo(analysis.model_dump_json(indent=2))
        return

    table = Table(title="Prompt Analysis")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in analysis.model_dump().items():
        table.add_row(name, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)


@main.command(name="slice")
@click.argument("prompt", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def slice_prompt(ctx: click.Context, prompt: Optional[str], as_json: bool) -> None:
    """Slice a prompt and show its batch groups."""
    settings = _load_settings(ctx.obj["preset"])
    pipeline = SlicingPipeline([_NullAgent()], settings=settings)
    plan = pipeline.plan(_read_prompt(prompt))

    if as_json:
        click.echo(
            json.dumps(
                [
                    g.model_dump(
                        mode="json",
                        exclude={"subtasks": {"__all__": {"injected_context"}}},
                    )
                    for g in plan.batch_groups
                ],
                indent=2,
            )
        )
        return

    table = Table(title=f"Workflow {plan.workflow_id}")
    table.add_column("Level", justify="right")
    table.add_column("Group")
    table.add_column("Subtask")
    table.add_column("Type")
    table.add_column("Depends on")
    for group in plan.batch_groups:
        for subtask in group.subtasks:
            table.add_row(
                str(group.level),
                group.group_id,
                subtask.title,
                subtask.type.value,
                ", ".join(subtask.blocking_dependency_ids()) or "-",
            )
    console.print(table)
    if plan.slice_result.used_large_prompt_slicing:
        stats = plan.slice_result.statistics
        console.print(
            f"[dim]Large prompt: {stats.chunk_count} chunks, "
            f"context preservation {stats.context_preservation_score:.2f}[/dim]"
        )


@main.command()
@click.argument("prompt", required=False)
@click.option("--index", "-i", default=0, show_default=True, help="Subtask position")
@click.pass_context
def inject(ctx: click.Context, prompt: Optional[str], index: int) -> None:
    """Print the isolated, progress-tracked prompt of one subtask."""
    settings = _load_settings(ctx.obj["preset"])
    pipeline = SlicingPipeline([_NullAgent()], settings=settings)
    plan = pipeline.plan(_read_prompt(prompt))

    members = [s for g in plan.batch_groups for s in g.subtasks]
    if not 0 <= index < len(members):
        raise click.BadParameter(f"index must be between 0 and {len(members) - 1}")

    enhanced = plan.injected_prompts[members[index].id]
    console.print(Panel(enhanced.injected_prompt, title=members[index].title))
    console.print(
        f"[dim]{enhanced.todo_list.total_items} todos, "
        f"{enhanced.metadata.injected_length}/{enhanced.metadata.original_length} chars "
        f"(ratio {enhanced.metadata.compression_ratio:.2f})[/dim]"
    )


@main.command()
@click.argument("prompt", required=False)
@click.option("--output", "-o", type=click.Path(), help="Write merged results here")
@click.pass_context
def run(ctx: click.Context, prompt: Optional[str], output: Optional[str]) -> None:
    """Execute a prompt end to end against OpenAI."""
    settings = _load_settings(ctx.obj["preset"])
    if not settings.openai_api_key:
        raise click.UsageError("OPENAI_API_KEY is not set")

    text = _read_prompt(prompt)
    try:
        merged, status = asyncio.run(_run_pipeline(settings, text))
    except SwarmSlicerError as e:
        if ctx.obj["verbose"]:
            logger.exception("Pipeline error")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(merged)
        console.print(f"[green]Wrote results to {output}[/green] ({status})")
    else:
        console.print(merged)
        console.print(f"[dim]Workflow {status}[/dim]")


async def _run_pipeline(settings: SwarmSlicerSettings, prompt: str):
    pipeline = _build_pipeline(settings)
    try:
        result = await pipeline.run(prompt)
        return pipeline.merge_results(result), result.execution.status.value
    finally:
        await pipeline.close()


if __name__ == "__main__":
    main()
