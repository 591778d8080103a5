"""Main CLI for agent-epics."""

import asyncio
from pathlib import Path
from typing import Optional, Sequence

import click
from rich.console import Console
from rich.table import Table

from ..core.config import load_agents, load_config, load_epic_definition, load_github_config
from ..core.orchestrator import EpicOrchestrator
from ..core.readiness import TaskFilter
from ..core.reconciler import ReconciliationResult, StepOutcome, SyncStep
from ..core.sparc_parser import parse_sparc_markdown
from ..core.store import EpicStore
from ..core.task import EpicDefinition, SparcPhase, Task, TaskStatus
from ..errors.exceptions import TaskNotFoundError
from ..errors.translator import ErrorTranslator
from ..integrations.github.client import GitHubTracker
from ..utils.rich_logging import setup_rich_logging


console = Console()
translator = ErrorTranslator()

STATUS_STYLES = {
    TaskStatus.BACKLOG: "dim",
    TaskStatus.READY: "cyan",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.REVIEW: "magenta",
    TaskStatus.DONE: "green",
    TaskStatus.BLOCKED: "red",
}

OUTCOME_STYLES = {
    StepOutcome.SUCCEEDED: "green",
    StepOutcome.FAILED: "red",
    StepOutcome.SKIPPED: "dim",
}


@click.group()
@click.option("--workspace", "-w", default=".", help="Workspace directory")
@click.option("--config", "-c", "config_path", default="agent-epics.yaml", help="Config file (relative to workspace)")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(ctx, workspace, config_path, log_level):
    """Agent Epics - SPARC epics mirrored onto GitHub issues and project boards."""
    ctx.ensure_object(dict)
    workspace = Path(workspace)
    config_file = Path(config_path)
    if not config_file.is_absolute():
        config_file = workspace / config_file

    config = load_config(config_file).model_copy(update={"workspace": workspace})
    ctx.obj["workspace"] = workspace
    ctx.obj["config"] = config
    setup_rich_logging("agent-epics", workspace, log_level or config.log_level)


def _orchestrator(ctx) -> EpicOrchestrator:
    workspace = ctx.obj["workspace"]
    config = ctx.obj["config"]
    github_config = load_github_config(workspace / "config" / "github.yaml")
    tracker = GitHubTracker(github_config) if github_config else None
    return EpicOrchestrator(
        tracker,
        config,
        agents=load_agents(workspace / "config" / "agents.yaml"),
        store=EpicStore(config.epics_dir),
        project_number=github_config.project_number if github_config else None,
        create_project=github_config.create_project if github_config else False,
    )


def _report_error(ctx, error: Exception) -> None:
    console.print(translator.format_for_cli(translator.translate(error)))
    ctx.exit(1)


def _resolve_task_id(orchestrator: EpicOrchestrator, epic_id: str, task_ref: str) -> str:
    """Accept a task id or an issue reference like ``#12``."""
    if task_ref.startswith("#") and task_ref[1:].isdigit():
        task = orchestrator.find_task_by_issue(epic_id, int(task_ref[1:]))
        if task is None:
            raise TaskNotFoundError(epic_id, task_ref)
        return task.task_id
    return task_ref


def _load_definition(path: Path) -> EpicDefinition:
    if path.suffix.lower() in (".yaml", ".yml"):
        return load_epic_definition(path)
    return parse_sparc_markdown(path.read_text(), default_title=path.stem)


def _status_text(status: TaskStatus) -> str:
    return f"[{STATUS_STYLES[status]}]{status.value}[/]"


def _task_table(tasks: Sequence[Task], title: Optional[str] = None) -> Table:
    table = Table(title=title)
    table.add_column("Task")
    table.add_column("Issue")
    table.add_column("Title")
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Agent")
    table.add_column("Depends on")

    for task in tasks:
        agent = ""
        if task.assigned_agent:
            agent = f"{task.assigned_agent.agent_type} ({task.assigned_agent.score:.0f})"
        table.add_row(
            task.task_id,
            str(task.issue_ref) if task.issue_ref else "-",
            task.title,
            task.phase.value,
            _status_text(task.status),
            agent,
            ", ".join(task.dependencies),
        )
    return table


def _result_table(result: ReconciliationResult) -> Table:
    table = Table(title=f"{result.task_id}: {result.previous_status.value} -> {result.target_status.value}")
    table.add_column("Step")
    table.add_column("Outcome")
    table.add_column("Mutations", justify="right")
    table.add_column("Detail")

    for step, step_result in result.steps.items():
        style = OUTCOME_STYLES[step_result.outcome]
        table.add_row(
            step.value,
            f"[{style}]{step_result.outcome.value}[/]",
            str(step_result.mutations),
            step_result.error or step_result.detail,
        )
    return table


def _retry_hint(steps) -> str:
    return f"  Retry with: --step {' --step '.join(step.value for step in steps)}"


def _print_result(result: ReconciliationResult) -> None:
    if result.blocked_by:
        console.print(
            f"[yellow]Requested {result.requested_status.value} but dependencies are not done "
            f"({', '.join(result.blocked_by)}); task set to blocked[/]"
        )
    if result.already_satisfied:
        console.print(f"[dim]{result.task_id} already {result.target_status.value}, nothing to do[/]")
        return
    console.print(_result_table(result))
    if result.applied:
        console.print(f"[green]✓ {result.task_id} is now {result.target_status.value}[/]")
    elif result.success:
        remaining = ", ".join(step.value for step in result.remaining_steps)
        console.print(
            f"[yellow]… {result.target_status.value} partially synced, still to run: {remaining}[/]\n"
            + _retry_hint(result.remaining_steps)
        )
    else:
        failed = ", ".join(step.value for step in result.failed_steps)
        console.print(f"[red]✗ Transition incomplete, failed: {failed}[/]\n" + _retry_hint(result.remaining_steps))


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Parse the plan without touching GitHub")
@click.pass_context
def create(ctx, plan_file, dry_run):
    """Create an epic from a SPARC markdown plan or a YAML definition."""
    try:
        definition = _load_definition(plan_file)
    except Exception as e:
        _report_error(ctx, e)
        return

    if dry_run:
        table = Table(title=definition.title)
        table.add_column("#", justify="right")
        table.add_column("Task")
        table.add_column("Phase")
        table.add_column("Skills")
        table.add_column("Depends on")
        for i, task_def in enumerate(definition.tasks, 1):
            table.add_row(
                str(i),
                task_def.title,
                task_def.phase.value,
                ", ".join(task_def.required_skills),
                ", ".join(task_def.dependencies),
            )
        console.print(table)
        return

    orchestrator = _orchestrator(ctx)
    console.print(f"[bold]Creating epic '{definition.title}' with {len(definition.tasks)} tasks...[/]")
    try:
        epic = asyncio.run(orchestrator.create_epic(definition.title, definition.description, definition.tasks))
    except Exception as e:
        _report_error(ctx, e)
        return

    console.print(f"[green]✓ Created epic {epic.epic_id}[/]")
    if epic.tracking_issue_ref:
        console.print(f"  Tracking issue: {epic.tracking_issue_ref} {epic.tracking_issue_ref.url}")
    if epic.project_ref:
        console.print(f"  Project board: #{epic.project_ref.number} {epic.project_ref.url}")
    console.print(_task_table(epic.tasks))


@cli.command(name="list")
@click.pass_context
def list_epics(ctx):
    """List known epics."""
    orchestrator = _orchestrator(ctx)
    epics = orchestrator.list_epics()
    if not epics:
        console.print("[yellow]No epics found[/]")
        return

    table = Table()
    table.add_column("Epic")
    table.add_column("Title")
    table.add_column("Tasks", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("State")

    for epic in epics:
        summary = orchestrator.summarize(epic.epic_id)
        table.add_row(
            epic.epic_id,
            epic.title,
            str(summary.total),
            f"{summary.progress_percent}%",
            orchestrator.epic_state(epic.epic_id).value,
        )
    console.print(table)


@cli.command()
@click.argument("epic_id")
@click.pass_context
def status(ctx, epic_id):
    """Show an epic's progress and tasks."""
    orchestrator = _orchestrator(ctx)
    try:
        epic = orchestrator.get_epic(epic_id)
    except Exception as e:
        _report_error(ctx, e)
        return

    summary = orchestrator.summarize(epic_id)
    console.print(f"[bold]{epic.title}[/] ({epic.epic_id})")
    console.print(
        f"State: {orchestrator.epic_state(epic_id).value}  "
        f"Progress: {summary.progress_percent}% ({summary.count(TaskStatus.DONE)}/{summary.total} done)  "
        f"Active: {summary.active_work}  Available: {summary.available_work}  "
        f"Blocked: {summary.count(TaskStatus.BLOCKED)}"
    )
    console.print(_task_table(epic.tasks))


@cli.command()
@click.argument("epic_id")
@click.option("--phase", type=click.Choice([p.value for p in SparcPhase], case_sensitive=False))
@click.option("--agent-type", help="Only tasks assigned to this agent type")
@click.pass_context
def ready(ctx, epic_id, phase, agent_type):
    """List tasks that can start now, highest priority first."""
    orchestrator = _orchestrator(ctx)
    task_filter = TaskFilter(phase=SparcPhase(phase) if phase else None, agent_type=agent_type)
    try:
        tasks = orchestrator.compute_ready_tasks(epic_id, task_filter)
    except Exception as e:
        _report_error(ctx, e)
        return

    if not tasks:
        console.print("[yellow]No ready tasks[/]")
        return
    console.print(_task_table(tasks, title="Ready tasks"))


@cli.command(name="next")
@click.argument("epic_id")
@click.option("--agent-type", help="Only tasks assigned to this agent type")
@click.pass_context
def next_task(ctx, epic_id, agent_type):
    """Show the next task to work on."""
    orchestrator = _orchestrator(ctx)
    try:
        task = orchestrator.compute_next_task(epic_id, agent_type)
    except Exception as e:
        _report_error(ctx, e)
        return

    if task is None:
        console.print("[yellow]No task is ready[/]")
        return
    console.print(f"[bold]{task.task_id}[/] {task.issue_ref or ''} {task.title}")
    console.print(f"  Phase: {task.phase.value}")
    if task.assigned_agent:
        console.print(f"  Agent: {task.assigned_agent.agent_name} ({task.assigned_agent.score:.0f})")
    if task.issue_ref and task.issue_ref.url:
        console.print(f"  {task.issue_ref.url}")


@cli.command()
@click.argument("epic_id")
@click.argument("task_ref")
@click.argument("target", type=click.Choice([s.value for s in TaskStatus], case_sensitive=False))
@click.option(
    "--step",
    "steps",
    multiple=True,
    type=click.Choice([s.value for s in SyncStep]),
    help="Only run these sub-steps (retry after a partial failure)",
)
@click.pass_context
def transition(ctx, epic_id, task_ref, target, steps):
    """Move a task to a new status and sync GitHub.

    TASK_REF is a task id or an issue reference such as #12.
    """
    orchestrator = _orchestrator(ctx)
    try:
        task_id = _resolve_task_id(orchestrator, epic_id, task_ref)
        result = asyncio.run(orchestrator.request_transition(
            epic_id,
            task_id,
            TaskStatus(target),
            steps=[SyncStep(s) for s in steps] or None,
        ))
    except Exception as e:
        _report_error(ctx, e)
        return

    _print_result(result)
    if not result.applied:
        ctx.exit(1)


@cli.command()
@click.argument("epic_id")
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), help="Directory expected paths are relative to")
@click.pass_context
def detect(ctx, epic_id, root):
    """Report which tasks have produced their expected artifact."""
    orchestrator = _orchestrator(ctx)
    try:
        report = orchestrator.detect_completed(epic_id, root)
    except Exception as e:
        _report_error(ctx, e)
        return

    table = Table()
    table.add_column("Task")
    table.add_column("Title")
    table.add_column("Expected path")
    table.add_column("Found")
    for task in report.completed:
        table.add_row(task.task_id, task.title, task.expected_path or "", "[green]yes[/]")
    for task in report.pending:
        table.add_row(task.task_id, task.title, task.expected_path or "-", "[dim]no[/]")
    console.print(table)
    console.print(f"{len(report.completed)} completed, {len(report.pending)} pending")


@cli.command(name="sync-completion")
@click.argument("epic_id")
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), help="Directory expected paths are relative to")
@click.pass_context
def sync_completion(ctx, epic_id, root):
    """Mark tasks done whose expected artifact exists."""
    orchestrator = _orchestrator(ctx)
    try:
        results = asyncio.run(orchestrator.sync_completion(epic_id, root))
    except Exception as e:
        _report_error(ctx, e)
        return

    if not results:
        console.print("[dim]No newly completed tasks[/]")
        return
    for result in results:
        _print_result(result)
    if any(not r.applied for r in results):
        ctx.exit(1)


@cli.command()
@click.argument("epic_id")
@click.pass_context
def refresh(ctx, epic_id):
    """Re-read task statuses from GitHub."""
    orchestrator = _orchestrator(ctx)
    try:
        refreshed = asyncio.run(orchestrator.refresh_statuses(epic_id))
    except Exception as e:
        _report_error(ctx, e)
        return

    console.print(f"[green]✓ Refreshed {len(refreshed)} task(s)[/]")
    console.print(_task_table(orchestrator.get_epic(epic_id).tasks))


@cli.command()
@click.option("--skill", "-s", "skills", multiple=True, required=True, help="Required skill (repeatable)")
@click.pass_context
def match(ctx, skills):
    """Rank the agent catalog against required skills."""
    orchestrator = _orchestrator(ctx)
    ranked = orchestrator.rank_agents(list(skills))

    table = Table(title=f"Agents for: {', '.join(skills)}")
    table.add_column("Rank", justify="right")
    table.add_column("Agent")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    table.add_column("Skills")
    for i, m in enumerate(ranked, 1):
        table.add_row(str(i), m.agent.name, m.agent.type, f"{m.score:.0f}", ", ".join(m.agent.skills))
    console.print(table)


if __name__ == "__main__":
    cli()
