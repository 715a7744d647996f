"""hive CLI: plan sync, task status and per-task worktrees.

Installed as the ``hive`` console_script. Run from the project root, or
from inside a task worktree where FEATURE and TASK default to the
worktree's own.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

import click

from hive import __version__, log
from hive.config import MERGE_STRATEGIES, Config
from hive.context import ContextService
from hive.errors import HiveError, NotFoundError
from hive.execution import ExecutionService
from hive.features import FeatureService
from hive.io_utils import read_text
from hive.paths import DetectedContext, detect_context
from hive.tasks import TaskService
from hive.tasks.graph import Scheduler
from hive.tasks.model import TaskState
from hive.worktree import WorktreeService

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

_STATUS_STYLE = {
    TaskState.PENDING: "white",
    TaskState.IN_PROGRESS: "yellow",
    TaskState.DONE: "green",
    TaskState.CANCELLED: "dim",
}


class HiveGroup(click.Group):
    """Report :class:`HiveError` as a one-line error and exit 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except HiveError as exc:
            log.error(str(exc))
            sys.exit(1)


@dataclass
class App:
    config: Config
    context: DetectedContext

    @property
    def root(self) -> Path:
        return Path(self.config.project_root)

    @cached_property
    def tasks(self) -> TaskService:
        return TaskService(self.root, self.config.lock_options())

    @cached_property
    def features(self) -> FeatureService:
        return FeatureService(self.root, self.config.lock_options())

    @cached_property
    def context_notes(self) -> ContextService:
        return ContextService(self.root)

    @cached_property
    def worktrees(self) -> WorktreeService:
        return WorktreeService(self.root)

    @cached_property
    def execution(self) -> ExecutionService:
        return ExecutionService(self.tasks, self.worktrees, self.config.merge_strategy)

    def feature(self, feature: str | None) -> str:
        value = feature or self.context.feature
        if not value:
            raise click.UsageError("FEATURE is required outside a task worktree.")
        return value

    def feature_task(self, feature: str | None, task: str | None) -> tuple[str, str]:
        value = task or self.context.task
        if not value:
            raise click.UsageError("TASK is required outside a task worktree.")
        return self.feature(feature), value


pass_app = click.make_pass_decorator(App)


@click.group(cls=HiveGroup, context_settings=CONTEXT_SETTINGS)
@click.option("--root", default="", help="Project root (default: detected from cwd)")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="hive")
@click.pass_context
def main(ctx: click.Context, root: str, verbose: bool) -> None:
    """hive: plan-driven tasks, each in its own git worktree.

    \b
    WORKFLOW:
      1. hive feature-create my-feature
      2. write .hive/features/my-feature/plan.md
      3. hive sync my-feature
      4. hive start my-feature 01-setup
      5. hive complete my-feature 01-setup --summary "..."
      6. hive merge my-feature 01-setup --cleanup
    """
    log.set_verbose(verbose)
    detected = detect_context(Path(root).resolve() if root else Path.cwd())
    project_root = str(detected.project_root) if (root or detected.is_worktree) else ""
    try:
        cfg = Config(project_root=project_root, verbose=verbose)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from None
    log.debug(f"project root: {cfg.project_root}")
    ctx.obj = App(config=cfg, context=detected)


# ── Features ─────────────────────────────────────────────────────────


@main.command("feature-create")
@click.argument("name")
@click.option("--ticket", default=None, help="External ticket reference")
@pass_app
def feature_create(app: App, name: str, ticket: str | None) -> None:
    """Create a feature in the planning state."""
    app.features.create(name, ticket)
    log.success(f"Created feature {name}")


@main.command()
@pass_app
def features(app: App) -> None:
    """List features with their status and task counts."""
    names = app.features.list()
    if not names:
        log.info("No features yet.")
        return
    for name in names:
        info = app.features.info(name)
        if info is None:
            continue
        done = sum(1 for t in info.tasks if t.status == TaskState.DONE)
        log.console.print(f"{name}  [cyan]{info.status.value}[/cyan]  {done}/{len(info.tasks)} tasks done")


@main.command("context-write")
@click.argument("feature")
@click.argument("name")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@pass_app
def context_write(app: App, feature: str, name: str, source) -> None:
    """Save a context note for FEATURE from SOURCE (default: stdin)."""
    path = app.context_notes.write(feature, name, source.read())
    log.success(f"Wrote {path.name}")


@main.command()
@click.argument("feature", required=False)
@click.argument("name", required=False)
@pass_app
def context(app: App, feature: str | None, name: str | None) -> None:
    """Print one context note, or all of them compiled into one document."""
    feature = app.feature(feature)
    if name is None:
        text = app.context_notes.compile(feature)
        if not text:
            log.info(f"No context notes in {feature}.")
            return
    else:
        text = app.context_notes.read(feature, name)
        if text is None:
            raise NotFoundError(f"Context note '{name}' not found in feature '{feature}'")
    click.echo(text)


# ── Tasks ────────────────────────────────────────────────────────────


@main.command()
@click.argument("feature", required=False)
@pass_app
def sync(app: App, feature: str | None) -> None:
    """Create, keep and remove tasks to match the feature's plan.md."""
    feature = app.feature(feature)
    result = app.tasks.sync(feature)
    for folder in result.created:
        log.console.print(f"  [green]+[/green] {folder}")
    for folder in result.removed:
        log.console.print(f"  [red]-[/red] {folder}")
    log.success(
        f"Synced {feature}: {len(result.created)} created, {len(result.removed)} removed, "
        f"{len(result.kept)} kept, {len(result.manual)} manual"
    )


@main.command()
@click.argument("feature", required=False)
@pass_app
def tasks(app: App, feature: str | None) -> None:
    """List a feature's tasks."""
    feature = app.feature(feature)
    listed = app.tasks.list(feature)
    if not listed:
        log.info(f"No tasks in {feature}. Run 'hive sync {feature}'.")
        return
    for task in listed:
        style = _STATUS_STYLE.get(task.status, "white")
        line = f"{task.folder}  [{style}]{task.status.value}[/{style}]"
        if task.summary:
            line += f"  {task.summary}"
        log.console.print(line)


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("--status", type=click.Choice([s.value for s in TaskState]), default=None)
@click.option("--summary", default=None)
@pass_app
def update(app: App, feature: str | None, task: str | None, status: str | None, summary: str | None) -> None:
    """Change a task's status and/or summary."""
    feature, task = app.feature_task(feature, task)
    if status is None and summary is None:
        raise click.UsageError("Nothing to update: pass --status and/or --summary.")
    record = app.tasks.update(feature, task, status=status, summary=summary)
    log.success(f"{feature}/{task}: {record.status.value}")


@main.command()
@click.argument("feature", required=False)
@pass_app
def runnable(app: App, feature: str | None) -> None:
    """Show pending tasks that can start now and the ones still blocked."""
    listed = app.tasks.list(app.feature(feature))
    sched = Scheduler(listed)
    ready = sched.get_ready()
    blocked = [t.folder for t in listed if t.status == TaskState.PENDING and t.folder not in ready]

    log.console.print("[bold]Runnable:[/bold]")
    for folder in ready:
        log.console.print(f"  {folder}")
    if not ready:
        log.console.print("  [dim](none)[/dim]")
    if blocked:
        log.console.print("[bold]Blocked:[/bold]")
        for folder in blocked:
            log.console.print(f"  {folder}  [dim]{sched.explain_block(folder)}[/dim]")
    if sched.check_deadlock():
        log.warn("Deadlock: pending tasks remain but none can start and none is in progress")


# ── Execution ────────────────────────────────────────────────────────


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("--base", "base_branch", default=None, help="Branch or commit to start from (default: HEAD)")
@pass_app
def start(app: App, feature: str | None, task: str | None, base_branch: str | None) -> None:
    """Create the task's worktree and mark it in progress."""
    feature, task = app.feature_task(feature, task)
    worktree = app.execution.start(feature, task, base_branch)
    click.echo(str(worktree.path))


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("--base", "base_commit", default=None, help="Compare against this commit")
@click.option("--patch", "show_patch", is_flag=True, help="Print the full diff")
@pass_app
def diff(app: App, feature: str | None, task: str | None, base_commit: str | None, show_patch: bool) -> None:
    """Summarize (or print) the changes made in a task's worktree."""
    feature, task = app.feature_task(feature, task)
    result = app.worktrees.get_diff(feature, task, base_commit)
    if not result.has_diff:
        log.info("No changes.")
        return
    if show_patch:
        click.echo(result.diff_content, nl=False)
        return
    for path in result.files_changed:
        log.console.print(f"  {path}")
    log.info(
        f"{len(result.files_changed)} file(s) changed, "
        f"{result.insertions} insertion(s), {result.deletions} deletion(s)"
    )


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("-m", "--message", default=None, help="Commit message")
@pass_app
def commit(app: App, feature: str | None, task: str | None, message: str | None) -> None:
    """Commit everything in a task's worktree."""
    feature, task = app.feature_task(feature, task)
    result = app.worktrees.commit_changes(feature, task, message)
    if result.nothing_to_commit:
        log.info(f"Nothing to commit (HEAD {result.sha[:8]})")
        return
    if not result.committed:
        log.error(result.message or "Commit failed")
        sys.exit(1)
    log.success(f"Committed {result.sha[:8]}")


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("--summary", required=True, help="One-line completion summary")
@click.option("--report-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("-m", "--message", default=None, help="Commit message")
@pass_app
def complete(
    app: App,
    feature: str | None,
    task: str | None,
    summary: str,
    report_file: str | None,
    message: str | None,
) -> None:
    """Commit the worktree and mark the task done."""
    feature, task = app.feature_task(feature, task)
    report = read_text(report_file) if report_file else None
    app.execution.complete(feature, task, summary, report=report, message=message)


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.option("--strategy", type=click.Choice(MERGE_STRATEGIES), default=None, help="Default: HIVE_MERGE_STRATEGY or merge")
@click.option("--cleanup", is_flag=True, help="Remove the worktree and branch after a successful merge")
@pass_app
def merge(app: App, feature: str | None, task: str | None, strategy: str | None, cleanup: bool) -> None:
    """Integrate a task branch into the current branch."""
    feature, task = app.feature_task(feature, task)
    result = app.execution.integrate(feature, task, strategy, cleanup=cleanup)
    if not result.success:
        log.error(result.error or "Merge failed")
        for path in result.conflicts:
            log.console.print(f"  [red]conflict[/red] {path}")
        sys.exit(1)
    log.success(f"Merged {task} ({result.strategy}) at {(result.sha or '')[:8]}")


@main.command()
@click.argument("feature", required=False)
@click.argument("task", required=False)
@click.confirmation_option(prompt="Discard the task's worktree and branch?")
@pass_app
def abort(app: App, feature: str | None, task: str | None) -> None:
    """Discard a task's worktree and branch and reset it to pending."""
    feature, task = app.feature_task(feature, task)
    app.execution.abort(feature, task)


@main.command()
@click.argument("feature", required=False)
@pass_app
def cleanup(app: App, feature: str | None) -> None:
    """Remove worktrees whose git metadata is gone."""
    result = app.worktrees.cleanup(feature)
    for path in result.removed:
        log.console.print(f"  [red]-[/red] {path}")
    log.success(f"Removed {len(result.removed)} orphaned worktree(s)")
