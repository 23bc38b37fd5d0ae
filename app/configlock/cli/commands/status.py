"""Status command implementation.

Summarizes the schedule, the enforcement window, the daemon and active
temporary unlocks.
"""

import typer

from configlock.cli.common import get_store, load_config
from configlock.core.exclusions import ExclusionSet, local_now
from configlock.core.schedule import describe_schedule, evaluator_for
from configlock.daemon.process import running_daemon_pid
from configlock.utils.formatting import console, format_duration

app = typer.Typer(
    help="Show current status.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def status(ctx: typer.Context) -> None:
    """Show the schedule, window state, daemon state and temporary unlocks.

    Examples:
        configlock status
    """
    if ctx.invoked_subcommand is not None:
        return

    config = load_config(get_store())
    now = local_now()
    evaluator = evaluator_for(config.schedule)
    within = evaluator.is_within_window(now)
    pid = running_daemon_pid()

    console.print(f"[bold]Lock hours:[/bold] {describe_schedule(config.schedule)}")
    if not evaluator.valid:
        console.print("[warning]Schedule is invalid; paths are never locked.[/warning]")

    if within:
        console.print("[bold]Window:[/bold] [locked]open[/locked]")
    else:
        until = evaluator.time_until_next_window(now)
        console.print(
            f"[bold]Window:[/bold] [unlocked]closed[/unlocked] "
            f"[muted](opens in {format_duration(until)})[/muted]"
        )

    if pid is None:
        hint = " Run 'configlock daemon'." if within else ""
        console.print(f"[bold]Daemon:[/bold] [warning]not running[/warning]{hint}")
    elif within:
        console.print(f"[bold]Daemon:[/bold] [success]enforcing[/success] [muted](pid {pid})[/muted]")
    else:
        console.print(f"[bold]Daemon:[/bold] [info]idle[/info] [muted](pid {pid})[/muted]")

    console.print()
    console.print(f"Managed paths: {len(config.managed_paths)}")
    if config.managed_paths:
        console.print("[muted]Use 'configlock list' to see them.[/muted]")

    active = ExclusionSet(config.exclusions).active()
    if active:
        console.print(f"Active temporary unlocks: {len(active)}")
        for path, expiry in sorted(active.items()):
            console.print(f"  - {path} [muted](expires in {format_duration(expiry - now)})[/muted]")
