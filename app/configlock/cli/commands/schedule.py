"""Schedule command implementation.

Shows or changes the enforcement schedule and the default temporary
unlock duration.
"""

from typing import Annotated

import typer

from configlock.cli.common import get_store, load_config, reload_daemon, update_config
from configlock.core.schedule import (
    describe_schedule,
    parse_days,
    parse_time_range,
    validate_cron,
)
from configlock.models.config import Config, ScheduleConfig
from configlock.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or edit lock hours.",
    invoke_without_command=True,
)


def _new_schedule(
    current: ScheduleConfig,
    time_range: str | None,
    days: str | None,
    cron: str | None,
) -> ScheduleConfig | None:
    """Merge command-line values into the current schedule.

    Returns:
        The new schedule, or None if no schedule option was given.

    Raises:
        ValueError: If a value is invalid or the combination is ambiguous.
    """
    if cron is not None:
        if time_range is not None or days is not None:
            msg = "--cron cannot be combined with --time or --days"
            raise ValueError(msg)
        return ScheduleConfig.from_cron(validate_cron(cron))

    if time_range is None and days is None:
        return None

    if time_range is not None:
        start_time, end_time = parse_time_range(time_range)
    elif current.is_cron:
        msg = "switching from cron to a time range requires --time"
        raise ValueError(msg)
    else:
        start_time, end_time = current.start_time or "", current.end_time or ""

    if days is not None:
        day_list = parse_days(days)
    else:
        day_list = list(current.days or [1, 2, 3, 4, 5])

    return ScheduleConfig.time_range(start_time, end_time, day_list)


def _show(config: Config) -> None:
    console.print(f"[bold]Lock hours:[/bold] {describe_schedule(config.schedule)}")
    console.print(
        f"[bold]Temporary unlock:[/bold] {config.temp_exclusion_minutes} minutes"
    )


@app.callback(invoke_without_command=True)
def schedule(
    ctx: typer.Context,
    time_range: Annotated[
        str | None,
        typer.Option(
            "--time",
            "-t",
            help="Lock hours, e.g. 08:00-17:00, 0800-1700 or 8-17.",
        ),
    ] = None,
    days: Annotated[
        str | None,
        typer.Option(
            "--days",
            "-d",
            help="Lock days, e.g. 1-5 (Mon-Fri) or 1,3,5.",
        ),
    ] = None,
    cron: Annotated[
        str | None,
        typer.Option(
            "--cron",
            help="Cron expression marking the window, replacing --time/--days.",
        ),
    ] = None,
    duration: Annotated[
        int | None,
        typer.Option(
            "--duration",
            min=1,
            help="Default temporary unlock duration in minutes.",
        ),
    ] = None,
) -> None:
    """Show or change the enforcement schedule.

    Without options the current schedule is printed. A running daemon is
    told to reload after a change.

    Examples:
        configlock schedule                       # Show current settings
        configlock schedule --time 9-18
        configlock schedule --days 1-6
        configlock schedule --cron "* 9-17 * * 1-5"
        configlock schedule --duration 10
    """
    if ctx.invoked_subcommand is not None:
        return

    store = get_store()
    config = load_config(store)

    try:
        new_schedule = _new_schedule(config.schedule, time_range, days, cron)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if new_schedule is None and duration is None:
        _show(config)
        return

    def apply(cfg: Config) -> None:
        if new_schedule is not None:
            cfg.schedule = new_schedule
        if duration is not None:
            cfg.temp_exclusion_minutes = duration

    config = update_config(store, apply)
    print_success("Schedule updated")
    _show(config)

    if not reload_daemon():
        print_info("Daemon is not running. Changes take effect when it starts.")
