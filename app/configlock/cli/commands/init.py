"""Init command implementation.

Creates the config file with a schedule and puts the config file itself
under management.
"""

from typing import Annotated

import typer

from configlock.cli.common import get_store, is_within_window
from configlock.core.config import ConfigError
from configlock.core.paths import ensure_config_dir
from configlock.core.schedule import (
    describe_schedule,
    parse_days,
    parse_time_range,
    validate_cron,
)
from configlock.lockers import get_locker
from configlock.lockers.base import LockError
from configlock.models.config import Config, ScheduleConfig
from configlock.utils.formatting import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Create the configuration file.",
    invoke_without_command=True,
)


def _build_schedule(time_range: str, days: str, cron: str | None) -> ScheduleConfig:
    """Build the schedule from command-line values.

    Raises:
        ValueError: If any value cannot be parsed.
    """
    if cron is not None:
        return ScheduleConfig.from_cron(validate_cron(cron))
    start_time, end_time = parse_time_range(time_range)
    return ScheduleConfig.time_range(start_time, end_time, parse_days(days))


@app.callback(invoke_without_command=True)
def init_config(
    ctx: typer.Context,
    time_range: Annotated[
        str,
        typer.Option(
            "--time",
            "-t",
            help="Lock hours, e.g. 08:00-17:00, 0800-1700 or 8-17.",
        ),
    ] = "08:00-17:00",
    days: Annotated[
        str,
        typer.Option(
            "--days",
            "-d",
            help="Lock days, e.g. 1-5 (Mon-Fri) or 1,3,5.",
        ),
    ] = "1-5",
    cron: Annotated[
        str | None,
        typer.Option(
            "--cron",
            help="Cron expression marking the window instead of --time/--days.",
        ),
    ] = None,
    duration: Annotated[
        int,
        typer.Option(
            "--duration",
            min=1,
            help="Default temporary unlock duration in minutes.",
        ),
    ] = 5,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing config, keeping its managed paths.",
        ),
    ] = False,
) -> None:
    """Initialize configlock.

    Writes ~/.config/configlock/config.toml and adds the config file to the
    managed paths so that it is protected during lock hours as well.

    Examples:
        configlock init                          # Mon-Fri 08:00-17:00
        configlock init --time 9-18 --days 1-6
        configlock init --cron "* 9-17 * * 1-5"
        configlock init --force                  # Re-initialize
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        schedule = _build_schedule(time_range, days, cron)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    store = get_store()
    config_path = str(store.path)

    try:
        ensure_config_dir()
    except RuntimeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    try:
        with store.exclusive():
            existing_paths: list[str] = []
            if store.exists():
                if not force:
                    print_error(f"Config already exists: {store.path}")
                    print_info("Use --force to re-initialize.")
                    raise typer.Exit(code=1)
                try:
                    existing_paths = store.load().managed_paths
                except ConfigError as e:
                    print_warning(f"Existing config is unreadable, starting fresh: {e}")
                else:
                    print_info(f"Preserving {len(existing_paths)} existing managed path(s)")

            config = Config(schedule=schedule, temp_exclusion_minutes=duration)
            config.add_path(config_path)
            for path in existing_paths:
                config.add_path(path)
            store.save(config)
    except ConfigError as e:
        print_error(f"Failed to save config: {e}")
        raise typer.Exit(code=1) from e

    print_success(f"Config created: {store.path}")
    console.print(f"  Schedule: [info]{describe_schedule(config.schedule)}[/info]")
    console.print(f"  Temporary unlock: [muted]{config.temp_exclusion_minutes} minutes[/muted]")

    if is_within_window(config):
        print_info("Within lock hours, locking the config file...")
        try:
            result = get_locker().lock(config_path)
        except LockError as e:
            print_warning(f"Failed to lock config file: {e}")
        else:
            if not result.success:
                print_warning(f"Failed to lock config file: {result.error}")
    else:
        print_info("Outside lock hours. The config file will be locked when they begin.")

    console.print()
    print_info("Add paths with 'configlock add <path>', then run 'configlock daemon'.")
