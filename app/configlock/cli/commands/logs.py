"""Logs command implementation.

Prints the tail of the daemon log, optionally following new lines.
"""

import time
from typing import Annotated

import typer

from configlock.core.log import read_log_tail
from configlock.core.paths import get_log_path
from configlock.utils.formatting import console, print_error, print_info

app = typer.Typer(
    help="Show the daemon log.",
    invoke_without_command=True,
)

# Seconds between reads while following
_FOLLOW_INTERVAL: float = 0.5


@app.callback(invoke_without_command=True)
def logs(
    ctx: typer.Context,
    lines: Annotated[
        int,
        typer.Option(
            "--lines",
            "-n",
            min=0,
            help="Number of lines to show.",
        ),
    ] = 50,
    follow: Annotated[
        bool,
        typer.Option(
            "--follow",
            "-f",
            help="Keep printing new lines until Ctrl+C.",
        ),
    ] = False,
) -> None:
    """Show lock changes and daemon activity from the log file.

    Examples:
        configlock logs
        configlock logs -n 200
        configlock logs --follow
    """
    if ctx.invoked_subcommand is not None:
        return

    log_path = get_log_path()
    if not log_path.exists():
        print_error(f"Log file does not exist: {log_path}")
        raise typer.Exit(code=1)

    for line in read_log_tail(lines, log_path):
        console.print(line, markup=False, highlight=False)

    if not follow:
        return

    print_info(f"Following {log_path} (Ctrl+C to stop)")
    try:
        with log_path.open(encoding="utf-8", errors="replace") as f:
            f.seek(0, 2)
            while True:
                line = f.readline()
                if line:
                    console.print(line.rstrip("\n"), markup=False, highlight=False)
                else:
                    time.sleep(_FOLLOW_INTERVAL)
    except KeyboardInterrupt:
        console.print()
