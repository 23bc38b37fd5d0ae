"""Shell execution utilities.

Provides safe subprocess execution with proper error handling.
"""

import subprocess
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a shell command execution.

    Attributes:
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        returncode: Exit code of the command.
    """

    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined, stripped stdout and stderr for error messages."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def run_command(
    args: list[str],
    *,
    check: bool = False,
    timeout: float | None = 60.0,
    cwd: str | None = None,
) -> CommandResult:
    """Execute a shell command and return the result.

    Args:
        args: Command and arguments to execute.
        check: If True, raise CalledProcessError on non-zero exit.
        timeout: Maximum time in seconds to wait for command. None waits
            until the command exits.
        cwd: Working directory for the command. If None, uses current directory.

    Returns:
        CommandResult with stdout, stderr, and returncode.

    Raises:
        subprocess.CalledProcessError: If check=True and command fails.
        subprocess.TimeoutExpired: If command exceeds timeout.
        FileNotFoundError: If command executable is not found.
    """
    result = subprocess.run(
        args,
        capture_output=True,
        text=True,
        check=check,
        timeout=timeout,
        cwd=cwd,
    )
    return CommandResult(
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )


def try_command(args: list[str], *, timeout: float | None = 60.0) -> CommandResult:
    """Execute a command, folding launch failures into a failed result.

    A missing executable or a permission problem while spawning is reported
    as returncode 127 with the OS error in stderr, so callers can treat
    "tool absent" and "tool failed" the same way.

    Args:
        args: Command and arguments to execute.
        timeout: Maximum time in seconds to wait for command.

    Returns:
        CommandResult; never raises for launch errors.
    """
    try:
        return run_command(args, timeout=timeout)
    except (FileNotFoundError, PermissionError) as e:
        return CommandResult(stdout="", stderr=str(e), returncode=127)
    except subprocess.TimeoutExpired as e:
        return CommandResult(stdout="", stderr=f"timed out after {e.timeout}s", returncode=124)
