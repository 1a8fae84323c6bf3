"""External command execution for trust store and privileged file operations."""

import logging
import shutil
import subprocess
import sys
from collections.abc import Sequence

from .errors import CommandError, MissingDependencyError, PermissionDeniedError

logger = logging.getLogger(__name__)

SUDO_PREFIX = ("sudo",)


def command_exists(name: str) -> bool:
    """Return True if an executable is available on PATH."""
    return shutil.which(name) is not None


def run(
    command: Sequence[str],
    *,
    input: bytes | None = None,
    check: bool = True,
) -> bytes:
    """Run a command and return its raw stdout.

    Args:
        command: Program and arguments, never passed through a shell
        input: Optional bytes fed to stdin
        check: Raise CommandError on a non-zero exit status

    Returns:
        Standard output bytes

    Raises:
        MissingDependencyError: If the program is not installed
        CommandError: If the command fails and check is True
    """
    argv = [str(part) for part in command]
    logger.debug("exec: %s", " ".join(argv))
    try:
        completed = subprocess.run(argv, input=input, capture_output=True)
    except FileNotFoundError as e:
        raise MissingDependencyError(
            f"unable to find '{argv[0]}' - make sure it is installed and available in your PATH"
        ) from e

    if check and completed.returncode != 0:
        output = (completed.stdout + completed.stderr).decode("utf-8", errors="replace")
        raise CommandError(argv, completed.returncode, output.strip())
    return completed.stdout


def run_text(command: Sequence[str], *, check: bool = True) -> str:
    """Run a command and return its stripped stdout as text."""
    return run(command, check=check).decode("utf-8", errors="replace").strip()


def sudo(
    command: Sequence[str],
    *,
    input: bytes | None = None,
    prefix: Sequence[str] = SUDO_PREFIX,
    reason: str = "",
) -> bytes:
    """Run a command with elevated privileges.

    A declined password prompt or a failing privileged command surfaces as
    PermissionDeniedError instead of a raw CommandError.

    Args:
        command: Program and arguments
        input: Optional bytes fed to stdin
        prefix: Elevation prefix, empty when already privileged
        reason: What the elevation is needed for, shown to the user on failure
    """
    try:
        return run([*prefix, *command], input=input)
    except CommandError as e:
        why = f" to {reason}" if reason else ""
        raise PermissionDeniedError(
            f"devcert needs administrator rights{why}. "
            f"'{' '.join(e.command)}' failed with exit status {e.returncode}. "
            "Re-run and accept the password prompt, or run as an administrator.\n"
            f"{e.output}".rstrip()
        ) from e


def elevated_windows(command_line: str, reason: str = "") -> None:
    """Run a cmd.exe command line through an elevated (UAC) PowerShell."""
    escaped = command_line.replace("'", "''")
    powershell = [
        "powershell",
        "-NoProfile",
        "-Command",
        f"Start-Process -FilePath cmd -ArgumentList '/c {escaped}' -Verb RunAs -Wait -WindowStyle Hidden",
    ]
    try:
        run(powershell)
    except CommandError as e:
        why = f" to {reason}" if reason else ""
        raise PermissionDeniedError(
            f"devcert needs administrator rights{why}; the elevation prompt was declined or failed."
        ) from e


def open_url(browser_command: Sequence[str], url: str) -> None:
    """Launch a browser at url without waiting for it to exit."""
    argv = [*browser_command, url]
    logger.debug("launching: %s", " ".join(argv))
    if sys.platform == "win32":
        subprocess.Popen(argv, shell=False, creationflags=getattr(subprocess, "DETACHED_PROCESS", 0))
    else:
        subprocess.Popen(argv, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, start_new_session=True)
