"""Command execution for external tools (mkfs, mount, rsync, labelers).

Every external tool call is a blocking step. ``run_checked_command`` raises
``ExternalToolError`` on a non-zero exit so that callers stop immediately.
"""

import subprocess
from typing import Optional, Sequence

from rpi_multiboot.logging import LoggerFactory
from rpi_multiboot.storage.exceptions import ExternalToolError


log = LoggerFactory.for_storage()


def run_command(command: Sequence[str], check=True, log_output=True, log_command=True):
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(list(command), check=check, text=True, capture_output=True)
    except FileNotFoundError as error:
        raise ExternalToolError(command, None, f"{command[0]} not found") from error
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.bind(tags=["storage", "command-output"]).trace(
            f"stdout: {result.stdout.strip()}"
        )
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def run_checked_command(command: Sequence[str], input_text: Optional[str] = None) -> str:
    """Run a command and raise ExternalToolError if it fails.

    Returns:
        The command's stdout.
    """
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            list(command),
            input=input_text,
            text=True,
            capture_output=True,
        )
    except FileNotFoundError as error:
        raise ExternalToolError(command, None, f"{command[0]} not found") from error
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        log.error(f"Command failed ({' '.join(command)}): rc={result.returncode}")
        raise ExternalToolError(command, result.returncode, stderr or stdout)
    return result.stdout or ""
