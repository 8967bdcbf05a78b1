"""Subprocess helpers for the platform collaborators (sfdisk, ip)."""

from __future__ import annotations

import subprocess
from typing import Sequence

from hostagent.logging import LoggerFactory


log = LoggerFactory.for_system()


def run_command(
    command: Sequence[str],
    check: bool = True,
    input_text: str | None = None,
    log_output: bool = True,
    log_command: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command and capture its output as text.

    Args:
        command: Argument vector, e.g. ["sfdisk", "-d", "/dev/sdb"]
        check: Raise CalledProcessError on a non-zero exit code
        input_text: Text fed to the command's stdin
        log_output: Log stdout/stderr at DEBUG even when the command succeeds
        log_command: Log the command line and its return code

    Returns:
        The completed process

    Raises:
        subprocess.CalledProcessError: If check is set and the command fails
        OSError: If the executable cannot be started
    """
    command = list(command)
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command, check=check, input=input_text, text=True, capture_output=True
        )
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result

