"""Custom exceptions for multi-boot operations.

Every exception carries an ``exit_code`` so the CLI can report a distinct
process status per failure class, which lets callers script retries.

Exception Hierarchy:
    MultibootError (base, exit 1)
        ├── InvalidArgumentError (exit 2)
        ├── ResourceBusyError (exit 3)
        ├── ExternalToolError (exit 4)
        ├── MissingIdentityError (exit 5)
        └── PartialStateError (exit 6)

Usage:
    from rpi_multiboot.storage.exceptions import ResourceBusyError

    if is_mounted(target):
        raise ResourceBusyError(target, "partition is mounted")
"""

from __future__ import annotations

from typing import Sequence


class MultibootError(Exception):
    """Base exception for all multi-boot operations."""

    exit_code = 1


class InvalidArgumentError(MultibootError):
    """A required target or operation argument is missing or malformed."""

    exit_code = 2


class ResourceBusyError(MultibootError):
    """Target partition is mounted or otherwise in active use."""

    exit_code = 3

    def __init__(self, device_name: str, reason: str = ""):
        self.device_name = device_name
        self.reason = reason
        msg = f"Device {device_name} is busy"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ExternalToolError(MultibootError):
    """An external tool (formatter, mounter, rsync, labeler) returned failure."""

    exit_code = 4

    def __init__(
        self,
        command: Sequence[str],
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({' '.join(self.command)})"
        if returncode is not None:
            msg += f" with exit code {returncode}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class MissingIdentityError(MultibootError):
    """OS identity fields are absent when deriving a label."""

    exit_code = 5

    def __init__(self, path: str, missing: Sequence[str] = ()):
        self.path = path
        self.missing = list(missing)
        if self.missing:
            msg = f"Missing OS identity field(s) {', '.join(self.missing)} in {path}"
        else:
            msg = f"OS identity file not found: {path}"
        super().__init__(msg)


class PartialStateError(MultibootError):
    """A provisioning run aborted mid-sequence.

    The target is left mounted and inconsistent. There is no automatic
    recovery: the target has to be reformatted and provisioned again.
    """

    exit_code = 6

    def __init__(self, step: str, device: str, mountpoint: str | None, cause: Exception):
        self.step = step
        self.device = device
        self.mountpoint = mountpoint
        self.cause = cause
        msg = f"Provisioning of {device} aborted at step '{step}': {cause}"
        if mountpoint:
            msg += f" (left mounted at {mountpoint})"
        super().__init__(msg)
