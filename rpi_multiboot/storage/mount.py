"""Mounting utilities with secure subprocess handling.

All commands are run with argument lists, never through a shell. Device
paths must live under ``/dev/`` and must not contain shell metacharacters.

Functions:
    - create_mountpoint(): Fresh, uniquely named temporary mount directory
    - mount_partition(): Mount a device at a directory
    - mount_fstab_entry(): Mount a mountpoint declared in /etc/fstab
    - unmount_partition(): Unmount a mountpoint
    - temporary_mount(): Context manager that mounts and always cleans up
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from rpi_multiboot.domain import normalize_device
from rpi_multiboot.logging import LoggerFactory

from .commands import run_checked_command
from .exceptions import InvalidArgumentError


log = LoggerFactory.for_storage()

MOUNT_PREFIX = "rpi-multiboot-"
_FORBIDDEN_CHARS = (";", "&", "|", "$", "`", "\n", "\r", " ")


def validate_device_path(device: str) -> str:
    """Return the normalized ``/dev/`` path or raise InvalidArgumentError."""
    if not isinstance(device, str) or not device.strip():
        raise InvalidArgumentError("A device path is required")
    if any(char in device for char in _FORBIDDEN_CHARS):
        raise InvalidArgumentError(f"Device path contains invalid characters: {device}")
    device = normalize_device(device)
    if ".." in Path(device).parts:
        raise InvalidArgumentError(f"Invalid device path: {device}")
    return device


def create_mountpoint(base: str = "/mnt") -> str:
    """Create a fresh, uniquely named mount directory under ``base``."""
    os.makedirs(base, exist_ok=True)
    return tempfile.mkdtemp(prefix=MOUNT_PREFIX, dir=base)


def mount_partition(device: str, mountpoint: str, read_only: bool = False) -> None:
    """Mount ``device`` at ``mountpoint``.

    Raises:
        InvalidArgumentError: If the device path is malformed
        ExternalToolError: If mount fails
    """
    device = validate_device_path(device)
    command = ["mount"]
    if read_only:
        command.extend(["-o", "ro"])
    command.extend([device, mountpoint])
    log.debug(f"Mounting {device} at {mountpoint}")
    run_checked_command(command)


def mount_fstab_entry(mountpoint: str) -> None:
    """Mount a mountpoint using its /etc/fstab entry."""
    log.debug(f"Mounting {mountpoint} from fstab")
    run_checked_command(["mount", mountpoint])


def unmount_partition(mountpoint: str) -> None:
    log.debug(f"Unmounting {mountpoint}")
    run_checked_command(["umount", mountpoint])


def remove_mountpoint(mountpoint: str) -> None:
    try:
        os.rmdir(mountpoint)
    except OSError as error:
        log.warning(f"Could not remove mount directory {mountpoint}: {error}")


@contextmanager
def temporary_mount(
    device: str, base: str = "/mnt", read_only: bool = False
) -> Iterator[str]:
    """Mount ``device`` at a fresh directory and unmount it afterwards.

    Example:
        with temporary_mount("/dev/sdb2", read_only=True) as root:
            restore_boot_config(config, Path(root) / "boot.shadow")
    """
    mountpoint = create_mountpoint(base)
    try:
        mount_partition(device, mountpoint, read_only=read_only)
    except Exception:
        remove_mountpoint(mountpoint)
        raise
    try:
        yield mountpoint
    finally:
        unmount_partition(mountpoint)
        remove_mountpoint(mountpoint)
