"""Safety validation for destructive operations.

Validation functions raise specific exceptions instead of returning booleans,
so callers cannot accidentally proceed past a failed check.

Example:
    from rpi_multiboot.storage.validation import validate_target

    target = validate_target("/dev/sdb2", boot_mount="/boot")
    # Safe to format target
"""

import os
from typing import Optional

from .devices import get_boot_device, get_mountpoints, get_root_device, is_block_device
from .exceptions import InvalidArgumentError, ResourceBusyError
from .mount import validate_device_path


def _same_device(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left == right or os.path.realpath(left) == os.path.realpath(right)


def validate_not_system_partition(device: str, boot_mount: str) -> None:
    """Refuse the active root and the live boot partition.

    Raises:
        ResourceBusyError: If ``device`` is mounted at ``/`` or ``boot_mount``
    """
    if _same_device(device, get_root_device()):
        raise ResourceBusyError(device, "partition is the active root")
    if _same_device(device, get_boot_device(boot_mount)):
        raise ResourceBusyError(device, "partition is the live boot partition")


def validate_target(device: Optional[str], boot_mount: str) -> str:
    """Validate a provisioning target and return its normalized path.

    Raises:
        InvalidArgumentError: If the target is missing or not a block device
        ResourceBusyError: If the target is mounted, the active root, or the
            boot partition
    """
    if not device:
        raise InvalidArgumentError("A target partition is required")
    device = validate_device_path(device)
    if not is_block_device(device):
        raise InvalidArgumentError(f"{device} is not a block device")
    validate_not_system_partition(device, boot_mount)
    mountpoints = get_mountpoints(device)
    if mountpoints:
        raise ResourceBusyError(device, f"mounted at {', '.join(mountpoints)}")
    return device
