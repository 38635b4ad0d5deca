"""Filesystem creation for target partitions.

Supported Filesystems:
    ext4/ext3/ext2: Linux native filesystems, created with eager inode table
                    and journal initialization so the new root does not keep
                    initializing metadata in the background after first boot
    btrfs:          Copy-on-write filesystem
    vfat:           FAT32, for completeness; not a valid root filesystem

Formatting is destructive and irreversible: all prior content of the
partition is lost. The partition itself must already exist; no partition
table is touched here.

Example:
    >>> from rpi_multiboot.storage.format import format_partition
    >>> format_partition("/dev/sdb2", "ext4")
"""

from typing import List, Optional

from rpi_multiboot.logging import LoggerFactory

from .commands import run_checked_command
from .exceptions import InvalidArgumentError
from .mount import validate_device_path


log = LoggerFactory.for_storage()

EAGER_EXT_OPTIONS = "lazy_itable_init=0,lazy_journal_init=0"
SUPPORTED_FILESYSTEMS = ("ext4", "ext3", "ext2", "btrfs", "vfat")


def build_format_command(
    partition_path: str, filesystem: str, label: Optional[str] = None
) -> List[str]:
    """Build the mkfs command line for ``filesystem``.

    Raises:
        InvalidArgumentError: If the filesystem type is not supported
    """
    filesystem = filesystem.lower()

    if filesystem in ("ext4", "ext3", "ext2"):
        command = [f"mkfs.{filesystem}", "-F", "-E", EAGER_EXT_OPTIONS]
        if label:
            command.extend(["-L", label])

    elif filesystem == "btrfs":
        command = ["mkfs.btrfs", "-f"]
        if label:
            command.extend(["-L", label])

    elif filesystem == "vfat":
        command = ["mkfs.vfat", "-F", "32"]
        if label:
            command.extend(["-n", label])

    else:
        raise InvalidArgumentError(f"Unsupported filesystem type: {filesystem}")

    command.append(partition_path)
    return command


def format_partition(
    partition_path: str, filesystem: str, label: Optional[str] = None
) -> None:
    """Format ``partition_path`` with ``filesystem``.

    Raises:
        InvalidArgumentError: If the device or filesystem type is invalid
        ExternalToolError: If mkfs fails
    """
    partition_path = validate_device_path(partition_path)
    command = build_format_command(partition_path, filesystem, label)
    log.info(f"Formatting {partition_path} as {filesystem.lower()}")
    run_checked_command(command)
