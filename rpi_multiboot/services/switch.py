"""Switching which root partition the next boot uses.

The firmware boots whatever the live boot partition describes, so switching
means: save the live boot partition into the current root's shadow
directory, then restore the chosen partition's shadow directory onto the
live boot partition. The chosen partition is only mounted read-only.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from rpi_multiboot.boot.patchers import Cmdline
from rpi_multiboot.boot.shadow import backup_boot_config, restore_boot_config
from rpi_multiboot.config.settings import MultibootConfig
from rpi_multiboot.domain import Partition, PartitionRole, normalize_device
from rpi_multiboot.logging import operation_context
from rpi_multiboot.storage.devices import (
    get_boot_device,
    get_mountpoints,
    get_root_device,
    list_partitions,
)
from rpi_multiboot.storage.exceptions import InvalidArgumentError, ResourceBusyError
from rpi_multiboot.storage.mount import temporary_mount, validate_device_path


ROOT_FILESYSTEMS = ("ext2", "ext3", "ext4", "btrfs")


def read_live_root(config: MultibootConfig) -> Optional[str]:
    """Return the ``root=`` value of the live boot partition's cmdline."""
    try:
        text = config.live_cmdline().read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return None
    return Cmdline.parse(text).root


def switch_boot(config: MultibootConfig, target: str) -> None:
    """Make ``target`` the root partition used at next boot.

    Raises:
        InvalidArgumentError: If the target is malformed or has no shadow directory
        ResourceBusyError: If the target is the boot partition or mounted elsewhere
        ExternalToolError: If mounting or rsync fails
    """
    target = validate_device_path(target)
    if target == get_boot_device(config.boot_mount):
        raise ResourceBusyError(target, "partition is the live boot partition")

    with operation_context("switch", target=target) as log:
        root_device = get_root_device()
        backup_boot_config(config)

        if target == root_device:
            log.info(f"{target} is the active root, restoring its own shadow directory")
            restore_boot_config(config, config.shadow_dir("/"))
        else:
            mountpoints = get_mountpoints(target)
            if mountpoints:
                raise ResourceBusyError(target, f"mounted at {', '.join(mountpoints)}")
            with temporary_mount(target, config.mount_base, read_only=True) as root:
                restore_boot_config(config, config.shadow_dir(root))

        live_root = read_live_root(config)
        if live_root is None or normalize_device(live_root) != target:
            log.warning(
                f"Live cmdline root={live_root} does not reference {target}; "
                "the next boot may not use it"
            )
        else:
            log.info(f"Next boot will use {target}")


def list_bootable_partitions(config: MultibootConfig) -> list[Partition]:
    """Partitions that can hold a root tree, the boot partition excluded."""
    return [
        partition
        for partition in list_partitions(config.boot_mount)
        if partition.role is not PartitionRole.BOOT
        and (partition.fstype or "") in ROOT_FILESYSTEMS
    ]


def select_partition(
    partitions: Sequence[Partition],
    input_func: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> Partition:
    """Ask the user to pick one of ``partitions`` by number.

    Raises:
        InvalidArgumentError: If there is nothing to choose or the choice is invalid
    """
    if not partitions:
        raise InvalidArgumentError("No bootable partitions found")
    for number, partition in enumerate(partitions, start=1):
        output(f"{number}) {partition.format_label()}")
    answer = input_func("Boot partition number: ").strip()
    try:
        choice = int(answer)
    except ValueError:
        raise InvalidArgumentError(f"Invalid selection: {answer!r}") from None
    if not 1 <= choice <= len(partitions):
        raise InvalidArgumentError(f"Selection out of range: {choice}")
    return partitions[choice - 1]
