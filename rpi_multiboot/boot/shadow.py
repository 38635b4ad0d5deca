"""Boot partition <-> shadow directory synchronization.

Every root partition carries a shadow boot directory at its top level with
the content the live boot partition must have while that root is active.
Backing up mirrors the live boot partition into a shadow directory;
restoring mirrors a shadow directory onto the live boot partition.

The live boot partition is mounted on demand when it has an fstab entry but
is not mounted yet.
"""

from __future__ import annotations

from pathlib import Path

from rpi_multiboot.boot.patchers import FstabTable
from rpi_multiboot.config.settings import MultibootConfig
from rpi_multiboot.logging import LoggerFactory
from rpi_multiboot.storage.devices import is_mountpoint_active
from rpi_multiboot.storage.exceptions import InvalidArgumentError
from rpi_multiboot.storage.mount import mount_fstab_entry
from rpi_multiboot.storage.sync import sync_boot_tree


log = LoggerFactory.for_boot()

SYSTEM_FSTAB = Path("/etc/fstab")


def has_fstab_entry(mountpoint: str, fstab: Path = SYSTEM_FSTAB) -> bool:
    try:
        table = FstabTable.parse(fstab.read_text(encoding="utf-8", errors="surrogateescape"))
    except FileNotFoundError:
        return False
    return bool(table.entries_for(mountpoint))


def ensure_boot_mounted(config: MultibootConfig) -> None:
    """Mount the live boot partition if it is configured but not mounted."""
    boot_mount = config.boot_mount
    if is_mountpoint_active(boot_mount):
        return
    if not has_fstab_entry(boot_mount):
        log.debug(f"{boot_mount} has no fstab entry, using it as a plain directory")
        return
    log.info(f"Mounting boot partition at {boot_mount}")
    mount_fstab_entry(boot_mount)


def sync_boot_to_shadow(config: MultibootConfig, root_path) -> Path:
    """Mirror the live boot partition into the shadow directory of ``root_path``."""
    ensure_boot_mounted(config)
    shadow = config.shadow_dir(root_path)
    sync_boot_tree(config.boot_mount, shadow)
    log.info(f"Boot partition {config.boot_mount} mirrored to {shadow}")
    return shadow


def backup_boot_config(config: MultibootConfig) -> Path:
    """Refresh the current root's shadow directory from the live boot partition."""
    return sync_boot_to_shadow(config, "/")


def restore_boot_config(config: MultibootConfig, source_shadow_dir) -> None:
    """Mirror ``source_shadow_dir`` onto the live boot partition.

    Raises:
        InvalidArgumentError: If the shadow directory does not exist
        ExternalToolError: If mounting or rsync fails
    """
    source = Path(source_shadow_dir)
    if not source.is_dir():
        raise InvalidArgumentError(f"Shadow boot directory not found: {source}")
    ensure_boot_mounted(config)
    sync_boot_tree(source, config.boot_mount)
    log.info(f"Boot partition {config.boot_mount} restored from {source}")
