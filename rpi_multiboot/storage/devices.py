"""Block device queries using lsblk, findmnt and blkid.

Answers the questions the provisioning and switching code needs before it
touches a partition: which device is mounted at ``/``, which one carries the
boot partition, whether a device is mounted anywhere, and which partitions
exist.

Example:
    >>> from rpi_multiboot.storage.devices import get_root_device
    >>> get_root_device()
    '/dev/mmcblk0p2'
"""

import json
import os
import stat
from typing import Optional

from rpi_multiboot.domain import Partition, PartitionRole, normalize_device
from rpi_multiboot.logging import LoggerFactory

from .commands import run_checked_command, run_command
from .exceptions import ExternalToolError


log = LoggerFactory.for_storage()

LSBLK_COLUMNS = "NAME,TYPE,SIZE,FSTYPE,LABEL,MOUNTPOINT"


def get_mount_source(mountpoint: str) -> Optional[str]:
    """Return the device mounted at ``mountpoint`` or None when not mounted."""
    result = run_command(
        ["findmnt", "-n", "-o", "SOURCE", "--mountpoint", mountpoint],
        check=False,
        log_output=False,
    )
    source = (result.stdout or "").strip()
    if result.returncode != 0 or not source:
        return None
    # btrfs subvolumes are reported as /dev/sda2[/@]
    return source.split("[", 1)[0]


def get_root_device() -> str:
    """Return the device path of the partition currently mounted at ``/``."""
    source = get_mount_source("/")
    if not source:
        raise ExternalToolError(["findmnt", "/"], None, "unable to resolve root device")
    return source


def get_boot_device(boot_mount: str) -> Optional[str]:
    return get_mount_source(boot_mount)


def get_mountpoints(device: str) -> list[str]:
    """Return every mountpoint of ``device`` listed in /proc/mounts."""
    device = normalize_device(device)
    real_device = os.path.realpath(device)
    mountpoints: list[str] = []
    try:
        with open("/proc/mounts", "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) < 2:
                    continue
                if parts[0] in (device, real_device):
                    mountpoints.append(parts[1].replace("\\040", " "))
    except FileNotFoundError:
        return []
    return mountpoints


def is_mountpoint_active(mountpoint: str) -> bool:
    try:
        with open("/proc/mounts", "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1 and parts[1] == mountpoint:
                    return True
    except FileNotFoundError:
        return os.path.ismount(mountpoint)
    return False


def is_block_device(device: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(device).st_mode)
    except OSError:
        return False


def get_filesystem_type(device: str) -> Optional[str]:
    result = run_command(
        ["blkid", "-s", "TYPE", "-o", "value", normalize_device(device)],
        check=False,
        log_output=False,
    )
    value = (result.stdout or "").strip()
    return value or None


def get_filesystem_label(device: str) -> Optional[str]:
    result = run_command(
        ["blkid", "-s", "LABEL", "-o", "value", normalize_device(device)],
        check=False,
        log_output=False,
    )
    value = (result.stdout or "").rstrip("\n")
    return value or None


def _walk(devices):
    for device in devices:
        yield device
        yield from _walk(device.get("children") or [])


def list_partitions(boot_mount: Optional[str] = None) -> list[Partition]:
    """Return every partition known to lsblk, tagged with its role."""
    try:
        output = run_checked_command(["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS])
        data = json.loads(output)
    except json.JSONDecodeError as error:
        raise ExternalToolError(["lsblk"], None, f"invalid JSON: {error}") from error
    partitions = []
    for device in _walk(data.get("blockdevices", [])):
        if device.get("type") != "part":
            continue
        mountpoint = device.get("mountpoint")
        if mountpoint == "/":
            role = PartitionRole.ACTIVE_ROOT
        elif boot_mount and mountpoint == boot_mount:
            role = PartitionRole.BOOT
        else:
            role = PartitionRole.OTHER
        partitions.append(Partition.from_lsblk_dict(device, role=role))
    log.debug(f"lsblk found {len(partitions)} partitions")
    return partitions
