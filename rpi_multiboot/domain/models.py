"""Domain model for multi-boot partitions.

Type-safe domain objects replacing raw lsblk dicts in the provisioning and
switching code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ==============================================================================
# Device paths
# ==============================================================================


def normalize_device(device: str) -> str:
    """Return ``/dev/<name>`` for ``name`` or an existing ``/dev/`` path.

    Applying it to an already normalized path returns it unchanged.
    """
    device = device.strip()
    while device.startswith("/dev/"):
        device = device[len("/dev/"):]
    device = device.lstrip("/")
    return f"/dev/{device}"


# ==============================================================================
# Partition Domain
# ==============================================================================


class PartitionRole(Enum):
    """What a partition is used for in a multi-boot layout."""

    ACTIVE_ROOT = "active-root"
    BOOT = "boot"
    TARGET = "target"
    BACKUP_SHADOW = "backup-shadow"
    OTHER = "other"


@dataclass(frozen=True)
class Partition:
    """A block device partition."""

    name: str  # e.g., "sdb2", "mmcblk0p2"
    fstype: str | None = None  # e.g., "ext4", "vfat"
    label: str | None = None
    mountpoint: str | None = None
    size_bytes: int = 0
    role: PartitionRole = PartitionRole.OTHER

    @property
    def device_path(self) -> str:
        """Device node path (e.g., /dev/sdb2)."""
        return normalize_device(self.name)

    @property
    def is_mounted(self) -> bool:
        return bool(self.mountpoint)

    def format_label(self) -> str:
        """Human-readable one-line description.

        Returns: e.g., "/dev/sdb2 [debian 12] ext4 (root)"
        """
        parts = [self.device_path]
        if self.label:
            parts.append(f"[{self.label}]")
        if self.fstype:
            parts.append(self.fstype)
        if self.role is PartitionRole.ACTIVE_ROOT:
            parts.append("(root)")
        elif self.role is PartitionRole.BOOT:
            parts.append("(boot)")
        return " ".join(parts)

    @classmethod
    def from_lsblk_dict(
        cls, device: dict[str, Any], role: PartitionRole = PartitionRole.OTHER
    ) -> Partition:
        """Convert an lsblk dict (``-J -b -o NAME,SIZE,FSTYPE,LABEL,MOUNTPOINT``).

        Raises:
            KeyError: If the name key is missing
        """
        mountpoint = device.get("mountpoint")
        if mountpoint is None:
            mountpoints = [m for m in device.get("mountpoints") or [] if m]
            mountpoint = mountpoints[0] if mountpoints else None
        return cls(
            name=device["name"],
            fstype=device.get("fstype") or None,
            label=device.get("label") or None,
            mountpoint=mountpoint,
            size_bytes=int(device.get("size") or 0),
            role=role,
        )


# ==============================================================================
# OS identity
# ==============================================================================


@dataclass(frozen=True)
class OsIdentity:
    """``ID`` and ``VERSION_ID`` of an installed system."""

    id: str
    version_id: str

    def as_label(self) -> str:
        return f"{self.id} {self.version_id}"


# ==============================================================================
# Provisioning
# ==============================================================================


@dataclass
class ProvisionResult:
    """Outcome of a successful provisioning run."""

    target: str
    mountpoint: str
    label: str | None = None
    completed_steps: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)
