"""Domain models for rpi-multiboot."""

from .models import (
    OsIdentity,
    Partition,
    PartitionRole,
    ProvisionResult,
    normalize_device,
)


__all__ = [
    "OsIdentity",
    "Partition",
    "PartitionRole",
    "ProvisionResult",
    "normalize_device",
]
