"""Filesystem label derivation and application.

Labels are either supplied by the user or derived from the ``ID`` and
``VERSION_ID`` fields of an installed tree's os-release file, e.g.
``"debian 12"``.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Optional

from rpi_multiboot.config.settings import MultibootConfig
from rpi_multiboot.domain import OsIdentity, normalize_device
from rpi_multiboot.logging import LoggerFactory
from rpi_multiboot.storage.commands import run_checked_command
from rpi_multiboot.storage.devices import (
    get_filesystem_label,
    get_filesystem_type,
    get_root_device,
)
from rpi_multiboot.storage.exceptions import InvalidArgumentError, MissingIdentityError


log = LoggerFactory.for_label()

OS_RELEASE_FALLBACK = "usr/lib/os-release"
IDENTITY_FIELDS = ("ID", "VERSION_ID")

# Maximum label length in bytes per filesystem
LABEL_LIMITS = {"ext2": 16, "ext3": 16, "ext4": 16, "btrfs": 255, "vfat": 11}


def parse_os_release(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = " ".join(parts)
    return values


def read_os_identity(root_path, os_release_path: str = "etc/os-release") -> OsIdentity:
    """Read ``ID`` and ``VERSION_ID`` from the os-release file under ``root_path``.

    Raises:
        MissingIdentityError: If no os-release file exists or a field is absent
    """
    root = Path(root_path)
    candidates = [root / os_release_path, root / OS_RELEASE_FALLBACK]
    for path in candidates:
        if path.is_file():
            break
    else:
        raise MissingIdentityError(str(candidates[0]))

    values = parse_os_release(path.read_text(encoding="utf-8", errors="replace"))
    missing = [name for name in IDENTITY_FIELDS if not values.get(name)]
    if missing:
        raise MissingIdentityError(str(path), missing)
    return OsIdentity(id=values["ID"], version_id=values["VERSION_ID"])


def compute_label(root_path, os_release_path: str = "etc/os-release") -> str:
    """Return ``"<ID> <VERSION_ID>"`` for the tree at ``root_path``."""
    label = read_os_identity(root_path, os_release_path).as_label()
    log.debug(f"Derived label '{label}' from {root_path}")
    return label


def clamp_label(label: str, fstype: Optional[str]) -> str:
    """Trim ``label`` to what ``fstype`` can store."""
    label = label.strip()
    if fstype == "vfat":
        label = label.upper()
    limit = LABEL_LIMITS.get(fstype or "")
    if limit is None:
        return label
    encoded = label.encode("utf-8")[:limit]
    return encoded.decode("utf-8", errors="ignore").rstrip()


def read_label(device: str) -> Optional[str]:
    return get_filesystem_label(normalize_device(device))


def build_label_command(device: str, label: str, fstype: Optional[str]) -> list[str]:
    if fstype in ("ext2", "ext3", "ext4"):
        return ["e2label", device, label]
    if fstype == "btrfs":
        return ["btrfs", "filesystem", "label", device, label]
    if fstype == "vfat":
        return ["fatlabel", device, label]
    raise InvalidArgumentError(f"Cannot label {device}: unsupported filesystem {fstype}")


def apply_label(
    config: MultibootConfig, device: Optional[str] = None, label: Optional[str] = None
) -> bool:
    """Set the filesystem label of ``device`` (default: the partition at ``/``).

    Re-applying the label a partition already carries runs nothing.

    Returns:
        True if a labeler was run, False if the label already matched.

    Raises:
        InvalidArgumentError: If the label is empty or the filesystem unsupported
        ExternalToolError: If the labeler fails
    """
    if label is None or not label.strip():
        raise InvalidArgumentError("A non-empty label is required")
    device = normalize_device(device) if device else get_root_device()
    fstype = get_filesystem_type(device) or config.fs_type
    label = clamp_label(label, fstype)

    if read_label(device) == label:
        log.info(f"{device} already labeled '{label}'")
        return False

    run_checked_command(build_label_command(device, label, fstype))
    log.info(f"Labeled {device} as '{label}'")
    return True
