"""Configuration for multi-boot operations.

The configuration is built once at startup from defaults, an optional JSON
file and command-line overrides, and then passed explicitly into every
operation. It is immutable once constructed.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any


CONFIG_PATH = Path(
    os.environ.get(
        "RPI_MULTIBOOT_CONFIG",
        Path.home() / ".config" / "rpi-multiboot" / "config.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_BOOT_MOUNT = "/boot"
DEFAULT_FS_TYPE = "ext4"
DEFAULT_SHADOW_DIR_NAME = "boot.shadow"
DEFAULT_CMDLINE_NAME = "cmdline.txt"
DEFAULT_FSTAB_PATH = "etc/fstab"
DEFAULT_OS_RELEASE_PATH = "etc/os-release"
DEFAULT_MOUNT_BASE = "/mnt"
DEFAULT_SYNC_EXCLUDES = ("/tmp/*", "/var/tmp/*")

DEFAULT_SETTINGS: dict[str, Any] = {
    "boot_mount": DEFAULT_BOOT_MOUNT,
    "fs_type": DEFAULT_FS_TYPE,
    "shadow_dir_name": DEFAULT_SHADOW_DIR_NAME,
    "cmdline_name": DEFAULT_CMDLINE_NAME,
    "fstab_path": DEFAULT_FSTAB_PATH,
    "os_release_path": DEFAULT_OS_RELEASE_PATH,
    "mount_base": DEFAULT_MOUNT_BASE,
    "sync_excludes": DEFAULT_SYNC_EXCLUDES,
    "log_dir": None,
}


@dataclass(frozen=True)
class MultibootConfig:
    boot_mount: str = DEFAULT_BOOT_MOUNT
    fs_type: str = DEFAULT_FS_TYPE
    shadow_dir_name: str = DEFAULT_SHADOW_DIR_NAME
    cmdline_name: str = DEFAULT_CMDLINE_NAME
    fstab_path: str = DEFAULT_FSTAB_PATH
    os_release_path: str = DEFAULT_OS_RELEASE_PATH
    mount_base: str = DEFAULT_MOUNT_BASE
    sync_excludes: tuple[str, ...] = DEFAULT_SYNC_EXCLUDES
    log_dir: str | None = None

    def shadow_dir(self, root_path: str | Path = "/") -> Path:
        """Shadow boot directory at the top level of ``root_path``."""
        return Path(root_path) / self.shadow_dir_name

    def shadow_cmdline(self, root_path: str | Path = "/") -> Path:
        return self.shadow_dir(root_path) / self.cmdline_name

    def live_cmdline(self) -> Path:
        return Path(self.boot_mount) / self.cmdline_name

    def fstab(self, root_path: str | Path = "/") -> Path:
        return Path(root_path) / self.fstab_path

    def os_release(self, root_path: str | Path = "/") -> Path:
        return Path(root_path) / self.os_release_path


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def load_config(path: Path | None = None, **overrides: Any) -> MultibootConfig:
    """Build the configuration from defaults, the JSON file and overrides.

    Unknown keys are ignored. ``None`` overrides leave the lower-priority
    value in place so CLI flags that were not given do not clobber the file.
    """
    known = {item.name for item in fields(MultibootConfig)}
    values = dict(DEFAULT_SETTINGS)
    values.update(
        {
            key: value
            for key, value in _read_config_file(path or CONFIG_PATH).items()
            if key in known
        }
    )
    values.update(
        {key: value for key, value in overrides.items() if key in known and value is not None}
    )
    values["sync_excludes"] = tuple(values.get("sync_excludes") or ())
    return MultibootConfig(**values)

