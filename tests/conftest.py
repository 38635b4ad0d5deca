"""
Pytest configuration and shared fixtures for rpi-multiboot tests.

This module provides common fixtures used across all test modules.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict
from unittest.mock import Mock, patch

import pytest
from loguru import logger

from rpi_multiboot.config.settings import MultibootConfig


@pytest.fixture(autouse=True)
def reset_logger():
    """Restore loguru's default stderr sink after each test."""
    yield
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})
    logger.add(sys.stderr, level="WARNING")


# ==============================================================================
# File tree fixtures
# ==============================================================================


FSTAB_TEXT = """\
proc            /proc           proc    defaults          0       0
/dev/mmcblk0p1  /boot           vfat    defaults          0       2
/dev/mmcblk0p2  /               ext4    defaults,noatime  0       1
# a swapfile is not a swap partition, no line here for that
"""

CMDLINE_TEXT = (
    "console=serial0,115200 console=tty1 root=/dev/mmcblk0p2 "
    "rootfstype=ext4 fsck.repair=yes rootwait\n"
)

OS_RELEASE_TEXT = """\
PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
VERSION="12 (bookworm)"
ID=debian
"""


@pytest.fixture
def root_tree(tmp_path) -> Path:
    """A minimal root filesystem tree with fstab and os-release."""
    root = tmp_path / "root"
    (root / "etc").mkdir(parents=True)
    (root / "etc" / "fstab").write_text(FSTAB_TEXT, encoding="utf-8")
    (root / "etc" / "os-release").write_text(OS_RELEASE_TEXT, encoding="utf-8")
    return root


@pytest.fixture
def boot_tree(tmp_path) -> Path:
    """A minimal live boot partition tree."""
    boot = tmp_path / "boot"
    boot.mkdir()
    (boot / "cmdline.txt").write_text(CMDLINE_TEXT, encoding="utf-8")
    (boot / "config.txt").write_text("arm_64bit=1\n", encoding="utf-8")
    return boot


@pytest.fixture
def config(tmp_path, boot_tree) -> MultibootConfig:
    """Configuration pointing at temporary directories."""
    mount_base = tmp_path / "mnt"
    mount_base.mkdir()
    return MultibootConfig(
        boot_mount=str(boot_tree),
        mount_base=str(mount_base),
        log_dir=str(tmp_path / "logs"),
    )


# ==============================================================================
# Device Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_lsblk_data() -> Dict[str, Any]:
    """lsblk -J output for an SD card plus a USB SSD with two root partitions."""
    return {
        "blockdevices": [
            {
                "name": "mmcblk0",
                "type": "disk",
                "size": 31914983424,
                "fstype": None,
                "label": None,
                "mountpoint": None,
                "children": [
                    {
                        "name": "mmcblk0p1",
                        "type": "part",
                        "size": 268435456,
                        "fstype": "vfat",
                        "label": "bootfs",
                        "mountpoint": "/boot",
                    },
                    {
                        "name": "mmcblk0p2",
                        "type": "part",
                        "size": 31646547968,
                        "fstype": "ext4",
                        "label": "rootfs",
                        "mountpoint": "/",
                    },
                ],
            },
            {
                "name": "sda",
                "type": "disk",
                "size": 256060514304,
                "fstype": None,
                "label": None,
                "mountpoint": None,
                "children": [
                    {
                        "name": "sda1",
                        "type": "part",
                        "size": 128030257152,
                        "fstype": "ext4",
                        "label": "debian 12",
                        "mountpoint": None,
                    },
                    {
                        "name": "sda2",
                        "type": "part",
                        "size": 128030257152,
                        "fstype": "swap",
                        "label": None,
                        "mountpoint": None,
                    },
                ],
            },
        ]
    }


@pytest.fixture
def mock_lsblk_output(mock_lsblk_data) -> str:
    return json.dumps(mock_lsblk_data)


@pytest.fixture
def completed_process():
    """Factory for subprocess.run results."""

    def _make(returncode=0, stdout="", stderr=""):
        return Mock(returncode=returncode, stdout=stdout, stderr=stderr)

    return _make


@pytest.fixture
def fstab_text() -> str:
    return FSTAB_TEXT


@pytest.fixture
def cmdline_text() -> str:
    return CMDLINE_TEXT


@pytest.fixture
def mock_subprocess_run():
    """Patch subprocess.run for command execution tests."""
    with patch("subprocess.run") as mock_run:
        yield mock_run
