"""Tree synchronization with rsync.

Two flavours are used:

- Root trees: archive mode plus hard links, ACLs, extended attributes and
  sparse files, numeric ownership, one filesystem only (so /proc, /sys, /dev,
  the boot partition and any mounted target are never descended into).
- Boot trees: FAT boot partitions carry no ownership or permissions, so only
  recursion and timestamps are kept, with a one second modify window for
  FAT's two second timestamp granularity.

Both delete extraneous files in the destination so that re-running against
the same source produces the same tree.
"""

from pathlib import Path
from typing import Iterable, List, Sequence

from rpi_multiboot.logging import LoggerFactory

from .commands import run_checked_command


log = LoggerFactory.for_storage()

ROOT_SYNC_OPTIONS = (
    "-aHAXS",
    "--numeric-ids",
    "--one-file-system",
    "--delete",
)
BOOT_SYNC_OPTIONS = (
    "-rt",
    "--delete",
    "--modify-window=1",
)


def _as_dir(path) -> str:
    text = str(path)
    return text if text.endswith("/") else f"{text}/"


def build_rsync_command(
    source, destination, options: Sequence[str], excludes: Iterable[str] = ()
) -> List[str]:
    command = ["rsync", *options]
    for pattern in excludes:
        command.extend(["--exclude", pattern])
    command.extend([_as_dir(source), _as_dir(destination)])
    return command


def sync_root_tree(source, destination, excludes: Iterable[str] = ()) -> None:
    """Copy a root filesystem tree, preserving everything rsync can preserve.

    Raises:
        ExternalToolError: If rsync fails
    """
    command = build_rsync_command(source, destination, ROOT_SYNC_OPTIONS, excludes)
    log.info(f"Synchronizing {source} to {destination}")
    run_checked_command(command)


def sync_boot_tree(source, destination) -> None:
    """Mirror a boot tree into ``destination``, creating it if missing.

    Raises:
        ExternalToolError: If rsync fails
    """
    Path(destination).mkdir(parents=True, exist_ok=True)
    command = build_rsync_command(source, destination, BOOT_SYNC_OPTIONS)
    log.debug(f"Mirroring boot tree {source} to {destination}")
    run_checked_command(command)
