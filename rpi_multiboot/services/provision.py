"""Partition provisioning: turn a partition into a bootable copy of a root tree.

A provisioning run executes nine steps strictly in order:

    1. format            mkfs with eager metadata initialization
    2. mount             mount at a fresh temporary directory
    3. sync_root         rsync the source root onto the target
    4. patch_fstab       point the target's ``/`` entry at the target
    5. shadow_sync       mirror the live boot partition into the target's shadow
    6. patch_cmdline     point the target's shadow cmdline ``root=`` at the target
    7. refresh_live_boot paired copy-and-switch only: refresh the current root's
                         shadow and install the patched cmdline on /boot
    8. determine_label   derive "<ID> <VERSION_ID>" when no label was given
    9. apply_label       write the label to the target's superblock

There is no rollback. The first failing step stops the run: a failed format
re-raises its error, any later failure raises ``PartialStateError`` and leaves
the target mounted. A target in that state must be reformatted and
provisioned from the start.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from typing import Callable, Optional

from rpi_multiboot.boot.labels import apply_label, compute_label
from rpi_multiboot.boot.patchers import update_cmdline, update_fstab
from rpi_multiboot.boot.shadow import backup_boot_config, sync_boot_to_shadow
from rpi_multiboot.config.settings import MultibootConfig
from rpi_multiboot.domain import ProvisionResult, normalize_device
from rpi_multiboot.logging import operation_context
from rpi_multiboot.storage.exceptions import MultibootError, PartialStateError
from rpi_multiboot.storage.format import format_partition
from rpi_multiboot.storage.mount import (
    MOUNT_PREFIX,
    create_mountpoint,
    mount_partition,
    remove_mountpoint,
    unmount_partition,
)
from rpi_multiboot.storage.sync import sync_root_tree
from rpi_multiboot.storage.validation import validate_target


@dataclass
class ProvisionRun:
    """Mutable state shared by the steps of one provisioning run."""

    config: MultibootConfig
    target: str
    source_root: str = "/"
    label: Optional[str] = None
    paired_switch_target: Optional[str] = None
    mountpoint: Optional[str] = None
    completed_steps: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)

    @property
    def is_paired(self) -> bool:
        if not self.paired_switch_target:
            return False
        return normalize_device(self.paired_switch_target) == self.target

    def require_mountpoint(self) -> str:
        if not self.mountpoint:
            raise MultibootError(f"{self.target} is not mounted")
        return self.mountpoint


def _always(run: ProvisionRun) -> bool:
    return True


@dataclass(frozen=True)
class ProvisionStep:
    name: str
    description: str
    func: Callable[[ProvisionRun], None]
    enabled: Callable[[ProvisionRun], bool] = _always


# ==============================================================================
# Steps
# ==============================================================================


def _format(run: ProvisionRun) -> None:
    format_partition(run.target, run.config.fs_type)


def _mount(run: ProvisionRun) -> None:
    mountpoint = create_mountpoint(run.config.mount_base)
    try:
        mount_partition(run.target, mountpoint)
    except Exception:
        remove_mountpoint(mountpoint)
        raise
    run.mountpoint = mountpoint


def mount_excludes(source_root: str, mount_base: str) -> tuple[str, ...]:
    """Anchored rsync excludes for provisioning mount directories inside ``source_root``.

    The target is mounted below ``mount_base``; when that lies inside the tree
    being copied, the mount directories themselves must not appear in the copy.
    """
    source = os.path.realpath(source_root)
    base = os.path.realpath(mount_base)
    if os.path.commonpath([source, base]) != source:
        return ()
    relative = os.path.relpath(base, source)
    prefix = "" if relative == "." else "/" + relative
    return (f"{prefix}/{MOUNT_PREFIX}*",)


def _sync_root(run: ProvisionRun) -> None:
    excludes = tuple(run.config.sync_excludes) + mount_excludes(
        run.source_root, run.config.mount_base
    )
    sync_root_tree(run.source_root, run.require_mountpoint(), excludes)


def _patch_fstab(run: ProvisionRun) -> None:
    update_fstab(run.target, run.config.fstab(run.require_mountpoint()))


def _shadow_sync(run: ProvisionRun) -> None:
    sync_boot_to_shadow(run.config, run.require_mountpoint())


def _patch_cmdline(run: ProvisionRun) -> None:
    update_cmdline(run.target, run.config.shadow_cmdline(run.require_mountpoint()))


def _refresh_live_boot(run: ProvisionRun) -> None:
    backup_boot_config(run.config)
    shutil.copyfile(
        run.config.shadow_cmdline(run.require_mountpoint()),
        run.config.live_cmdline(),
    )


def _determine_label(run: ProvisionRun) -> None:
    if run.label is None or not run.label.strip():
        run.label = compute_label(run.require_mountpoint(), run.config.os_release_path)


def _apply_label(run: ProvisionRun) -> None:
    apply_label(run.config, run.target, run.label)


def _is_paired(run: ProvisionRun) -> bool:
    return run.is_paired


PROVISION_STEPS = (
    ProvisionStep("format", "Formatting target", _format),
    ProvisionStep("mount", "Mounting target", _mount),
    ProvisionStep("sync_root", "Copying root filesystem", _sync_root),
    ProvisionStep("patch_fstab", "Updating fstab", _patch_fstab),
    ProvisionStep("shadow_sync", "Copying boot partition to shadow directory", _shadow_sync),
    ProvisionStep("patch_cmdline", "Updating shadow cmdline", _patch_cmdline),
    ProvisionStep(
        "refresh_live_boot", "Refreshing live boot partition", _refresh_live_boot, _is_paired
    ),
    ProvisionStep("determine_label", "Determining label", _determine_label),
    ProvisionStep("apply_label", "Applying label", _apply_label),
)


# ==============================================================================
# Entry point
# ==============================================================================


def run_steps(run: ProvisionRun, steps=PROVISION_STEPS, log=None) -> None:
    """Execute ``steps`` in order, stopping at the first failure."""
    total = len(steps)
    for index, step in enumerate(steps, start=1):
        if not step.enabled(run):
            if log is not None:
                log.debug(f"[{index}/{total}] Skipping {step.name}")
            run.skipped_steps.append(step.name)
            continue
        if log is not None:
            log.info(f"[{index}/{total}] {step.description}")
        try:
            step.func(run)
        except (MultibootError, OSError) as error:
            if not run.completed_steps:
                raise
            raise PartialStateError(step.name, run.target, run.mountpoint, error) from error
        run.completed_steps.append(step.name)


def provision(
    config: MultibootConfig,
    target: str,
    source_root: str = "/",
    label: Optional[str] = None,
    paired_switch_target: Optional[str] = None,
) -> ProvisionResult:
    """Provision ``target`` as a bootable copy of ``source_root``.

    Raises:
        InvalidArgumentError: If the target is missing or malformed
        ResourceBusyError: If the target is mounted or a system partition
        ExternalToolError: If formatting fails
        PartialStateError: If any later step fails
    """
    target = validate_target(target, config.boot_mount)
    run = ProvisionRun(
        config=config,
        target=target,
        source_root=source_root,
        label=label,
        paired_switch_target=paired_switch_target,
    )
    with operation_context(
        "provision", target=target, source=source_root, paired=run.is_paired
    ) as log:
        run_steps(run, log=log)
        mountpoint = run.require_mountpoint()
        unmount_partition(mountpoint)
        remove_mountpoint(mountpoint)
        log.info(f"{target} provisioned with label '{run.label}'")

    return ProvisionResult(
        target=target,
        mountpoint=mountpoint,
        label=run.label,
        completed_steps=list(run.completed_steps),
        skipped_steps=list(run.skipped_steps),
    )
