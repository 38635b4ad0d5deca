"""Command-line entry point for rpi-multiboot."""

import argparse
import os
import sys
from enum import Enum
from pathlib import Path

from rpi_multiboot.__version__ import __version__
from rpi_multiboot.boot.labels import apply_label
from rpi_multiboot.boot.shadow import backup_boot_config
from rpi_multiboot.config.settings import MultibootConfig, load_config
from rpi_multiboot.logging import LoggerFactory, setup_logging
from rpi_multiboot.services.provision import provision
from rpi_multiboot.services.switch import (
    list_bootable_partitions,
    select_partition,
    switch_boot,
)
from rpi_multiboot.storage.exceptions import InvalidArgumentError, MultibootError


log = LoggerFactory.for_system()


class Operation(Enum):
    COPY = "copy"
    COPY_AND_SWITCH = "copy-and-switch"
    SWITCH = "switch"
    SELECT = "select"
    BACKUP_BOOT = "backup-boot"
    LABEL = "label"
    LIST = "list"


READ_ONLY_OPERATIONS = {Operation.LIST}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rpi-multiboot",
        description="Provision and switch between root partitions sharing one boot partition",
    )
    parser.add_argument("-c", "--copy", metavar="DEVICE", help="Copy the running system onto DEVICE")
    parser.add_argument("--source", default="/", help="Root tree to copy (default: /)")
    parser.add_argument("-s", "--switch", metavar="DEVICE", help="Boot DEVICE at next boot")
    parser.add_argument(
        "-S", "--select", action="store_true", help="Choose the next boot partition interactively"
    )
    parser.add_argument(
        "-b",
        "--backup-boot",
        action="store_true",
        help="Refresh the current root's shadow copy of the boot partition",
    )
    parser.add_argument(
        "-l", "--label", help="Label to apply (with --copy: label of the new partition)"
    )
    parser.add_argument(
        "-t", "--target", metavar="DEVICE", help="Partition to label (default: current root)"
    )
    parser.add_argument("--list", action="store_true", help="List bootable partitions")
    parser.add_argument("--boot-mount", help="Mount point of the live boot partition")
    parser.add_argument("--fs-type", help="Filesystem type for new partitions")
    parser.add_argument("--config", type=Path, help="Path to a JSON configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-d", "--debug", action="store_true", help="Write a debug log")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_operation(args: argparse.Namespace) -> Operation:
    """Map parsed arguments onto exactly one operation.

    Raises:
        InvalidArgumentError: If no operation or conflicting operations were given
    """
    if args.copy and args.switch:
        return Operation.COPY_AND_SWITCH

    requested = []
    if args.copy:
        requested.append(Operation.COPY)
    if args.switch:
        requested.append(Operation.SWITCH)
    if args.select:
        requested.append(Operation.SELECT)
    if args.backup_boot:
        requested.append(Operation.BACKUP_BOOT)
    if args.list:
        requested.append(Operation.LIST)
    if args.label is not None and not args.copy:
        requested.append(Operation.LABEL)

    if not requested:
        raise InvalidArgumentError("No operation given")
    if len(requested) > 1:
        names = ", ".join(op.value for op in requested)
        raise InvalidArgumentError(f"Conflicting operations: {names}")
    return requested[0]


# ==============================================================================
# Handlers
# ==============================================================================


def _handle_copy(config: MultibootConfig, args: argparse.Namespace) -> None:
    provision(config, args.copy, source_root=args.source, label=args.label)


def _handle_copy_and_switch(config: MultibootConfig, args: argparse.Namespace) -> None:
    result = provision(
        config,
        args.copy,
        source_root=args.source,
        label=args.label,
        paired_switch_target=args.switch,
    )
    if "refresh_live_boot" in result.skipped_steps:
        switch_boot(config, args.switch)


def _handle_switch(config: MultibootConfig, args: argparse.Namespace) -> None:
    switch_boot(config, args.switch)


def _handle_select(config: MultibootConfig, args: argparse.Namespace) -> None:
    partition = select_partition(list_bootable_partitions(config))
    switch_boot(config, partition.device_path)


def _handle_backup_boot(config: MultibootConfig, args: argparse.Namespace) -> None:
    backup_boot_config(config)


def _handle_label(config: MultibootConfig, args: argparse.Namespace) -> None:
    apply_label(config, args.target, args.label)


def _handle_list(config: MultibootConfig, args: argparse.Namespace) -> None:
    for partition in list_bootable_partitions(config):
        print(partition.format_label())


HANDLERS = {
    Operation.COPY: _handle_copy,
    Operation.COPY_AND_SWITCH: _handle_copy_and_switch,
    Operation.SWITCH: _handle_switch,
    Operation.SELECT: _handle_select,
    Operation.BACKUP_BOOT: _handle_backup_boot,
    Operation.LABEL: _handle_label,
    Operation.LIST: _handle_list,
}

_missing_handlers = set(Operation) - set(HANDLERS)
if _missing_handlers:
    raise RuntimeError(f"Operations without a handler: {sorted(op.value for op in _missing_handlers)}")


def dispatch(operation: Operation, config: MultibootConfig, args: argparse.Namespace) -> None:
    HANDLERS[operation](config, args)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config, boot_mount=args.boot_mount, fs_type=args.fs_type)
    setup_logging(
        verbose=args.verbose,
        debug=args.debug,
        log_dir=Path(config.log_dir) if config.log_dir else None,
    )

    try:
        operation = resolve_operation(args)
        if operation not in READ_ONLY_OPERATIONS and os.geteuid() != 0:
            raise MultibootError("This operation must be run as root")
        log.debug(f"Dispatching {operation.value}")
        dispatch(operation, config, args)
    except MultibootError as error:
        log.error(str(error))
        return error.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
