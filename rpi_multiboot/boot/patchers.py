"""fstab and cmdline parsing and patching.

Both files are parsed into line/field structures that remember the original
separators, so rendering an unmodified structure gives back the input byte
for byte. Patching rewrites a single field and leaves everything else alone.
Bytes that are not valid UTF-8 (legacy comments) pass through unchanged.

fstab:
    One entry per line, whitespace-delimited fields, first field is the mount
    source and second the mount point. Comments and blank lines are kept
    verbatim.

cmdline:
    A single line of space-delimited tokens, one of which is
    ``root=<device>``.

Example:
    >>> table = FstabTable.parse("/dev/mmcblk0p2  /  ext4  defaults  0  1\\n")
    >>> table.set_root_source("/dev/sdb2")
    1
    >>> table.render()
    '/dev/sdb2  /  ext4  defaults  0  1\\n'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from rpi_multiboot.domain import normalize_device
from rpi_multiboot.logging import LoggerFactory
from rpi_multiboot.storage.exceptions import InvalidArgumentError


log = LoggerFactory.for_boot()

_WHITESPACE = re.compile(r"(\s+)")

PathLike = Union[str, Path]


def _split_line_ending(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def _split_preserving(body: str) -> List[str]:
    """Split into alternating field/separator pieces, dropping empty edges."""
    return [piece for piece in _WHITESPACE.split(body) if piece != ""]


def _is_separator(piece: str) -> bool:
    return piece.isspace()


# ==============================================================================
# fstab
# ==============================================================================


@dataclass
class FstabLine:
    """One fstab line; ``pieces`` alternate between fields and separators."""

    pieces: List[str]
    ending: str = "\n"
    is_entry: bool = True

    @classmethod
    def parse(cls, line: str) -> FstabLine:
        body, ending = _split_line_ending(line)
        stripped = body.strip()
        if not stripped or stripped.startswith("#"):
            return cls(pieces=[body], ending=ending, is_entry=False)
        return cls(pieces=_split_preserving(body), ending=ending)

    def _field_indexes(self) -> List[int]:
        return [i for i, piece in enumerate(self.pieces) if not _is_separator(piece)]

    @property
    def fields(self) -> List[str]:
        if not self.is_entry:
            return []
        return [self.pieces[i] for i in self._field_indexes()]

    @property
    def source(self) -> Optional[str]:
        fields = self.fields
        return fields[0] if fields else None

    @property
    def mountpoint(self) -> Optional[str]:
        fields = self.fields
        return fields[1] if len(fields) > 1 else None

    def set_source(self, source: str) -> None:
        if not self.is_entry:
            raise ValueError("cannot set the source of a comment line")
        self.pieces[self._field_indexes()[0]] = source

    def render(self) -> str:
        return "".join(self.pieces) + self.ending


@dataclass
class FstabTable:
    lines: List[FstabLine] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> FstabTable:
        return cls(lines=[FstabLine.parse(line) for line in text.splitlines(keepends=True)])

    def render(self) -> str:
        return "".join(line.render() for line in self.lines)

    def entries_for(self, mountpoint: str) -> List[FstabLine]:
        return [line for line in self.lines if line.is_entry and line.mountpoint == mountpoint]

    def root_entry(self) -> Optional[FstabLine]:
        entries = self.entries_for("/")
        return entries[0] if entries else None

    def set_root_source(self, device: str) -> int:
        """Point every ``/`` entry at ``device``; returns the number changed."""
        entries = self.entries_for("/")
        for entry in entries:
            entry.set_source(device)
        return len(entries)


# ==============================================================================
# cmdline
# ==============================================================================


ROOT_KEY = "root="


@dataclass
class Cmdline:
    pieces: List[str]
    ending: str = "\n"

    @classmethod
    def parse(cls, text: str) -> Cmdline:
        body, ending = _split_line_ending(text)
        return cls(pieces=_split_preserving(body), ending=ending)

    @property
    def tokens(self) -> List[str]:
        return [piece for piece in self.pieces if not _is_separator(piece)]

    def get(self, key: str) -> Optional[str]:
        prefix = f"{key}="
        value = None
        for token in self.tokens:
            if token.startswith(prefix):
                value = token[len(prefix):]
        return value

    @property
    def root(self) -> Optional[str]:
        return self.get("root")

    def set_root(self, device: str) -> int:
        """Replace the value of each ``root=`` token; returns the number changed."""
        changed = 0
        for index, piece in enumerate(self.pieces):
            if piece.startswith(ROOT_KEY):
                self.pieces[index] = f"{ROOT_KEY}{device}"
                changed += 1
        return changed

    def render(self) -> str:
        return "".join(self.pieces) + self.ending


# ==============================================================================
# File patchers
# ==============================================================================


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError as error:
        raise InvalidArgumentError(f"File not found: {path}") from error


def _write_if_changed(path: Path, original: str, updated: str) -> bool:
    if updated == original:
        return False
    path.write_text(updated, encoding="utf-8", errors="surrogateescape")
    return True


def update_fstab(device_path: str, fstab_file: PathLike) -> bool:
    """Point the ``/`` entry of ``fstab_file`` at ``/dev/<device_path>``.

    Returns:
        True if the file was rewritten, False if it already matched.

    Raises:
        InvalidArgumentError: If the file is missing or has no ``/`` entry
    """
    path = Path(fstab_file)
    device = normalize_device(device_path)
    original = _read(path)
    table = FstabTable.parse(original)
    if not table.set_root_source(device):
        raise InvalidArgumentError(f"No root (/) entry in {path}")
    changed = _write_if_changed(path, original, table.render())
    log.debug(f"fstab {path}: root source -> {device} ({'updated' if changed else 'unchanged'})")
    return changed


def update_cmdline(device_path: str, cmdline_file: PathLike) -> bool:
    """Point the ``root=`` parameter of ``cmdline_file`` at ``/dev/<device_path>``.

    Returns:
        True if the file was rewritten, False if it already matched.

    Raises:
        InvalidArgumentError: If the file is missing or has no ``root=`` token
    """
    path = Path(cmdline_file)
    device = normalize_device(device_path)
    original = _read(path)
    cmdline = Cmdline.parse(original)
    if not cmdline.set_root(device):
        raise InvalidArgumentError(f"No root= parameter in {path}")
    changed = _write_if_changed(path, original, cmdline.render())
    log.debug(f"cmdline {path}: root -> {device} ({'updated' if changed else 'unchanged'})")
    return changed
