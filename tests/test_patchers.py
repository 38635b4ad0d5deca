"""Tests for boot/patchers.py - fstab and cmdline rewriting.

This test suite covers:
- Verbatim round trip of unmodified files
- Root entry matching on the exact "/" mount point
- Idempotency of repeated patching
- root= replacement at any position in the cmdline
- Errors for missing files and missing entries
"""

import pytest

from rpi_multiboot.boot.patchers import (
    Cmdline,
    FstabLine,
    FstabTable,
    update_cmdline,
    update_fstab,
)
from rpi_multiboot.storage.exceptions import InvalidArgumentError


class TestFstabTable:
    """Tests for the fstab parser and serializer."""

    def test_render_unmodified_is_verbatim(self):
        """Test parsing then rendering returns the input unchanged."""
        text = "# comment\n\n  /dev/sda1\t/data  ext4 defaults 0 2\n/dev/sda2 / ext4 defaults 0 1"
        assert FstabTable.parse(text).render() == text

    def test_root_entry_found(self, fstab_text):
        """Test the entry mounted at / is found."""
        table = FstabTable.parse(fstab_text)
        entry = table.root_entry()
        assert entry is not None
        assert entry.source == "/dev/mmcblk0p2"
        assert entry.mountpoint == "/"

    def test_set_root_source_keeps_separators(self):
        """Test the separators of the patched line are preserved."""
        table = FstabTable.parse("/dev/mmcblk0p2  /  ext4\tdefaults  0  1\n")
        assert table.set_root_source("/dev/sdb2") == 1
        assert table.render() == "/dev/sdb2  /  ext4\tdefaults  0  1\n"

    def test_boot_entry_is_not_root(self):
        """Test /boot is not matched as a substring of /."""
        table = FstabTable.parse("/dev/mmcblk0p1 /boot vfat defaults 0 2\n")
        assert table.root_entry() is None
        assert table.set_root_source("/dev/sdb2") == 0

    def test_comment_mentioning_root_is_untouched(self):
        """Test commented-out root lines are not entries."""
        line = FstabLine.parse("#/dev/sda2 / ext4 defaults 0 1\n")
        assert line.is_entry is False
        assert line.fields == []

    def test_partuuid_source_replaced(self):
        """Test PARTUUID sources are replaced by the device path."""
        table = FstabTable.parse("PARTUUID=1234abcd-02  /  ext4  defaults,noatime  0  1\n")
        table.set_root_source("/dev/sda2")
        assert table.render() == "/dev/sda2  /  ext4  defaults,noatime  0  1\n"


class TestUpdateFstab:
    """Tests for update_fstab()."""

    def test_only_root_line_changes(self, tmp_path, fstab_text):
        """Test all other lines stay byte-identical."""
        fstab = tmp_path / "fstab"
        fstab.write_text(fstab_text, encoding="utf-8")

        assert update_fstab("sdb2", fstab) is True

        original_lines = fstab_text.splitlines(keepends=True)
        new_lines = fstab.read_text(encoding="utf-8").splitlines(keepends=True)
        assert len(new_lines) == len(original_lines)
        for old, new in zip(original_lines, new_lines):
            if old.startswith("/dev/mmcblk0p2"):
                assert new == old.replace("/dev/mmcblk0p2", "/dev/sdb2")
            else:
                assert new == old

    def test_idempotent(self, tmp_path, fstab_text):
        """Test applying twice gives the same result as applying once."""
        fstab = tmp_path / "fstab"
        fstab.write_text(fstab_text, encoding="utf-8")

        update_fstab("/dev/sdb2", fstab)
        once = fstab.read_text(encoding="utf-8")
        assert update_fstab("/dev/sdb2", fstab) is False
        assert fstab.read_text(encoding="utf-8") == once
        assert "/dev//dev/" not in once

    def test_accepts_name_or_path(self, tmp_path, fstab_text):
        """Test 'sdb2' and '/dev/sdb2' produce the same file."""
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.write_text(fstab_text, encoding="utf-8")
        second.write_text(fstab_text, encoding="utf-8")

        update_fstab("sdb2", first)
        update_fstab("/dev/sdb2", second)

        assert first.read_text(encoding="utf-8") == second.read_text(encoding="utf-8")

    def test_missing_root_entry(self, tmp_path):
        """Test a table without / raises InvalidArgumentError."""
        fstab = tmp_path / "fstab"
        fstab.write_text("proc /proc proc defaults 0 0\n", encoding="utf-8")

        with pytest.raises(InvalidArgumentError, match="No root"):
            update_fstab("sdb2", fstab)

    def test_missing_file(self, tmp_path):
        """Test a missing fstab raises InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError, match="not found"):
            update_fstab("sdb2", tmp_path / "nope")


class TestCmdline:
    """Tests for the cmdline parser and update_cmdline()."""

    def test_render_unmodified_is_verbatim(self, cmdline_text):
        """Test parsing then rendering returns the input unchanged."""
        assert Cmdline.parse(cmdline_text).render() == cmdline_text

    def test_root_value(self, cmdline_text):
        """Test the root= value is read."""
        assert Cmdline.parse(cmdline_text).root == "/dev/mmcblk0p2"

    @pytest.mark.parametrize(
        "original,expected",
        [
            ("root=/dev/mmcblk0p2 quiet splash", "root=/dev/sdb2 quiet splash"),
            ("quiet root=PARTUUID=abcd-02 splash", "quiet root=/dev/sdb2 splash"),
            ("quiet splash root=/dev/sda2", "quiet splash root=/dev/sdb2"),
        ],
    )
    def test_root_replaced_at_any_position(self, tmp_path, original, expected):
        """Test only the root= token changes wherever it is."""
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_text(original + "\n", encoding="utf-8")

        update_cmdline("sdb2", cmdline)

        assert cmdline.read_text(encoding="utf-8") == expected + "\n"

    def test_similar_keys_untouched(self, tmp_path, cmdline_text):
        """Test rootfstype= and rootwait are not mistaken for root=."""
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_text(cmdline_text, encoding="utf-8")

        update_cmdline("/dev/sdb2", cmdline)

        tokens = cmdline.read_text(encoding="utf-8").split()
        assert "root=/dev/sdb2" in tokens
        assert "rootfstype=ext4" in tokens
        assert "rootwait" in tokens
        assert len(tokens) == len(cmdline_text.split())

    def test_idempotent(self, tmp_path, cmdline_text):
        """Test repeated application does not drift."""
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_text(cmdline_text, encoding="utf-8")

        update_cmdline("/dev/sdb2", cmdline)
        once = cmdline.read_text(encoding="utf-8")
        assert update_cmdline("/dev/sdb2", cmdline) is False
        assert cmdline.read_text(encoding="utf-8") == once

    def test_no_trailing_newline_preserved(self, tmp_path):
        """Test a cmdline without a trailing newline keeps it that way."""
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_text("root=/dev/sda2 rootwait", encoding="utf-8")

        update_cmdline("sdb2", cmdline)

        assert cmdline.read_text(encoding="utf-8") == "root=/dev/sdb2 rootwait"

    def test_missing_root_token(self, tmp_path):
        """Test a cmdline without root= raises InvalidArgumentError."""
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_text("quiet splash\n", encoding="utf-8")

        with pytest.raises(InvalidArgumentError, match="No root="):
            update_cmdline("sdb2", cmdline)


class TestUndecodableBytes:
    """Tests for files carrying bytes that are not valid UTF-8."""

    def test_fstab_latin1_comment_preserved(self, tmp_path):
        fstab = tmp_path / "fstab"
        fstab.write_bytes(b"# caf\xe9\n/dev/mmcblk0p2 / ext4 defaults 0 1\n")

        assert update_fstab("sdb2", fstab) is True

        assert fstab.read_bytes() == b"# caf\xe9\n/dev/sdb2 / ext4 defaults 0 1\n"

    def test_cmdline_raw_bytes_preserved(self, tmp_path):
        cmdline = tmp_path / "cmdline.txt"
        cmdline.write_bytes(b"root=/dev/sda2 splash=\xff rootwait\n")

        update_cmdline("/dev/sdb2", cmdline)

        assert cmdline.read_bytes() == b"root=/dev/sdb2 splash=\xff rootwait\n"
