"""
Tests for gzip inflation and tar unpacking
"""
import gzip
import io
import tarfile

import pytest

from promptdiff.core.errors import ArchiveDecodeError, ArchiveTooLarge
from promptdiff.services.archive import (
    BLOCK_SIZE,
    ArchiveEntry,
    decompress_gzip,
    find_entry,
    unpack,
)


def tar_header(path: str, size: int, type_flag: bytes = b"0", size_field: bytes = None) -> bytes:
    header = bytearray(BLOCK_SIZE)
    name = path.encode("utf-8")
    header[0:len(name)] = name
    header[124:136] = size_field if size_field is not None else f"{size:011o}\0".encode("ascii")
    header[156:157] = type_flag
    return bytes(header)


def tar_member(path: str, content: bytes, type_flag: bytes = b"0") -> bytes:
    padding = -len(content) % BLOCK_SIZE
    return tar_header(path, len(content), type_flag) + content + b"\0" * padding


ZERO_BLOCK = b"\0" * BLOCK_SIZE


class TestUnpack:
    """Tests for the tar stream splitter"""

    def test_hand_built_archive(self):
        """N members plus a terminator yield exactly N entries in order"""
        contents = [
            ("package/a.txt", b"hello"),
            ("package/exact.bin", b"x" * BLOCK_SIZE),
            ("package/long.txt", b"y" * 700),
            ("package/empty", b""),
        ]
        data = b"".join(tar_member(p, c) for p, c in contents) + ZERO_BLOCK + b"garbage after end"

        entries = unpack(data)

        assert [e.path for e in entries] == [p for p, _ in contents]
        for entry, (_, content) in zip(entries, contents):
            assert entry.content == content
            assert entry.size == len(content)

    def test_skips_directories_and_links(self):
        """Special entries are dropped but their content is stepped over"""
        data = (
            tar_member("package/", b"", type_flag=b"5")
            + tar_member("package/link", b"z" * 600, type_flag=b"2")
            + tar_member("package/cli.js", b"console.log(1)")
            + ZERO_BLOCK
        )

        entries = unpack(data)

        assert [e.path for e in entries] == ["package/cli.js"]
        assert entries[0].content == b"console.log(1)"

    def test_nul_and_empty_type_flags_are_regular(self):
        data = tar_member("a", b"1", type_flag=b"\0") + tar_member("b", b"2", type_flag=b"0")
        assert [e.path for e in unpack(data)] == ["a", "b"]

    def test_stdlib_tarfile_archive(self):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as tar:
            directory = tarfile.TarInfo("package")
            directory.type = tarfile.DIRTYPE
            tar.addfile(directory)
            for path, content in [("package/cli.js", b"// cli"), ("package/README.md", b"# readme")]:
                info = tarfile.TarInfo(path)
                info.size = len(content)
                tar.addfile(info, io.BytesIO(content))

        entries = unpack(buffer.getvalue())

        assert [(e.path, e.content) for e in entries] == [
            ("package/cli.js", b"// cli"),
            ("package/README.md", b"# readme"),
        ]

    def test_empty_path_block_is_skipped(self):
        blank = bytearray(BLOCK_SIZE)
        blank[200] = 1  # not all zero, but no path
        data = bytes(blank) + tar_member("package/cli.js", b"ok")
        assert [e.path for e in unpack(data)] == ["package/cli.js"]

    def test_malformed_size_reads_as_zero(self):
        header = tar_header("package/weird", 0, size_field=b"not-octal!!\0")
        data = header + tar_member("package/cli.js", b"ok")

        entries = unpack(data)

        assert entries[0].path == "package/weird"
        assert entries[0].size == 0
        assert entries[1].content == b"ok"

    def test_space_padded_size(self):
        header = tar_header("package/x", 0, size_field=b"     5 \0    ")
        data = header + b"abcde" + b"\0" * (BLOCK_SIZE - 5)
        assert unpack(data)[0].content == b"abcde"

    def test_header_that_does_not_fit_stops_scan(self):
        data = tar_member("package/a", b"1") + b"\x01" * 100
        assert [e.path for e in unpack(data)] == ["package/a"]

    def test_garbage_terminates(self):
        assert unpack(b"\x01" * 2000) == []

    def test_empty_buffer(self):
        assert unpack(b"") == []

    def test_truncated_content_is_kept_short(self):
        data = tar_header("package/cut", 100) + b"only-part"
        entries = unpack(data)
        assert entries[0].size == 100
        assert entries[0].content == b"only-part"

    def test_entry_text_replaces_invalid_utf8(self):
        entry = ArchiveEntry(path="x", content=b"ok\xff", size=3)
        assert entry.text() == "ok\ufffd"


class TestFindEntry:

    def test_first_matching_entry_wins(self):
        entries = [
            ArchiveEntry("package/cli.mjs", b"m", 1),
            ArchiveEntry("package/cli.js", b"j", 1),
        ]
        assert find_entry(entries, ["package/cli.js", "package/cli.mjs"]).content == b"m"

    def test_no_match(self):
        assert find_entry([ArchiveEntry("package/index.js", b"", 0)], ["package/cli.js"]) is None


class TestDecompressGzip:

    def test_round_trip(self):
        payload = b"tar bytes " * 1000
        assert decompress_gzip(gzip.compress(payload)) == payload

    def test_not_gzip(self):
        with pytest.raises(ArchiveDecodeError):
            decompress_gzip(b"definitely not gzip")

    def test_truncated_stream(self):
        data = gzip.compress(b"x" * 10000)
        with pytest.raises(ArchiveDecodeError):
            decompress_gzip(data[:len(data) // 2])

    def test_size_cap(self):
        with pytest.raises(ArchiveTooLarge) as exc_info:
            decompress_gzip(gzip.compress(b"a" * 10000), max_size=100)
        assert exc_info.value.details["limit"] == 100

    def test_size_cap_not_hit(self):
        assert decompress_gzip(gzip.compress(b"a" * 100), max_size=100) == b"a" * 100
