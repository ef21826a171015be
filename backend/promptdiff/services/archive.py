"""
Tarball processing service.
Inflates the gzip layer of an npm tarball and splits the tar stream into
file entries.
"""

import zlib
from dataclasses import dataclass
from typing import Iterable, List, Optional
import logging

from promptdiff.core.errors import ArchiveDecodeError, ArchiveTooLarge

logger = logging.getLogger(__name__)


BLOCK_SIZE = 512

# Header field layout (POSIX tar, only the fields we read)
NAME_FIELD = slice(0, 100)
SIZE_FIELD = slice(124, 136)
TYPE_FLAG_OFFSET = 156

# Type flags that mark a regular file. Old archives leave the flag NUL.
REGULAR_FILE_FLAGS = (b"0", b"\0", b"")

# Inflate in chunks so the size cap is enforced before memory is spent
INFLATE_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ArchiveEntry:
    """A regular file extracted from the tarball"""
    path: str
    content: bytes
    size: int  # Size declared by the header

    def text(self) -> str:
        """Decode the entry as UTF-8, replacing undecodable bytes"""
        return self.content.decode("utf-8", errors="replace")


def decompress_gzip(data: bytes, max_size: Optional[int] = None) -> bytes:
    """
    Inflate a gzip stream.

    Args:
        data: Compressed bytes (the raw tarball download)
        max_size: Largest decompressed size accepted, None for no limit

    Raises:
        ArchiveDecodeError: If the data is not a complete gzip stream
        ArchiveTooLarge: If the output would exceed max_size
    """
    # 16 + MAX_WBITS: expect a gzip header and trailer
    inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)
    chunks: List[bytes] = []
    total = 0
    pending = data

    try:
        while pending:
            chunk = inflater.decompress(pending, INFLATE_CHUNK_SIZE)
            total += len(chunk)
            if max_size is not None and total > max_size:
                raise ArchiveTooLarge(
                    f"Decompressed archive exceeds {max_size} bytes",
                    {"limit": max_size},
                )
            chunks.append(chunk)
            pending = inflater.unconsumed_tail
            if inflater.eof:
                break
        tail = inflater.flush()
    except zlib.error as e:
        raise ArchiveDecodeError(f"Invalid gzip data: {e}") from e

    if not inflater.eof:
        raise ArchiveDecodeError("Truncated gzip data")

    total += len(tail)
    if max_size is not None and total > max_size:
        raise ArchiveTooLarge(
            f"Decompressed archive exceeds {max_size} bytes",
            {"limit": max_size},
        )
    chunks.append(tail)
    return b"".join(chunks)


def _parse_size(field: bytes) -> int:
    """Octal ASCII size, NUL-terminated and space padded. 0 when unreadable."""
    digits = field.split(b"\0", 1)[0]
    digits = b"".join(digits.split())
    try:
        return int(digits.decode("ascii"), 8)
    except (UnicodeDecodeError, ValueError):
        return 0


def _parse_path(field: bytes) -> str:
    return field.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def unpack(data: bytes) -> List[ArchiveEntry]:
    """
    Split an uncompressed tar stream into regular-file entries.

    Scanning stops at the end of the buffer, at the first all-zero block
    (end-of-archive marker) or when a header would not fit. Directories,
    links and other special entries are skipped but their content blocks
    are still stepped over. Malformed sizes read as 0.

    Args:
        data: Uncompressed tar bytes

    Returns:
        Entries in archive order
    """
    entries: List[ArchiveEntry] = []
    offset = 0
    length = len(data)

    while offset < length:
        if offset + BLOCK_SIZE > length:
            break

        header = data[offset:offset + BLOCK_SIZE]
        if not any(header):
            break

        path = _parse_path(header[NAME_FIELD])
        if not path:
            # Padding or a corrupt block
            offset += BLOCK_SIZE
            continue

        size = _parse_size(header[SIZE_FIELD])
        type_flag = header[TYPE_FLAG_OFFSET:TYPE_FLAG_OFFSET + 1]

        offset += BLOCK_SIZE

        if type_flag in REGULAR_FILE_FLAGS:
            entries.append(ArchiveEntry(
                path=path,
                content=data[offset:offset + size],
                size=size,
            ))
        else:
            logger.debug(f"Skipping non-file entry {path!r} (type {type_flag!r})")

        # Content is padded to the next block boundary
        offset += -(-size // BLOCK_SIZE) * BLOCK_SIZE

    return entries


def find_entry(entries: Iterable[ArchiveEntry], paths: Iterable[str]) -> Optional[ArchiveEntry]:
    """Return the first entry whose path is one of `paths`"""
    wanted = set(paths)
    for entry in entries:
        if entry.path in wanted:
            return entry
    return None
