"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Utility functions for ratezip.

This module provides helper functions for CRC32 calculation, DOS date/time
conversion, safe binary I/O operations and the path normalization shared by
the archiver and the extractor.
"""

import os
import struct
import zlib
from datetime import datetime
from typing import BinaryIO

from .constants import ZIP_SEP
from .errors import UnsafeEntryPath, ZipFormatError


def crc32(data: bytes, value: int = 0) -> int:
    """Calculate (or continue) a CRC32 checksum.

    Args:
        data: Bytes to feed into the checksum.
        value: Running CRC32 from previous chunks (0 to start).

    Returns:
        CRC32 value as unsigned 32-bit integer.
    """
    return zlib.crc32(data, value) & 0xFFFFFFFF


def dos_datetime_to_timestamp(dos_date: int, dos_time: int) -> datetime:
    """Convert DOS date and time to Python datetime.

    DOS date format (16 bits):
        Bits 0-4: Day (1-31)
        Bits 5-8: Month (1-12)
        Bits 9-15: Year - 1980 (0-127, so 1980-2107)

    DOS time format (16 bits):
        Bits 0-4: Second / 2 (0-29, so 0-58 seconds in 2-second increments)
        Bits 5-10: Minute (0-59)
        Bits 11-15: Hour (0-23)

    Args:
        dos_date: DOS date value (16-bit unsigned integer).
        dos_time: DOS time value (16-bit unsigned integer).

    Returns:
        datetime object representing the DOS date/time.
    """
    day = dos_date & 0x1F
    month = (dos_date >> 5) & 0x0F
    year = ((dos_date >> 9) & 0x7F) + 1980

    second = (dos_time & 0x1F) * 2
    minute = (dos_time >> 5) & 0x3F
    hour = (dos_time >> 11) & 0x1F

    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        # Zeroed or garbage fields
        return datetime(1980, 1, 1, 0, 0, 0)


def timestamp_to_dos_datetime(dt: datetime) -> tuple[int, int]:
    """Convert Python datetime to DOS date and time.

    Years outside the representable 1980-2107 range are clamped to the
    nearest bound (the whole timestamp, not just the year field).

    Args:
        dt: datetime object to convert.

    Returns:
        Tuple of (dos_date, dos_time) as 16-bit unsigned integers.
    """
    if dt.year < 1980:
        dt = datetime(1980, 1, 1, 0, 0, 0)
    elif dt.year > 2107:
        dt = datetime(2107, 12, 31, 23, 59, 58)

    year = dt.year - 1980
    dos_date = dt.day | (dt.month << 5) | (year << 9)
    dos_time = (dt.second // 2) | (dt.minute << 5) | (dt.hour << 11)

    return (dos_date & 0xFFFF, dos_time & 0xFFFF)


def read_exact(f: BinaryIO, size: int) -> bytes:
    """Read exactly 'size' bytes from file, raising ZipFormatError on short read.

    Args:
        f: Binary file-like object to read from.
        size: Number of bytes to read.

    Returns:
        Exactly 'size' bytes of data.

    Raises:
        ZipFormatError: If fewer than 'size' bytes could be read or size is invalid.
    """
    if size < 0:
        raise ZipFormatError(f"Invalid read size: {size} (must be non-negative)")

    data = f.read(size)
    if len(data) != size:
        raise ZipFormatError(
            f"Unexpected end of file: expected {size} bytes, got {len(data)}"
        )
    return data


def read_uint16(f: BinaryIO) -> int:
    """Read a little-endian 16-bit unsigned integer from file."""
    return struct.unpack("<H", read_exact(f, 2))[0]


def read_uint32(f: BinaryIO) -> int:
    """Read a little-endian 32-bit unsigned integer from file."""
    return struct.unpack("<I", read_exact(f, 4))[0]


def read_uint64(f: BinaryIO) -> int:
    """Read a little-endian 64-bit unsigned integer from file."""
    return struct.unpack("<Q", read_exact(f, 8))[0]


def write_all(f: BinaryIO, data: bytes) -> int:
    """Write every byte of 'data' to 'f'.

    Raw (unbuffered) files may accept fewer bytes than offered, so this loops
    until the buffer is drained.

    Args:
        f: Binary file-like object to write to.
        data: Bytes to write.

    Returns:
        Number of bytes written (always len(data)).

    Raises:
        ZipFormatError: If the underlying write makes no progress.
    """
    view = memoryview(data)
    total = 0
    while total < len(view):
        written = f.write(view[total:])
        if written is None:
            # Buffered streams return None only in non-blocking mode
            written = len(view) - total
        if written <= 0:
            raise ZipFormatError(
                f"Write operation failed: wrote {total} of {len(view)} bytes"
            )
        total += written
    return total


def strip_trailing_separator(path: str) -> str:
    """Strip trailing path separators so entry names do not depend on them.

    A path made only of separators (the filesystem root) is returned as a
    single separator.
    """
    path = os.fspath(path)
    stripped = path.rstrip(os.sep)
    if os.altsep:
        stripped = stripped.rstrip(os.altsep)
    return stripped or path[:1]


def entry_name_for(root: str, path: str, is_dir: bool) -> str:
    """Build the archive entry name of 'path' for source path 'root'.

    The name is relative to the parent directory of 'root', so the base name
    of the source path becomes the top-level entry. Both paths are made
    absolute first, so a root such as ".." or "a/.." names the directory it
    resolves to. Separators are always '/', and directories carry a
    trailing '/'.

    Example:
        >>> entry_name_for("data/csv", "data/csv/a/b.csv", False)
        'csv/a/b.csv'
    """
    root = os.path.abspath(root)
    rel = os.path.relpath(os.path.abspath(path), os.path.dirname(root))
    name = rel.replace(os.sep, ZIP_SEP)
    if os.altsep:
        name = name.replace(os.altsep, ZIP_SEP)
    if is_dir and not name.endswith(ZIP_SEP):
        name += ZIP_SEP
    return name


def safe_extract_path(dest_dir: str, entry_name: str) -> str:
    """Resolve an entry name to a path under 'dest_dir'.

    Args:
        dest_dir: Extraction root.
        entry_name: Name as stored in the archive ('/'-separated).

    Returns:
        Destination path (joined, not resolved against symlinks).

    Raises:
        UnsafeEntryPath: If the name is empty, absolute, drive-qualified or
            contains '..' components.
    """
    name = entry_name.replace("\\", ZIP_SEP)
    if not name.strip(ZIP_SEP):
        raise UnsafeEntryPath(f"Empty entry name: {entry_name!r}")
    if name.startswith(ZIP_SEP) or (len(name) > 1 and name[1] == ":"):
        raise UnsafeEntryPath(f"Absolute entry name: {entry_name!r}")

    parts = [part for part in name.split(ZIP_SEP) if part not in ("", ".")]
    if ".." in parts:
        raise UnsafeEntryPath(f"Entry name escapes destination: {entry_name!r}")
    if "\x00" in name:
        raise UnsafeEntryPath(f"Entry name contains a null byte: {entry_name!r}")

    return os.path.join(dest_dir, *parts)
