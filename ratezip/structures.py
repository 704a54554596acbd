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
ZIP structure definitions, parsing and packing functions.

This module defines dataclasses for the ZIP records the reader needs
(local file headers, central directory headers, end of central directory
records and their ZIP64 counterparts), the ZipEntry metadata exposed to
callers, and the functions that serialize records for the writer.
"""

import stat
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    DATA_DESCRIPTOR,
    END_OF_CENTRAL_DIR,
    LOCAL_FILE_HEADER,
    MAX_FILE_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_EXTRA_FIELD_TAG,
    ZIP_SEP,
)
from .errors import ZipFormatError
from .utils import (
    dos_datetime_to_timestamp,
    read_exact,
    read_uint16,
    read_uint32,
    read_uint64,
)

_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_EOCD = struct.Struct("<IHHHHIIH")
_ZIP64_EOCD = struct.Struct("<IQHHIIQQQQ")
_ZIP64_LOCATOR = struct.Struct("<IIQI")


@dataclass
class LocalFileHeader:
    """Local file header structure.

    This header appears before each file's compressed data in the ZIP archive.
    """

    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename: bytes
    extra: bytes


@dataclass
class CentralDirectoryHeader:
    """Central directory header structure.

    This header appears in the central directory and contains information
    about a file entry, including a pointer to the local file header.
    """

    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    disk_num: int
    internal_attrs: int
    external_attrs: int
    local_header_offset: int
    filename: bytes
    extra: bytes
    comment: bytes

    @property
    def date_time(self) -> datetime:
        """Get modification date/time as datetime object."""
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record."""

    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment: bytes


@dataclass
class Zip64EndOfCentralDirectory:
    """ZIP64 End of Central Directory record."""

    size: int
    version_made_by: int
    version_needed: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int


@dataclass
class Zip64Locator:
    """ZIP64 End of Central Directory Locator."""

    disk_num: int
    zip64_eocd_offset: int
    total_disks: int


@dataclass
class Zip64ExtraField:
    """ZIP64 extra field data.

    Each value is present only when the matching 32-bit header field holds
    the 0xFFFFFFFF sentinel.
    """

    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    local_header_offset: Optional[int] = None


@dataclass
class ZipEntry:
    """ZIP entry metadata.

    This class represents a file or directory entry in a ZIP archive,
    combining information from the central directory header and
    ZIP64 extra fields.
    """

    name: str
    is_dir: bool
    compressed_size: int
    uncompressed_size: int
    crc32: int
    compression_method: int
    flags: int
    date_time: datetime
    local_header_offset: int
    external_attrs: int = 0
    comment: bytes = b""

    @property
    def mode(self) -> int:
        """Unix mode bits recorded for the entry (0 when not recorded)."""
        return (self.external_attrs >> 16) & 0xFFFF


def parse_local_file_header(f: BinaryIO) -> LocalFileHeader:
    """Parse a local file header from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc32,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
    ) = _LOCAL_HEADER.unpack(read_exact(f, _LOCAL_HEADER.size))
    if signature != LOCAL_FILE_HEADER:
        raise ZipFormatError(
            f"Invalid local file header signature: 0x{signature:08X}, "
            f"expected 0x{LOCAL_FILE_HEADER:08X}"
        )

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)

    return LocalFileHeader(
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc32,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        filename=filename,
        extra=extra,
    )


def parse_central_directory_header(f: BinaryIO) -> CentralDirectoryHeader:
    """Parse a central directory header from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        version_made_by,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc32,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
        comment_len,
        disk_num,
        internal_attrs,
        external_attrs,
        local_header_offset,
    ) = _CENTRAL_HEADER.unpack(read_exact(f, _CENTRAL_HEADER.size))
    if signature != CENTRAL_DIR_HEADER:
        raise ZipFormatError(
            f"Invalid central directory header signature: 0x{signature:08X}, "
            f"expected 0x{CENTRAL_DIR_HEADER:08X}"
        )

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)
    comment = read_exact(f, comment_len)

    return CentralDirectoryHeader(
        version_made_by=version_made_by,
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc32,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        disk_num=disk_num,
        internal_attrs=internal_attrs,
        external_attrs=external_attrs,
        local_header_offset=local_header_offset,
        filename=filename,
        extra=extra,
        comment=comment,
    )


def parse_eocd(f: BinaryIO) -> EndOfCentralDirectory:
    """Parse an End of Central Directory record from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        disk_num,
        cd_disk,
        cd_records_on_disk,
        cd_records_total,
        cd_size,
        cd_offset,
        comment_len,
    ) = _EOCD.unpack(read_exact(f, _EOCD.size))
    if signature != END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid EOCD signature: 0x{signature:08X}, "
            f"expected 0x{END_OF_CENTRAL_DIR:08X}"
        )

    comment = read_exact(f, comment_len)

    return EndOfCentralDirectory(
        disk_num=disk_num,
        cd_disk=cd_disk,
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
        comment=comment,
    )


def parse_zip64_eocd(f: BinaryIO) -> Zip64EndOfCentralDirectory:
    """Parse a ZIP64 End of Central Directory record from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        size,
        version_made_by,
        version_needed,
        disk_num,
        cd_disk,
        cd_records_on_disk,
        cd_records_total,
        cd_size,
        cd_offset,
    ) = _ZIP64_EOCD.unpack(read_exact(f, _ZIP64_EOCD.size))
    if signature != ZIP64_END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid ZIP64 EOCD signature: 0x{signature:08X}, "
            f"expected 0x{ZIP64_END_OF_CENTRAL_DIR:08X}"
        )

    return Zip64EndOfCentralDirectory(
        size=size,
        version_made_by=version_made_by,
        version_needed=version_needed,
        disk_num=disk_num,
        cd_disk=cd_disk,
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
    )


def parse_zip64_locator(f: BinaryIO) -> Zip64Locator:
    """Parse a ZIP64 locator from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature, disk_num, zip64_eocd_offset, total_disks = _ZIP64_LOCATOR.unpack(
        read_exact(f, _ZIP64_LOCATOR.size)
    )
    if signature != ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
        raise ZipFormatError(
            f"Invalid ZIP64 locator signature: 0x{signature:08X}, "
            f"expected 0x{ZIP64_END_OF_CENTRAL_DIR_LOCATOR:08X}"
        )

    return Zip64Locator(
        disk_num=disk_num,
        zip64_eocd_offset=zip64_eocd_offset,
        total_disks=total_disks,
    )


def parse_zip64_extra_field(
    extra_data: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: int,
) -> Optional[Zip64ExtraField]:
    """Parse the ZIP64 extra field out of a header's extra data.

    The 64-bit values appear in a fixed order but only for the header fields
    that hold the 0xFFFFFFFF sentinel, so the 32-bit values are needed to
    know which ones to read.

    Returns:
        Zip64ExtraField if the tag is present, None otherwise.

    Raises:
        ZipFormatError: If the field is shorter than the sentinels require.
    """
    pos = 0
    while pos + 4 <= len(extra_data):
        tag, size = struct.unpack_from("<HH", extra_data, pos)
        pos += 4
        if pos + size > len(extra_data):
            break

        if tag != ZIP64_EXTRA_FIELD_TAG:
            pos += size
            continue

        field_data = extra_data[pos : pos + size]
        values = []
        for sentinel in (uncompressed_size, compressed_size, local_header_offset):
            if sentinel != MAX_FILE_SIZE:
                values.append(None)
                continue
            offset = 8 * sum(v is not None for v in values)
            if offset + 8 > len(field_data):
                raise ZipFormatError("ZIP64 extra field is truncated")
            values.append(struct.unpack_from("<Q", field_data, offset)[0])

        return Zip64ExtraField(*values)

    return None


def entry_from_central_header(cd_header: CentralDirectoryHeader) -> ZipEntry:
    """Build a ZipEntry from a parsed central directory header."""
    if cd_header.flags & 0x0800:
        filename = cd_header.filename.decode("utf-8", errors="replace")
    else:
        try:
            filename = cd_header.filename.decode("utf-8")
        except UnicodeDecodeError:
            filename = cd_header.filename.decode("cp437")

    if "\\" in filename:
        filename = filename.replace("\\", ZIP_SEP)

    mode = (cd_header.external_attrs >> 16) & 0xFFFF
    is_dir = filename.endswith(ZIP_SEP) or stat.S_ISDIR(mode)

    uncompressed_size = cd_header.uncompressed_size
    compressed_size = cd_header.compressed_size
    local_header_offset = cd_header.local_header_offset

    zip64_extra = parse_zip64_extra_field(
        cd_header.extra, uncompressed_size, compressed_size, local_header_offset
    )
    if zip64_extra:
        if zip64_extra.original_size is not None:
            uncompressed_size = zip64_extra.original_size
        if zip64_extra.compressed_size is not None:
            compressed_size = zip64_extra.compressed_size
        if zip64_extra.local_header_offset is not None:
            local_header_offset = zip64_extra.local_header_offset

    return ZipEntry(
        name=filename,
        is_dir=is_dir,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        crc32=cd_header.crc32,
        compression_method=cd_header.compression_method,
        flags=cd_header.flags,
        date_time=cd_header.date_time,
        local_header_offset=local_header_offset,
        external_attrs=cd_header.external_attrs,
        comment=cd_header.comment,
    )


def pack_zip64_extra_field(*values: int) -> bytes:
    """Serialize a ZIP64 extra field holding the given 64-bit values."""
    body = b"".join(struct.pack("<Q", v) for v in values)
    return struct.pack("<HH", ZIP64_EXTRA_FIELD_TAG, len(body)) + body


def pack_local_file_header(
    *,
    version: int,
    flags: int,
    compression_method: int,
    mod_time: int,
    mod_date: int,
    filename: bytes,
    extra: bytes = b"",
    zip64: bool = False,
) -> bytes:
    """Serialize a local file header.

    CRC32 and sizes are written as zero; the writer always streams and
    records the real values in the data descriptor and central directory.
    With 'zip64', the 32-bit sizes hold the 0xFFFFFFFF sentinel and a
    zeroed ZIP64 extra field is prepended to 'extra', which tells streaming
    readers that the data descriptor carries 64-bit sizes.
    """
    size = 0
    if zip64:
        size = MAX_FILE_SIZE
        extra = pack_zip64_extra_field(0, 0) + extra
    return (
        _LOCAL_HEADER.pack(
            LOCAL_FILE_HEADER,
            version,
            flags,
            compression_method,
            mod_time,
            mod_date,
            0,
            size,
            size,
            len(filename),
            len(extra),
        )
        + filename
        + extra
    )


def pack_data_descriptor(
    crc32: int, compressed_size: int, uncompressed_size: int, zip64: bool
) -> bytes:
    """Serialize a data descriptor (with signature), 64-bit sizes if 'zip64'."""
    size_format = "<QQ" if zip64 else "<II"
    return struct.pack("<II", DATA_DESCRIPTOR, crc32) + struct.pack(
        size_format, compressed_size, uncompressed_size
    )


def pack_central_directory_header(
    *,
    version_made_by: int,
    version: int,
    flags: int,
    compression_method: int,
    mod_time: int,
    mod_date: int,
    crc32: int,
    compressed_size: int,
    uncompressed_size: int,
    external_attrs: int,
    local_header_offset: int,
    filename: bytes,
    extra: bytes = b"",
) -> bytes:
    """Serialize a central directory header (no comment, single disk)."""
    return (
        _CENTRAL_HEADER.pack(
            CENTRAL_DIR_HEADER,
            version_made_by,
            version,
            flags,
            compression_method,
            mod_time,
            mod_date,
            crc32,
            compressed_size,
            uncompressed_size,
            len(filename),
            len(extra),
            0,  # comment length
            0,  # disk number start
            0,  # internal attributes
            external_attrs,
            local_header_offset,
        )
        + filename
        + extra
    )


def pack_eocd(num_entries: int, cd_size: int, cd_offset: int) -> bytes:
    """Serialize a classic End of Central Directory record (no comment)."""
    return _EOCD.pack(
        END_OF_CENTRAL_DIR, 0, 0, num_entries, num_entries, cd_size, cd_offset, 0
    )


def pack_zip64_eocd(
    num_entries: int, cd_size: int, cd_offset: int, version_made_by: int, version: int
) -> bytes:
    """Serialize a ZIP64 End of Central Directory record."""
    # The size field excludes the signature and the size field itself
    return _ZIP64_EOCD.pack(
        ZIP64_END_OF_CENTRAL_DIR,
        ZIP64_END_OF_CENTRAL_DIR_SIZE - 12,
        version_made_by,
        version,
        0,
        0,
        num_entries,
        num_entries,
        cd_size,
        cd_offset,
    )


def pack_zip64_locator(zip64_eocd_offset: int) -> bytes:
    """Serialize a ZIP64 End of Central Directory Locator (single disk)."""
    return _ZIP64_LOCATOR.pack(
        ZIP64_END_OF_CENTRAL_DIR_LOCATOR, 0, zip64_eocd_offset, 1
    )
