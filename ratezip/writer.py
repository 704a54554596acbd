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
Streaming ZIP archive writer.

This module provides the ZipWriter class for creating ZIP and ZIP64 archives.
Entry content is compressed incrementally as it is written and sizes are
recorded in data descriptors, so arbitrarily large files are archived
without holding their content in memory.
"""

import logging
import os
import stat
import zlib
from datetime import datetime
from typing import BinaryIO, Optional

from .constants import (
    COMP_DEFLATE,
    COMP_STORED,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DIR_MODE,
    DEFAULT_FILE_MODE,
    FLAG_DATA_DESCRIPTOR,
    FLAG_UTF8,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    VERSION_DEFAULT,
    VERSION_MADE_BY_UNIX,
    VERSION_ZIP64,
    ZIP_SEP,
)
from .errors import ZipCompressionError, ZipFormatError
from .structures import (
    pack_central_directory_header,
    pack_data_descriptor,
    pack_eocd,
    pack_local_file_header,
    pack_zip64_eocd,
    pack_zip64_extra_field,
    pack_zip64_locator,
)
from .utils import crc32, timestamp_to_dos_datetime, write_all

logger = logging.getLogger(__name__)

_MS_DOS_DIRECTORY = 0x10


class ZipWriter:
    """Writer for ZIP and ZIP64 archives.

    Every file entry is deflate-compressed. Directory entries are stored
    with a trailing '/' and no content.

    Example:
        with ZipWriter("archive.zip") as z:
            z.add_directory("docs/")
            with open("/path/to/doc.pdf", "rb") as f:
                z.add_stream("docs/doc.pdf", f)
    """

    def __init__(
        self,
        file: str | BinaryIO,
        compresslevel: int = zlib.Z_DEFAULT_COMPRESSION,
    ):
        """Initialize ZipWriter with a file path or file-like object.

        Args:
            file: Path to ZIP file (str or path-like) or binary file-like
                object opened for writing. Offsets are counted from the
                position the object is at when handed over.
            compresslevel: zlib compression level for deflate entries.

        Raises:
            OSError: If the path cannot be opened for writing.
            ZipFormatError: If the file-like object is not writable.
        """
        if hasattr(file, "__fspath__"):
            file = os.fspath(file)

        if isinstance(file, str):
            self._file = open(file, "wb")
            self._should_close = True
        else:
            if not hasattr(file, "write"):
                raise ZipFormatError("File-like object must have a write() method")
            self._file = file
            self._should_close = False

        self._compresslevel = compresslevel
        self._entries: list[dict] = []
        self._current_offset: int = 0
        self._open_entry: Optional["ZipEntryWriter"] = None
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, data: bytes) -> None:
        if self._file is None:
            raise ZipFormatError("Archive file is closed")
        self._current_offset += write_all(self._file, data)

    def _check_writable(self) -> None:
        if self._closed:
            raise ZipFormatError("Archive is closed")
        if self._open_entry is not None:
            raise ZipFormatError(
                f"Entry '{self._open_entry.name}' is still open for writing"
            )

    @staticmethod
    def _normalize_name(name: str) -> bytes:
        """Validate an entry name and return its UTF-8 encoding."""
        if "\\" in name:
            name = name.replace("\\", ZIP_SEP)
        if not name:
            raise ZipFormatError("Entry name cannot be empty")
        if "\x00" in name:
            raise ZipFormatError("Entry name cannot contain null bytes")

        name_bytes = name.encode("utf-8")
        if len(name_bytes) > 0xFFFF:
            raise ZipFormatError(
                f"Entry name too long: {len(name_bytes)} bytes (max 65535 bytes)"
            )
        return name_bytes

    def _begin_entry(
        self,
        name: str,
        *,
        is_dir: bool,
        mode: Optional[int],
        date_time: Optional[datetime],
    ) -> dict:
        """Write the local file header of a new entry and return its record."""
        self._check_writable()

        if is_dir and not name.endswith(ZIP_SEP):
            name += ZIP_SEP
        name_bytes = self._normalize_name(name)

        if mode is None:
            mode = DEFAULT_DIR_MODE if is_dir else DEFAULT_FILE_MODE
        elif stat.S_IFMT(mode) == 0:
            mode |= stat.S_IFDIR if is_dir else stat.S_IFREG
        external_attrs = (mode & 0xFFFF) << 16
        if is_dir:
            external_attrs |= _MS_DOS_DIRECTORY

        mod_date, mod_time = timestamp_to_dos_datetime(date_time or datetime.now())

        # Sizes are unknown until streamed: file entries always reserve ZIP64
        # in the local header and close with a 64-bit data descriptor
        if is_dir:
            flags = FLAG_UTF8
            compression_method = COMP_STORED
        else:
            flags = FLAG_UTF8 | FLAG_DATA_DESCRIPTOR
            compression_method = COMP_DEFLATE
        zip64 = not is_dir

        entry_info = {
            "name": name_bytes.decode("utf-8"),
            "name_bytes": name_bytes,
            "is_dir": is_dir,
            "flags": flags,
            "compression_method": compression_method,
            "mod_time": mod_time,
            "mod_date": mod_date,
            "external_attrs": external_attrs,
            "zip64": zip64,
            "local_header_offset": self._current_offset,
            "crc32": 0,
            "compressed_size": 0,
            "uncompressed_size": 0,
        }

        self._write(
            pack_local_file_header(
                version=VERSION_ZIP64 if zip64 else VERSION_DEFAULT,
                flags=flags,
                compression_method=compression_method,
                mod_time=mod_time,
                mod_date=mod_date,
                filename=name_bytes,
                zip64=zip64,
            )
        )
        return entry_info

    def _finish_entry(self, entry_info: dict) -> None:
        """Write the data descriptor of a file entry and queue it for the index."""
        if entry_info["flags"] & FLAG_DATA_DESCRIPTOR:
            self._write(
                pack_data_descriptor(
                    entry_info["crc32"],
                    entry_info["compressed_size"],
                    entry_info["uncompressed_size"],
                    entry_info["zip64"],
                )
            )
        self._open_entry = None
        self._entries.append(entry_info)
        logger.debug(
            "zip: wrote entry %s (%d -> %d bytes)",
            entry_info["name"],
            entry_info["uncompressed_size"],
            entry_info["compressed_size"],
        )

    def add_directory(
        self,
        name: str,
        mode: Optional[int] = None,
        date_time: Optional[datetime] = None,
    ) -> None:
        """Add a directory entry.

        Args:
            name: Entry name; a trailing '/' is appended if missing.
            mode: Unix mode bits (defaults to 0o755).
            date_time: Modification time (defaults to now).

        Raises:
            ZipFormatError: If the archive is closed or an entry is open.
        """
        entry_info = self._begin_entry(
            name, is_dir=True, mode=mode, date_time=date_time
        )
        self._finish_entry(entry_info)

    def open_entry(
        self,
        name: str,
        mode: Optional[int] = None,
        date_time: Optional[datetime] = None,
    ) -> "ZipEntryWriter":
        """Start a file entry and return a writable stream for its content.

        Only one entry may be open at a time. Closing the returned stream
        (or leaving its ``with`` block) finalizes the entry.

        Args:
            name: Entry name (path within ZIP archive).
            mode: Unix mode bits (defaults to 0o644).
            date_time: Modification time (defaults to now).

        Raises:
            ZipFormatError: If the archive is closed, another entry is open
                or the name is invalid.
        """
        entry_info = self._begin_entry(
            name, is_dir=False, mode=mode, date_time=date_time
        )
        self._open_entry = ZipEntryWriter(self, entry_info, self._compresslevel)
        return self._open_entry

    def add_stream(
        self,
        name: str,
        stream: BinaryIO,
        mode: Optional[int] = None,
        date_time: Optional[datetime] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """Add a file entry from a stream of unknown size.

        The stream is read in chunks of ``chunk_size`` bytes until EOF.

        Returns:
            Number of uncompressed bytes written.
        """
        if not hasattr(stream, "read"):
            raise ZipFormatError("Stream object must have a read() method")

        with self.open_entry(name, mode=mode, date_time=date_time) as dst:
            while True:
                chunk = stream.read(chunk_size)
                if not chunk:
                    break
                dst.write(chunk)
            return dst.size

    def add_bytes(
        self,
        name: str,
        data: bytes,
        mode: Optional[int] = None,
        date_time: Optional[datetime] = None,
    ) -> None:
        """Add a file entry from bytes data."""
        with self.open_entry(name, mode=mode, date_time=date_time) as dst:
            dst.write(data)

    def add_file(
        self,
        name_in_zip: str,
        source_path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """Add a file entry from a file on disk, recording its mode and mtime.

        Raises:
            OSError: If the source file cannot be read.
        """
        st = os.stat(source_path)
        with open(source_path, "rb") as f:
            return self.add_stream(
                name_in_zip,
                f,
                mode=st.st_mode,
                date_time=datetime.fromtimestamp(st.st_mtime),
                chunk_size=chunk_size,
            )

    def _write_central_directory(self) -> tuple[int, int, bool]:
        """Write the central directory containing all entry headers.

        Returns:
            Tuple of (cd_offset, cd_size, any_entry_needed_zip64).
        """
        cd_start_offset = self._current_offset
        needs_zip64 = False

        for entry_info in self._entries:
            compressed_size = entry_info["compressed_size"]
            uncompressed_size = entry_info["uncompressed_size"]
            local_header_offset = entry_info["local_header_offset"]

            # Only overflowing fields go into the ZIP64 extra field, in this order
            zip64_values = []
            if uncompressed_size >= MAX_FILE_SIZE:
                zip64_values.append(uncompressed_size)
                uncompressed_size = MAX_FILE_SIZE
            if compressed_size >= MAX_FILE_SIZE:
                zip64_values.append(compressed_size)
                compressed_size = MAX_FILE_SIZE
            if local_header_offset >= MAX_FILE_SIZE:
                zip64_values.append(local_header_offset)
                local_header_offset = MAX_FILE_SIZE

            extra = pack_zip64_extra_field(*zip64_values) if zip64_values else b""
            if zip64_values:
                needs_zip64 = True

            self._write(
                pack_central_directory_header(
                    version_made_by=VERSION_MADE_BY_UNIX,
                    version=(
                        VERSION_ZIP64
                        if zip64_values or entry_info["zip64"]
                        else VERSION_DEFAULT
                    ),
                    flags=entry_info["flags"],
                    compression_method=entry_info["compression_method"],
                    mod_time=entry_info["mod_time"],
                    mod_date=entry_info["mod_date"],
                    crc32=entry_info["crc32"],
                    compressed_size=compressed_size,
                    uncompressed_size=uncompressed_size,
                    external_attrs=entry_info["external_attrs"],
                    local_header_offset=local_header_offset,
                    filename=entry_info["name_bytes"],
                    extra=extra,
                )
            )

        cd_size = self._current_offset - cd_start_offset
        return cd_start_offset, cd_size, needs_zip64

    def _write_eocd(self, cd_offset: int, cd_size: int, needs_zip64: bool) -> None:
        """Write the End of Central Directory record.

        If ZIP64 is needed, also writes the ZIP64 EOCD and locator first and
        saturates the classic fields.
        """
        num_entries = len(self._entries)
        needs_zip64 = (
            needs_zip64
            or num_entries >= MAX_ENTRIES
            or cd_size >= MAX_CD_SIZE
            or cd_offset >= MAX_CD_OFFSET
        )

        if needs_zip64:
            zip64_eocd_offset = self._current_offset
            self._write(
                pack_zip64_eocd(
                    num_entries, cd_size, cd_offset, VERSION_MADE_BY_UNIX, VERSION_ZIP64
                )
            )
            self._write(pack_zip64_locator(zip64_eocd_offset))
            self._write(
                pack_eocd(
                    min(num_entries, MAX_ENTRIES),
                    min(cd_size, MAX_CD_SIZE),
                    min(cd_offset, MAX_CD_OFFSET),
                )
            )
        else:
            self._write(pack_eocd(num_entries, cd_size, cd_offset))

    def close(self) -> None:
        """Finish any open entry, write central directory and EOCD, then close.

        The index is written even if an earlier entry failed part-way, so a
        partially written archive remains readable up to the failing entry.
        """
        if self._closed:
            return

        try:
            if self._open_entry is not None:
                self._open_entry.close()
            cd_offset, cd_size, needs_zip64 = self._write_central_directory()
            self._write_eocd(cd_offset, cd_size, needs_zip64)
            if hasattr(self._file, "flush"):
                self._file.flush()
        finally:
            if self._should_close and self._file:
                self._file.close()
            self._file = None
            self._closed = True

    def __enter__(self) -> "ZipWriter":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


class ZipEntryWriter:
    """Write-only stream for the content of one archive entry.

    Data is CRC'd and deflated as it arrives and forwarded to the archive
    immediately. Returned by ZipWriter.open_entry().
    """

    def __init__(self, archive: ZipWriter, entry_info: dict, compresslevel: int):
        self._archive = archive
        self._entry_info = entry_info
        self._compressor = zlib.compressobj(
            compresslevel, zlib.DEFLATED, -zlib.MAX_WBITS
        )
        self.closed = False

    @property
    def name(self) -> str:
        return self._entry_info["name"]

    @property
    def size(self) -> int:
        """Uncompressed bytes written so far."""
        return self._entry_info["uncompressed_size"]

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ZipFormatError(f"Entry '{self.name}' is closed")

        entry_info = self._entry_info
        entry_info["crc32"] = crc32(data, entry_info["crc32"])
        entry_info["uncompressed_size"] += len(data)
        try:
            compressed = self._compressor.compress(data)
        except zlib.error as e:
            raise ZipCompressionError(f"Deflate compression failed: {e}") from e
        if compressed:
            self._archive._write(compressed)
            entry_info["compressed_size"] += len(compressed)
        return len(data)

    def close(self) -> None:
        """Flush the compressor and write the entry's data descriptor."""
        if self.closed:
            return
        self.closed = True

        try:
            tail = self._compressor.flush()
        except zlib.error as e:
            raise ZipCompressionError(f"Deflate compression failed: {e}") from e
        try:
            if tail:
                self._archive._write(tail)
                self._entry_info["compressed_size"] += len(tail)
        finally:
            self._archive._finish_entry(self._entry_info)

    def __enter__(self) -> "ZipEntryWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
