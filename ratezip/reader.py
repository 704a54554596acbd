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
Streaming ZIP archive reader.

This module provides the ZipReader class for reading ZIP and ZIP64 archives.
The whole central directory is parsed when the archive is opened, so a
corrupt or truncated archive is rejected before any entry is touched.
Entry content is decompressed incrementally as it is read.
"""

import io
import os
import zlib
from typing import BinaryIO, Iterator, Optional

from .constants import (
    COMP_DEFLATE,
    COMP_STORED,
    DEFAULT_CHUNK_SIZE,
    FLAG_ENCRYPTED,
    MAX_EOCD_SCAN,
    ZIP64_LOCATOR_SIZE,
    ZIP_SEP,
)
from .errors import (
    ZipCompressionError,
    ZipCrcError,
    ZipFormatError,
    ZipUnsupportedFeature,
)
from .structures import (
    EndOfCentralDirectory,
    Zip64EndOfCentralDirectory,
    ZipEntry,
    entry_from_central_header,
    parse_central_directory_header,
    parse_eocd,
    parse_local_file_header,
    parse_zip64_eocd,
    parse_zip64_locator,
)
from .utils import crc32


class ZipReader:
    """Reader for ZIP and ZIP64 archives.

    Example:
        with ZipReader("archive.zip") as z:
            for entry in z.entries():
                with z.open(entry) as f:
                    data = f.read()
    """

    def __init__(self, file: str | BinaryIO):
        """Initialize ZipReader with a file path or file-like object.

        Args:
            file: Path to ZIP file (str or path-like) or seekable binary
                file-like object.

        Raises:
            OSError: If the path cannot be opened (e.g. FileNotFoundError).
            ZipFormatError: If the file is not a valid ZIP or its central
                directory is unreadable.
        """
        if hasattr(file, "__fspath__"):
            file = os.fspath(file)

        if isinstance(file, str):
            self._file = open(file, "rb")
            self._should_close = True
        else:
            for method in ("read", "seek", "tell"):
                if not hasattr(file, method):
                    raise ZipFormatError(
                        f"File-like object must have a {method}() method"
                    )
            self._file = file
            self._should_close = False

        self._entries: list[ZipEntry] = []
        self._by_name: dict[str, ZipEntry] = {}
        self._file_size: int = 0
        self._closed: bool = False

        try:
            self._parse_archive()
        except Exception:
            self.close()
            raise

    def _find_eocd(self) -> tuple[EndOfCentralDirectory, int]:
        """Find and parse the End of Central Directory record.

        Scans backward from the end of the file; the EOCD can be followed
        by up to 65535 bytes of comment.

        Returns:
            Tuple of (EOCD, absolute offset of the EOCD).

        Raises:
            ZipFormatError: If the EOCD cannot be found.
        """
        max_scan = min(MAX_EOCD_SCAN, self._file_size)
        self._file.seek(self._file_size - max_scan)
        data = self._file.read(max_scan)

        eocd_pos = data.rfind(b"PK\x05\x06")
        if eocd_pos == -1:
            raise ZipFormatError("End of Central Directory record not found")

        absolute_pos = self._file_size - len(data) + eocd_pos
        self._file.seek(absolute_pos)
        return parse_eocd(self._file), absolute_pos

    def _find_zip64_eocd(self, eocd_pos: int) -> Optional[Zip64EndOfCentralDirectory]:
        """Return the ZIP64 EOCD if a locator precedes the classic EOCD."""
        if eocd_pos < ZIP64_LOCATOR_SIZE:
            return None

        self._file.seek(eocd_pos - ZIP64_LOCATOR_SIZE)
        try:
            locator = parse_zip64_locator(self._file)
        except ZipFormatError:
            # No ZIP64 locator, this is a classic ZIP
            return None

        offset = locator.zip64_eocd_offset
        if offset < 0 or offset >= self._file_size:
            raise ZipFormatError(
                f"Invalid ZIP64 EOCD offset: {offset} (file size: {self._file_size})"
            )
        self._file.seek(offset)
        return parse_zip64_eocd(self._file)

    def _parse_archive(self) -> None:
        """Parse the central directory into ZipEntry objects."""
        self._file.seek(0, io.SEEK_END)
        self._file_size = self._file.tell()

        eocd, eocd_pos = self._find_eocd()
        zip64_eocd = self._find_zip64_eocd(eocd_pos)

        if zip64_eocd:
            cd_offset = zip64_eocd.cd_offset
            cd_size = zip64_eocd.cd_size
            num_entries = zip64_eocd.cd_records_total
        else:
            cd_offset = eocd.cd_offset
            cd_size = eocd.cd_size
            num_entries = eocd.cd_records_total

        if cd_offset > self._file_size or cd_offset + cd_size > self._file_size:
            raise ZipFormatError(
                f"Central directory extends beyond file: offset {cd_offset}, "
                f"size {cd_size} (file size: {self._file_size})"
            )

        self._file.seek(cd_offset)
        for _ in range(num_entries):
            entry = entry_from_central_header(parse_central_directory_header(self._file))
            self._entries.append(entry)
            self._by_name[entry.name] = entry

        if self._file.tell() > cd_offset + cd_size:
            raise ZipFormatError("Central directory is larger than recorded")

    def entries(self) -> list[ZipEntry]:
        """Return all entries in central directory order."""
        return list(self._entries)

    def list(self) -> list[str]:
        """List all entry names in central directory order."""
        return [entry.name for entry in self._entries]

    def get_info(self, name: str) -> Optional[ZipEntry]:
        """Get metadata for a specific entry, or None if it does not exist."""
        if "\\" in name:
            name = name.replace("\\", ZIP_SEP)
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[ZipEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def open(self, entry: str | ZipEntry) -> "ZipEntryReader":
        """Open an entry for reading its decompressed content.

        Args:
            entry: Entry name or ZipEntry from entries().

        Raises:
            ZipFormatError: If the archive is closed or the local header is bad.
            KeyError: If an entry name is not found.
            ZipUnsupportedFeature: If the entry is encrypted or uses an
                unsupported compression method.
        """
        if self._closed:
            raise ZipFormatError("Archive is closed")

        if isinstance(entry, str):
            info = self.get_info(entry)
            if info is None:
                raise KeyError(f"Entry not found: {entry}")
            entry = info

        if entry.flags & FLAG_ENCRYPTED:
            raise ZipUnsupportedFeature(
                f"Entry '{entry.name}' is encrypted (encryption not supported)"
            )
        if entry.compression_method not in (COMP_STORED, COMP_DEFLATE):
            raise ZipUnsupportedFeature(
                f"Unsupported compression method: {entry.compression_method}"
            )
        if entry.is_dir:
            return ZipEntryReader(self._file, entry, data_offset=0)

        offset = entry.local_header_offset
        if offset < 0 or offset >= self._file_size:
            raise ZipFormatError(
                f"Invalid local header offset for entry '{entry.name}': {offset} "
                f"(file size: {self._file_size})"
            )
        self._file.seek(offset)
        parse_local_file_header(self._file)
        data_offset = self._file.tell()

        if data_offset + entry.compressed_size > self._file_size:
            raise ZipFormatError(
                f"Compressed data extends beyond file for entry '{entry.name}'"
            )
        return ZipEntryReader(self._file, entry, data_offset)

    def close(self) -> None:
        """Close the archive file."""
        if self._closed:
            return

        if self._should_close and self._file:
            self._file.close()
        self._file = None
        self._closed = True

    def __enter__(self) -> "ZipReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


class ZipEntryReader:
    """Read-only stream over the decompressed content of one entry.

    Compressed bytes are pulled from the archive in chunks and inflated on
    demand. Size and CRC32 are verified once the compressed data is
    exhausted. Returned by ZipReader.open().
    """

    def __init__(self, file: BinaryIO, entry: ZipEntry, data_offset: int):
        self._file = file
        self._entry = entry
        self._position = data_offset
        self._remaining = 0 if entry.is_dir else entry.compressed_size
        self._decompressor = (
            zlib.decompressobj(-zlib.MAX_WBITS)
            if entry.compression_method == COMP_DEFLATE
            else None
        )
        self._buffer = b""
        self._crc = 0
        self._size = 0
        self._eof = entry.is_dir
        self.closed = False

    @property
    def name(self) -> str:
        return self._entry.name

    def readable(self) -> bool:
        return True

    def _fill(self, chunk_size: int) -> bytes:
        """Return the next piece of decompressed data (b"" once exhausted)."""
        decompressor = self._decompressor
        while not self._eof:
            if decompressor is not None and decompressor.unconsumed_tail:
                raw = decompressor.unconsumed_tail
            elif self._remaining > 0:
                # The archive handle may be shared, so always seek first
                self._file.seek(self._position)
                raw = self._file.read(min(chunk_size, self._remaining))
                if not raw:
                    raise ZipFormatError(
                        f"Unexpected end of file in entry '{self.name}'"
                    )
                self._position += len(raw)
                self._remaining -= len(raw)
            else:
                raw = b""

            if decompressor is None:
                data = raw
                self._eof = self._remaining == 0
            else:
                try:
                    # Bounded output; leftover input is kept in unconsumed_tail
                    data = decompressor.decompress(raw, chunk_size)
                    self._eof = decompressor.eof or (
                        self._remaining == 0 and not decompressor.unconsumed_tail
                    )
                    if self._eof:
                        data += decompressor.flush()
                except zlib.error as e:
                    raise ZipCompressionError(
                        f"Deflate decompression failed for '{self.name}': {e}"
                    ) from e

            if data:
                self._crc = crc32(data, self._crc)
                self._size += len(data)
            if self._eof:
                self._verify()
            if data:
                return data
        return b""

    def _verify(self) -> None:
        if self._decompressor is not None and not self._decompressor.eof:
            raise ZipCompressionError(
                f"Deflate stream for '{self.name}' ended prematurely"
            )
        if self._size != self._entry.uncompressed_size:
            raise ZipFormatError(
                f"Size mismatch for '{self.name}': expected "
                f"{self._entry.uncompressed_size}, got {self._size}"
            )
        if self._crc != self._entry.crc32:
            raise ZipCrcError(
                f"CRC32 mismatch for '{self.name}': expected "
                f"0x{self._entry.crc32:08X}, got 0x{self._crc:08X}"
            )

    def read(self, size: int = -1) -> bytes:
        """Read up to 'size' decompressed bytes (all remaining if negative)."""
        if self.closed:
            raise ValueError("I/O operation on closed entry")

        if size is None or size < 0:
            parts = [self._buffer]
            self._buffer = b""
            while True:
                data = self._fill(DEFAULT_CHUNK_SIZE)
                if not data:
                    break
                parts.append(data)
            return b"".join(parts)

        while len(self._buffer) < size and not self._eof:
            self._buffer += self._fill(max(size, DEFAULT_CHUNK_SIZE))
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "ZipEntryReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
