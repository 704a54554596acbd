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
Custom exception classes for ratezip.

Archive-level problems raise one of the ZipError subclasses below.
Filesystem problems (missing source, permission denied, disk full) are
never wrapped: the original OSError reaches the caller unchanged.
"""


class ZipError(Exception):
    """Base exception class for all archive-related errors."""

    pass


class ZipFormatError(ZipError):
    """Raised when a ZIP file has an invalid format or structure.

    This exception is raised when:
    - Required signatures are missing or incorrect
    - The central directory is truncated or points outside the file
    - An operation is attempted on a closed archive
    """

    pass


class UnsafeEntryPath(ZipFormatError):
    """Raised when an entry name would resolve outside the extraction root.

    Absolute names, drive-qualified names and names containing ``..``
    components are refused before anything is written to disk.
    """

    pass


class ZipUnsupportedFeature(ZipError):
    """Raised when encountering an unsupported ZIP feature.

    This exception is raised when:
    - Compression method is neither stored nor deflate
    - Encryption is used (not supported)
    """

    pass


class ZipCrcError(ZipError):
    """Raised when CRC32 checksum validation fails.

    The check happens when an entry stream reaches its end, so the
    destination file may already hold the (bad) content when this is raised.
    """

    pass


class ZipCompressionError(ZipError):
    """Raised when compression or decompression fails."""

    pass
