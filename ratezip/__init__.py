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
ratezip - Rate-limited ZIP archiving in pure Python.

Create and extract ZIP archives from files and directory trees while
optionally capping sustained I/O throughput with a token bucket. Uses only
Python standard library modules.
"""

import logging

from .archiver import archive, archive_with_rate_limit, walk_source
from .config import TransferConfig
from .errors import (
    UnsafeEntryPath,
    ZipCompressionError,
    ZipCrcError,
    ZipError,
    ZipFormatError,
    ZipUnsupportedFeature,
)
from .extractor import extract, extract_with_rate_limit
from .ratelimit import TokenBucket
from .reader import ZipReader
from .stream import RateLimitedReader, RateLimitedWriter, copy_stream
from .structures import ZipEntry
from .writer import ZipWriter

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "archive",
    "archive_with_rate_limit",
    "extract",
    "extract_with_rate_limit",
    "walk_source",
    "copy_stream",
    "TransferConfig",
    "TokenBucket",
    "RateLimitedReader",
    "RateLimitedWriter",
    "ZipReader",
    "ZipWriter",
    "ZipEntry",
    "ZipError",
    "ZipFormatError",
    "UnsafeEntryPath",
    "ZipUnsupportedFeature",
    "ZipCrcError",
    "ZipCompressionError",
]

__version__ = "0.1.0"
