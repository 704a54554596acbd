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
ZIP format constants: signatures, compression methods, flags, versions and
record sizes, plus the default transfer chunk size.
"""

import stat

# ZIP file signatures (magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR = 0x06064B50  # "PK\x06\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

# Compression methods. Entries are always written with deflate; stored
# entries are accepted on read so archives from other tools can be extracted.
COMP_STORED = 0
COMP_DEFLATE = 8

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

# ZIP version constants
VERSION_DEFAULT = 20  # Default version needed to extract (deflate, directories)
VERSION_ZIP64 = 45  # ZIP64 format version
VERSION_MADE_BY_UNIX = (3 << 8) | 63  # Host system Unix, APPNOTE version 6.3

# Classic ZIP limits (32-bit)
MAX_FILE_SIZE = 0xFFFFFFFF
MAX_ENTRIES = 0xFFFF
MAX_CD_SIZE = 0xFFFFFFFF
MAX_CD_OFFSET = 0xFFFFFFFF

# ZIP64 extra field tag
ZIP64_EXTRA_FIELD_TAG = 0x0001

# Fixed record sizes
END_OF_CENTRAL_DIR_SIZE = 22
ZIP64_END_OF_CENTRAL_DIR_SIZE = 56
ZIP64_LOCATOR_SIZE = 20

# EOCD may be followed by a comment of up to 65535 bytes
MAX_EOCD_SCAN = END_OF_CENTRAL_DIR_SIZE + 0xFFFF

# Default Unix modes for entries whose source mode is unknown
DEFAULT_FILE_MODE = stat.S_IFREG | 0o644
DEFAULT_DIR_MODE = stat.S_IFDIR | 0o755

# Bytes moved per read/write when streaming entry content
DEFAULT_CHUNK_SIZE = 32 * 1024

# ZIP entry name separator
ZIP_SEP = "/"
