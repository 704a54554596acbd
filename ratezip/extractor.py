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
Extract a ZIP archive into a directory.

Entries are recreated in central directory order. Directory entries become
directories (even when empty); file entries are streamed to disk,
overwriting existing files. Nothing is rolled back on failure.
"""

import logging
import os
from typing import Optional

from .config import TransferConfig, resolve_config
from .reader import ZipReader
from .stream import copy_stream
from .utils import safe_extract_path

logger = logging.getLogger(__name__)


def extract(
    archive_path: str,
    destination_dir: str,
    rate_bytes: Optional[int] = None,
    config: Optional[TransferConfig] = None,
) -> list[str]:
    """Decompress a ZIP archive into destination_dir.

    The archive index is parsed and every entry name validated before
    anything is written, so a corrupt archive or one with names escaping
    the destination fails with the destination untouched. destination_dir
    and any missing ancestors are created.

    When a rate is configured, one token bucket is shared by every entry
    in this call, so rate_bytes caps the aggregate extraction throughput.

    Args:
        archive_path: ZIP file to read.
        destination_dir: Root directory to extract into.
        rate_bytes: Throughput ceiling in bytes per second (None, zero or
            negative disables throttling). Overrides config.rate_bytes.
        config: Chunk size and default rate.

    Returns:
        Destination paths created, in extraction order.

    Raises:
        FileNotFoundError: If the archive does not exist.
        ZipFormatError: If the archive index is corrupt or truncated.
        UnsafeEntryPath: If an entry name is absolute or contains '..'.
        ZipCrcError: If an entry's content fails its CRC32 check.
        OSError: On any other filesystem error.
    """
    config = resolve_config(config, rate_bytes)
    destination_dir = os.fspath(destination_dir)
    created: list[str] = []
    total_bytes = 0

    with ZipReader(archive_path) as zf:
        plan = [
            (entry, safe_extract_path(destination_dir, entry.name))
            for entry in zf.entries()
        ]

        os.makedirs(destination_dir, exist_ok=True)
        bucket = config.new_bucket()

        for entry, target in plan:
            if entry.is_dir:
                os.makedirs(target, exist_ok=True)
            else:
                parent = os.path.dirname(target)
                if parent:
                    os.makedirs(parent, exist_ok=True)
                with zf.open(entry) as src, open(target, "wb") as dst:
                    total_bytes += copy_stream(src, dst, config.chunk_size, bucket)
            logger.debug("extract: %s -> %s", entry.name, target)
            created.append(target)

    logger.info(
        "extract: done (archive=%s destination=%s entries=%d bytes=%d rate=%s)",
        os.fspath(archive_path),
        destination_dir,
        len(created),
        total_bytes,
        config.rate_bytes if config.throttled else "unlimited",
    )
    return created


def extract_with_rate_limit(
    archive_path: str,
    rate_bytes: int,
    destination_dir: str,
    config: Optional[TransferConfig] = None,
) -> list[str]:
    """extract() with the throughput ceiling as a positional argument."""
    return extract(archive_path, destination_dir, rate_bytes=rate_bytes, config=config)
