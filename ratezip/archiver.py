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
Create a ZIP archive from files and directory trees.

Each source path is walked depth-first. Entry names are relative to the
parent directory of the source path, so archiving ``"data/csv"`` yields
entries ``csv/``, ``csv/a.csv``, ... Directory entries are written before
their children, and children are visited in lexical order.

Example:
    archive("out/backup.zip", "dir", "csv/baz.csv")
    archive_with_rate_limit("out/backup.zip", 100 * 1024, "dir")
"""

import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from .config import TransferConfig, resolve_config
from .ratelimit import TokenBucket
from .stream import copy_stream
from .utils import entry_name_for, strip_trailing_separator
from .writer import ZipWriter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceEntry:
    """A filesystem node visited while walking a source path."""

    path: str
    name: str
    is_dir: bool
    stat: os.stat_result

    @property
    def date_time(self) -> datetime:
        return datetime.fromtimestamp(self.stat.st_mtime)


def walk_source(source_path: str) -> Iterator[SourceEntry]:
    """Yield every node under source_path in pre-order, children sorted.

    A single file yields one entry. Symbolic links are followed for their
    metadata and content, but a link to a directory is not descended into
    (the source path itself excepted), so link cycles cannot recurse.

    Raises:
        OSError: If a node cannot be stat'ed or a directory cannot be listed.
            The error surfaces at the node where it happens; nodes already
            yielded stay yielded.
    """
    root = strip_trailing_separator(os.fspath(source_path))

    stack = [root]
    while stack:
        path = stack.pop()
        st = os.stat(path)
        is_dir = stat.S_ISDIR(st.st_mode)
        yield SourceEntry(
            path=path,
            name=entry_name_for(root, path, is_dir),
            is_dir=is_dir,
            stat=st,
        )

        if not is_dir:
            continue
        if path != root and os.path.islink(path):
            logger.debug("archive: not descending into symlinked directory %s", path)
            continue

        children = sorted(os.listdir(path))
        stack.extend(os.path.join(path, child) for child in reversed(children))


def _is_same_file(st: os.stat_result, other: Optional[os.stat_result]) -> bool:
    return (
        other is not None
        and st.st_ino == other.st_ino
        and st.st_dev == other.st_dev
    )


def _write_entry(
    zf: ZipWriter,
    entry: SourceEntry,
    config: TransferConfig,
    bucket: Optional[TokenBucket],
) -> int:
    """Write one visited node into the archive; returns content bytes copied."""
    if entry.is_dir:
        zf.add_directory(entry.name, mode=entry.stat.st_mode, date_time=entry.date_time)
        return 0

    with open(entry.path, "rb") as src, zf.open_entry(
        entry.name, mode=entry.stat.st_mode, date_time=entry.date_time
    ) as dst:
        return copy_stream(src, dst, config.chunk_size, bucket)


def archive(
    output_path: str,
    *source_paths: str,
    rate_bytes: Optional[int] = None,
    config: Optional[TransferConfig] = None,
) -> list[str]:
    """Compress files and directory trees into a ZIP archive.

    The parent directory of output_path is created if missing and an
    existing file is overwritten. When a rate is configured, one token
    bucket is shared by every file copy in this call, so rate_bytes is an
    aggregate ceiling for the whole archive.

    On failure the error propagates immediately; the archive written so far
    is finalized and left on disk for the caller to inspect or remove.

    Args:
        output_path: Archive file to create.
        *source_paths: Files or directories to include. A trailing path
            separator makes no difference.
        rate_bytes: Throughput ceiling in bytes per second (None, zero or
            negative disables throttling). Overrides config.rate_bytes.
        config: Chunk size, compression level and default rate.

    Returns:
        Entry names in the order they were written.

    Raises:
        OSError: On any filesystem error (missing source, permissions, ...).
    """
    config = resolve_config(config, rate_bytes)

    output_path = os.fspath(output_path)
    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    bucket = config.new_bucket()
    names: list[str] = []
    total_bytes = 0

    with ZipWriter(output_path, compresslevel=config.compresslevel) as zf:
        output_stat = os.stat(output_path)
        for source_path in source_paths:
            for entry in walk_source(source_path):
                if not entry.is_dir and _is_same_file(entry.stat, output_stat):
                    logger.debug("archive: skipping the output archive %s", entry.path)
                    continue
                total_bytes += _write_entry(zf, entry, config, bucket)
                names.append(entry.name)

    logger.info(
        "archive: done (output=%s sources=%d entries=%d bytes=%d rate=%s)",
        output_path,
        len(source_paths),
        len(names),
        total_bytes,
        config.rate_bytes if config.throttled else "unlimited",
    )
    return names


def archive_with_rate_limit(
    output_path: str,
    rate_bytes: int,
    *source_paths: str,
    config: Optional[TransferConfig] = None,
) -> list[str]:
    """archive() with the throughput ceiling as a positional argument."""
    return archive(output_path, *source_paths, rate_bytes=rate_bytes, config=config)
