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
Rate-limited stream wrappers and chunked stream copy.

These wrappers pay for every byte that passes through them with tokens from
a TokenBucket. They only delay: bytes are never dropped, reordered or
altered, and the wrapped stream is not closed by the wrapper.
"""

from typing import BinaryIO, Optional

from .constants import DEFAULT_CHUNK_SIZE
from .ratelimit import TokenBucket


class RateLimitedReader:
    """Read-side governor: waits for tokens after each read.

    Example:
        bucket = TokenBucket(64 * 1024)
        with open("big.bin", "rb") as f:
            data = RateLimitedReader(f, bucket).read()
    """

    def __init__(self, stream: BinaryIO, bucket: TokenBucket):
        self._stream = stream
        self._bucket = bucket

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self._bucket.take(len(data))
        return data


class RateLimitedWriter:
    """Write-side governor: waits for tokens before each write."""

    def __init__(self, stream: BinaryIO, bucket: TokenBucket):
        self._stream = stream
        self._bucket = bucket

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        self._bucket.take(len(data))
        written = self._stream.write(data)
        return len(data) if written is None else written

    def flush(self) -> None:
        if hasattr(self._stream, "flush"):
            self._stream.flush()


def copy_stream(
    src: BinaryIO,
    dst: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    bucket: Optional[TokenBucket] = None,
) -> int:
    """Copy src to dst in chunks until EOF, optionally throttled on the read side.

    Args:
        src: Readable binary stream.
        dst: Writable binary stream.
        chunk_size: Maximum bytes per read.
        bucket: Token bucket to charge reads against; None copies at full speed.

    Returns:
        Number of bytes copied.
    """
    if bucket is not None:
        src = RateLimitedReader(src, bucket)

    total = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            break
        dst.write(chunk)
        total += len(chunk)
    return total
