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
Transfer settings shared by archive() and extract().

Settings are passed explicitly by the caller; nothing is read from the
environment.
"""

import zlib
from dataclasses import dataclass, replace
from typing import Optional

from .constants import DEFAULT_CHUNK_SIZE
from .ratelimit import TokenBucket, new_bucket


@dataclass(frozen=True)
class TransferConfig:
    """Settings for one archive or extract call.

    Attributes:
        rate_bytes: Throughput ceiling in bytes per second for the whole
            call. None, zero or a negative value disables throttling.
        chunk_size: Bytes moved per read when streaming entry content.
        compresslevel: zlib level used for deflate entries (-1 to 9).
    """

    rate_bytes: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    compresslevel: int = zlib.Z_DEFAULT_COMPRESSION

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not -1 <= self.compresslevel <= 9:
            raise ValueError(
                f"compresslevel must be between -1 and 9, got {self.compresslevel}"
            )

    @property
    def throttled(self) -> bool:
        return self.rate_bytes is not None and self.rate_bytes > 0

    def with_rate(self, rate_bytes: Optional[int]) -> "TransferConfig":
        """Return a copy with rate_bytes replaced."""
        return replace(self, rate_bytes=rate_bytes)

    def new_bucket(self) -> Optional[TokenBucket]:
        """Create the per-call bucket, or None when not throttled."""
        return new_bucket(self.rate_bytes)


DEFAULT_CONFIG = TransferConfig()


def resolve_config(
    config: Optional[TransferConfig], rate_bytes: Optional[int]
) -> TransferConfig:
    """Merge an optional config with an explicit rate argument.

    An explicit rate_bytes overrides the one carried by config.
    """
    config = config or DEFAULT_CONFIG
    if rate_bytes is not None:
        config = config.with_rate(rate_bytes)
    return config
