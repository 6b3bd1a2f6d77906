# src/chunk_egress/state.py

"""
Per-chunk state shared across repeated upload attempts of the same chunk.

The buffering layer retries a failed chunk by calling the output again with
the same chunk id. The ``%{hex_random}`` value must stay the same across those
retries so a half-finished upload and its retry agree on the key, and it is
dropped once the chunk is stored.
"""

import logging
import secrets
import threading

from .config import MAX_HEX_RANDOM_LENGTH

logger = logging.getLogger(__name__)


class ChunkRandomTable:
    """Thread-safe mapping of chunk id to its random hex suffix."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_or_create(self, chunk_id: str, length: int) -> str:
        """
        Returns the hex string for ``chunk_id``, generating one on first use.

        The stored value always holds the maximum length so a later call with a
        different ``length`` still returns a prefix of the same material.
        """
        if not 1 <= length <= MAX_HEX_RANDOM_LENGTH:
            raise ValueError(
                f"hex random length must be between 1 and {MAX_HEX_RANDOM_LENGTH}, got {length}"
            )
        with self._lock:
            value = self._entries.get(chunk_id)
            if value is None:
                value = secrets.token_hex(MAX_HEX_RANDOM_LENGTH // 2)
                self._entries[chunk_id] = value
                logger.debug(
                    "Generated random suffix for chunk",
                    extra={"chunk_id": chunk_id},
                )
        return value[:length]

    def remove(self, chunk_id: str) -> None:
        with self._lock:
            self._entries.pop(chunk_id, None)

    def __contains__(self, chunk_id: object) -> bool:
        with self._lock:
            return chunk_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
