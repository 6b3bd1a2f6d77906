# src/chunk_egress/chunks.py

"""
Chunk abstractions consumed by the egress core.

Chunks are owned by the upstream buffering layer. The core only reads their
identity and metadata and asks them to stream their bytes into a sink.
"""

import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from .schemas import ChunkMetadata

_COPY_BUFFER_SIZE = 64 * 1024


@runtime_checkable
class Chunk(Protocol):
    """A sequentially readable batch of formatted records."""

    @property
    def unique_id(self) -> str: ...

    @property
    def metadata(self) -> ChunkMetadata: ...

    def write_to(self, sink: BinaryIO) -> None: ...


class MemoryChunk:
    """A chunk whose payload is already held in memory."""

    def __init__(
        self,
        data: bytes,
        metadata: ChunkMetadata | None = None,
        unique_id: str | None = None,
    ):
        self._data = data
        self._metadata = metadata or ChunkMetadata()
        self._unique_id = unique_id or uuid.uuid4().hex

    @property
    def unique_id(self) -> str:
        return self._unique_id

    @property
    def metadata(self) -> ChunkMetadata:
        return self._metadata

    def write_to(self, sink: BinaryIO) -> None:
        sink.write(self._data)


class FileChunk:
    """A chunk backed by a file on local disk, streamed in fixed-size blocks."""

    def __init__(
        self,
        path: str | Path,
        metadata: ChunkMetadata | None = None,
        unique_id: str | None = None,
    ):
        self._path = Path(path)
        self._metadata = metadata or ChunkMetadata()
        self._unique_id = unique_id or uuid.uuid4().hex

    @property
    def path(self) -> Path:
        return self._path

    @property
    def unique_id(self) -> str:
        return self._unique_id

    @property
    def metadata(self) -> ChunkMetadata:
        return self._metadata

    def write_to(self, sink: BinaryIO) -> None:
        with self._path.open("rb") as source:
            shutil.copyfileobj(source, sink, _COPY_BUFFER_SIZE)
