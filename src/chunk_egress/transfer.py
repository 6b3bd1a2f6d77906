# src/chunk_egress/transfer.py

"""
The compress-then-upload transaction for a single chunk.

A chunk is staged into a temporary artifact (gzip-compressed in-process,
compressed by an external utility, or copied as-is), the artifact is handed to
the storage client, and the chunk's per-chunk random suffix is dropped once
the put succeeded. Every temporary artifact is released exactly once on every
exit path; release failures are logged and swallowed so they never hide the
error that caused the exit.
"""

import errno
import gzip
import logging
import os
import shutil
import tempfile
from contextlib import ExitStack, contextmanager
from pathlib import Path
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, Iterator, Optional, cast

from .chunks import Chunk
from .clients import StorageClient
from .compression import CompressionMode, ExternalCompressor
from .exceptions import CompressionError, DiskSpaceError, ResourceCleanupError
from .state import ChunkRandomTable

logger = logging.getLogger(__name__)

DEFAULT_SPOOL_MAX_SIZE = 64 * 1_048_576


def _close_quietly(fileobj: BinaryIO, resource: str) -> None:
    try:
        fileobj.close()
    except (OSError, ValueError) as e:
        logger.warning(
            "Failed to close temporary resource",
            extra={"cleanup_error": ResourceCleanupError(resource, str(e)).to_dict()},
        )


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(
            "Failed to remove temporary file",
            extra={"cleanup_error": ResourceCleanupError(str(path), str(e)).to_dict()},
        )


class _ScratchFiles:
    """Named temporary files on disk, each removed exactly once."""

    def __init__(self) -> None:
        self._paths: list[Path] = []

    def create(self, prefix: str, suffix: str = "") -> Path:
        fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
        os.close(fd)
        path = Path(name)
        self._paths.append(path)
        return path

    def discard(self, path: Path) -> None:
        if path in self._paths:
            self._paths.remove(path)
            _remove_quietly(path)

    def release_all(self) -> None:
        while self._paths:
            _remove_quietly(self._paths.pop())


def _stage_external(
    chunk: Chunk,
    mode: CompressionMode,
    compressor: Optional[ExternalCompressor],
    scratch: _ScratchFiles,
    cleanup: ExitStack,
) -> BinaryIO:
    if compressor is None:
        raise CompressionError(
            f"No external compressor configured for '{mode.name}'",
            context={"mode": mode.name},
        )

    intermediate = scratch.create(prefix="chunk-tmp-")
    with intermediate.open("wb") as sink:
        chunk.write_to(sink)

    output = scratch.create(prefix="chunk-egress-", suffix=f".{mode.extension}")
    compressor.compress(intermediate, output)
    scratch.discard(intermediate)

    staged = output.open("rb")
    cleanup.callback(_close_quietly, staged, str(output))
    return cast(BinaryIO, staged)


def _stage_in_process(
    chunk: Chunk, mode: CompressionMode, spool_max_size: int, cleanup: ExitStack
) -> BinaryIO:
    staged = cast(
        BinaryIO, SpooledTemporaryFile(max_size=spool_max_size, mode="w+b")
    )
    cleanup.callback(_close_quietly, staged, "staging spool file")

    if mode.is_gzip:
        # GzipFile leaves a caller-supplied fileobj open on close.
        with gzip.GzipFile(fileobj=staged, mode="wb") as compressed:
            chunk.write_to(cast(BinaryIO, compressed))
    else:
        chunk.write_to(staged)

    staged.flush()
    staged.seek(0)
    return staged


@contextmanager
def stage_chunk(
    chunk: Chunk,
    mode: CompressionMode,
    compressor: Optional[ExternalCompressor] = None,
    spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
) -> Iterator[BinaryIO]:
    """
    Stages a chunk for upload and yields the finished artifact, rewound and
    open for reading. All temporary artifacts are released when the context
    exits, whether or not the body raised.
    """
    scratch = _ScratchFiles()
    with ExitStack() as cleanup:
        cleanup.callback(scratch.release_all)
        try:
            if mode.is_external:
                staged = _stage_external(chunk, mode, compressor, scratch, cleanup)
            else:
                staged = _stage_in_process(chunk, mode, spool_max_size, cleanup)
        except OSError as e:
            if e.errno == errno.ENOSPC:
                try:
                    available_bytes = shutil.disk_usage(tempfile.gettempdir()).free
                except OSError:
                    available_bytes = -1
                raise DiskSpaceError(
                    available_bytes=available_bytes,
                    context={"chunk_id": chunk.unique_id, "mode": mode.name},
                ) from e
            raise
        yield staged


def upload_chunk(
    chunk: Chunk,
    key: str,
    mode: CompressionMode,
    storage: StorageClient,
    container: str,
    random_table: ChunkRandomTable,
    compressor: Optional[ExternalCompressor] = None,
    spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
) -> None:
    """
    Stages and uploads one chunk to ``container/key``.

    Storage errors propagate unchanged; the put is never retried here. The
    chunk's random suffix is removed only after the put succeeded, so a retry
    of a failed upload renders the same key.
    """
    with stage_chunk(chunk, mode, compressor, spool_max_size) as staged:
        storage.put(container, key, staged, mode.mime_type)
        random_table.remove(chunk.unique_id)

    logger.info(
        "Chunk stored",
        extra={
            "chunk_id": chunk.unique_id,
            "container": container,
            "key": key,
            "mime_type": mode.mime_type,
        },
    )
