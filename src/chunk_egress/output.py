# src/chunk_egress/output.py

"""
The chunk output: key resolution plus the transfer transaction.

``ChunkOutput`` validates everything that can be validated up front when it
is constructed (key format, index format, compression availability) so that a
bad configuration aborts startup before any chunk is processed. After
``start()``, each call to ``write(chunk)`` resolves a collision-free key for
the chunk and uploads it. Failures abort only that chunk; the caller is
expected to retry the whole ``write``.
"""

import logging
import uuid
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from .chunks import Chunk
from .clients import ContainerStatus, StorageClient
from .compression import (
    CompressionMode,
    ExternalCompressor,
    LzopCompressor,
    get_compression_mode,
)
from .config import MAX_HEX_RANDOM_LENGTH, EgressConfig
from .exceptions import ConfigurationError, InvalidConfigurationError
from .resolver import ResolvedKey, resolve_key
from .state import ChunkRandomTable
from .template import (
    KeyTemplate,
    format_index,
    time_slice_format,
    validate_index_format,
)
from .transfer import upload_chunk

logger = logging.getLogger(__name__)


class ChunkOutput:
    def __init__(
        self,
        config: EgressConfig,
        storage: StorageClient,
        random_table: Optional[ChunkRandomTable] = None,
        compressor: Optional[ExternalCompressor] = None,
    ):
        self.config = config
        self.storage = storage
        self.random_table = random_table if random_table is not None else ChunkRandomTable()

        validate_index_format(config.index_format)
        if not 1 <= config.hex_random_length <= MAX_HEX_RANDOM_LENGTH:
            raise InvalidConfigurationError(
                "hex_random_length",
                config.hex_random_length,
                reason=f"must be between 1 and {MAX_HEX_RANDOM_LENGTH}",
            )
        self.template = KeyTemplate.parse(config.object_key_format)
        self.mode: CompressionMode = get_compression_mode(config.store_as)

        self.compressor: Optional[ExternalCompressor] = None
        if self.mode.is_external:
            self.compressor = compressor or LzopCompressor()
            self.compressor.check_available()

        self.uuid_flush_enabled = self.template.uses("uuid_flush")
        if self.uuid_flush_enabled:
            try:
                self._uuid_flush()
            except (OSError, NotImplementedError) as e:
                raise ConfigurationError(
                    f"Generating uuid doesn't work. Can't use %{{uuid_flush}} on this environment. {e}"
                ) from e

        self._static_values = {
            "path": config.path,
            "file_extension": self.mode.extension,
        }
        self._time_slice_format = time_slice_format(config.timekey_seconds)

        logger.debug(
            "Chunk output configured",
            extra={
                "container": config.container,
                "key_format": config.object_key_format,
                "store_as": self.mode.name,
                "attempt_placeholders": sorted(self.template.attempt_placeholders),
            },
        )

    @staticmethod
    def _uuid_flush() -> str:
        return str(uuid.uuid4())

    def start(self) -> ContainerStatus:
        """Makes sure the target container exists before any chunk is written."""
        status = self.storage.ensure_container_exists(
            self.config.container, auto_create=self.config.auto_create_container
        )
        logger.info(
            "Chunk output started",
            extra={"container": self.config.container, "container_status": status.value},
        )
        return status

    def _chunk_time(self, chunk: Chunk) -> datetime:
        tz = timezone.utc if self.config.utc else None
        if chunk.metadata.timekey is not None:
            return datetime.fromtimestamp(chunk.metadata.timekey, tz=tz)
        return datetime.now(tz=tz)

    def _attempt_values(self, chunk_values: dict[str, str], index: int) -> dict[str, str]:
        values = {"index": format_index(self.config.index_format, index)}
        values.update(chunk_values)
        if self.uuid_flush_enabled:
            values["uuid_flush"] = self._uuid_flush()
        return values

    def resolve_key(self, chunk: Chunk) -> ResolvedKey:
        """Finds the collision-free object key for ``chunk``."""
        time = self._chunk_time(chunk)
        bound = self.template.bind(
            self._static_values,
            {"time_slice": time.strftime(self._time_slice_format)},
            time=time,
            chunk_metadata=chunk.metadata,
        )

        # %{hex_random} is looked up once and reused by every attempt.
        chunk_values: dict[str, str] = {}
        if self.template.uses("hex_random"):
            chunk_values["hex_random"] = self.random_table.get_or_create(
                chunk.unique_id, self.config.hex_random_length
            )

        return resolve_key(
            bound,
            partial(self._attempt_values, chunk_values),
            partial(self.storage.exists, self.config.container),
            overwrite=self.config.overwrite,
        )

    def write(self, chunk: Chunk) -> ResolvedKey:
        """Resolves a key for ``chunk`` and uploads it there."""
        resolved = self.resolve_key(chunk)
        upload_chunk(
            chunk,
            resolved.key,
            self.mode,
            self.storage,
            self.config.container,
            self.random_table,
            compressor=self.compressor,
            spool_max_size=self.config.spool_file_max_size_bytes,
        )
        return resolved
