# src/chunk_egress/compression.py

"""
Compression modes and the external compressor capability.

The compression mode decides the ``%{file_extension}`` value, the MIME type
sent with the object and the staging transformation applied before upload.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .exceptions import CompressionError, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressionMode:
    name: str
    extension: str
    mime_type: str

    @property
    def is_gzip(self) -> bool:
        return self.name == "gzip"

    @property
    def is_external(self) -> bool:
        return self.name == "lzo"


GZIP = CompressionMode("gzip", "gz", "application/x-gzip")
LZO = CompressionMode("lzo", "lzo", "application/x-lzop")
JSON = CompressionMode("json", "json", "application/json")
TEXT = CompressionMode("txt", "txt", "text/plain")

_MODES = {mode.name: mode for mode in (GZIP, LZO, JSON, TEXT)}


def get_compression_mode(store_as: str) -> CompressionMode:
    """Maps a ``store_as`` value to its mode. Unknown values store plain text."""
    return _MODES.get(store_as, TEXT)


class ExternalCompressor(Protocol):
    """Compresses ``input_path`` into ``output_path`` outside the process."""

    def check_available(self) -> None: ...

    def compress(self, input_path: Path, output_path: Path) -> None: ...


class LzopCompressor:
    """Runs the ``lzop`` utility."""

    def __init__(self, executable: str = "lzop", timeout_seconds: float = 300.0):
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    def check_available(self) -> None:
        """Fails with ConfigurationError if ``lzop`` cannot be run."""
        if shutil.which(self.executable) is None:
            raise ConfigurationError(
                f"'{self.executable}' utility must be in PATH for LZO compression",
                context={"executable": self.executable},
            )
        try:
            result = subprocess.run(
                [self.executable, "-V"],
                capture_output=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ConfigurationError(
                f"'{self.executable}' utility must be in PATH for LZO compression",
                context={"executable": self.executable, "error": str(e)},
            ) from e

        if result.returncode != 0:
            raise ConfigurationError(
                f"'{self.executable} -V' exited with status {result.returncode}",
                context={"executable": self.executable, "returncode": result.returncode},
            )

    def compress(self, input_path: Path, output_path: Path) -> None:
        command = [self.executable, "-qf1", "-o", str(output_path), str(input_path)]
        logger.debug("Running external compressor", extra={"command": command})
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as e:
            raise CompressionError(
                f"'{self.executable}' executable not found",
                context={"executable": self.executable},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CompressionError(
                f"'{self.executable}' did not finish within {self.timeout_seconds}s",
                context={"executable": self.executable},
            ) from e

        if result.returncode != 0:
            raise CompressionError(
                f"'{self.executable}' exited with status {result.returncode}",
                context={
                    "executable": self.executable,
                    "returncode": result.returncode,
                    "stderr": result.stderr.decode("utf-8", errors="replace")[:1024],
                },
            )
