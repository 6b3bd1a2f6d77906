"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO

import pytest

from chunk_egress.clients import ContainerStatus
from chunk_egress.config import DEFAULT_OBJECT_KEY_FORMAT, ENV_PREFIX, EgressConfig


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Strips any chunk egress variables inherited from the developer's shell.
    """
    original = os.environ.copy()
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            del os.environ[name]
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "chunk-egress-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture
def make_config():
    """Factory for EgressConfig instances with test defaults."""

    def _make(**overrides) -> EgressConfig:
        values = dict(
            container="test-container",
            path="logs",
            object_key_format=DEFAULT_OBJECT_KEY_FORMAT,
            index_format="%d",
            hex_random_length=4,
            timekey_seconds=300,
            utc=True,
            store_as="gzip",
            overwrite=False,
            auto_create_container=True,
            spool_file_max_size_mb=1,
            endpoint_url=None,
            region=None,
            access_key_id=None,
            secret_access_key=None,
            kms_key_id=None,
            ssl_verify=True,
            service_name="chunk-egress-test",
            log_level="DEBUG",
        )
        values.update(overrides)
        return EgressConfig(**values)

    return _make


class RecordingStorage:
    """An in-memory StorageClient that records every call."""

    def __init__(self, existing: tuple[str, ...] = ()):
        self.existing = set(existing)
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.exists_calls: list[str] = []
        self.put_error: Exception | None = None
        self.ensured: list[tuple[str, bool]] = []

    def ensure_container_exists(self, name: str, auto_create: bool = True) -> ContainerStatus:
        self.ensured.append((name, auto_create))
        return ContainerStatus.EXISTS

    def exists(self, container: str, key: str) -> bool:
        self.exists_calls.append(key)
        return key in self.existing or key in self.objects

    def put(self, container: str, key: str, stream: BinaryIO, mime_type: str) -> None:
        if self.put_error is not None:
            raise self.put_error
        self.objects[key] = (stream.read(), mime_type)


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


class PrefixCompressor:
    """Stands in for lzop: writes a marker followed by the input bytes."""

    MARKER = b"LZOP"

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[Path, Path]] = []
        self.checked = False

    def check_available(self) -> None:
        self.checked = True

    def compress(self, input_path: Path, output_path: Path) -> None:
        self.calls.append((input_path, output_path))
        if self.error is not None:
            raise self.error
        output_path.write_bytes(self.MARKER + input_path.read_bytes())


@pytest.fixture
def compressor() -> PrefixCompressor:
    return PrefixCompressor()


@pytest.fixture
def created_temp_paths(monkeypatch) -> list[Path]:
    """Records every named temporary file created through tempfile.mkstemp."""
    paths: list[Path] = []
    original_mkstemp = tempfile.mkstemp

    def recording_mkstemp(*args, **kwargs):
        fd, name = original_mkstemp(*args, **kwargs)
        paths.append(Path(name))
        return fd, name

    monkeypatch.setattr(tempfile, "mkstemp", recording_mkstemp)
    return paths
