# tests/unit/test_cli.py

import io
from unittest.mock import MagicMock, patch

import pytest

from chunk_egress import cli
from chunk_egress.chunks import FileChunk
from chunk_egress.compression import GZIP
from chunk_egress.exceptions import CollisionExhaustedError, ConfigurationError
from chunk_egress.resolver import ResolvedKey


@pytest.fixture
def mock_output(make_config):
    output = MagicMock()
    output.mode = GZIP
    with patch("chunk_egress.cli.create_output", return_value=output), patch(
        "chunk_egress.cli.get_config", return_value=make_config()
    ):
        yield output


def test_upload_writes_one_chunk_per_file(tmp_path, mock_output):
    first, second = tmp_path / "a.log", tmp_path / "b.log"
    first.write_bytes(b"a")
    second.write_bytes(b"b")
    mock_output.write.side_effect = [
        ResolvedKey("logs/0.gz", attempts=1),
        ResolvedKey("logs/1.gz", attempts=2),
    ]

    exit_code = cli.main(["upload", str(first), str(second), "--tag", "app", "--timekey", "60"])

    assert exit_code == 0
    chunks = [c.args[0] for c in mock_output.write.call_args_list]
    assert all(isinstance(chunk, FileChunk) for chunk in chunks)
    assert [chunk.path for chunk in chunks] == [first, second]
    assert chunks[0].metadata.tag == "app"
    assert chunks[0].metadata.timekey == 60


def test_check_reports_valid_configuration(mock_output):
    assert cli.main(["check"]) == 0


def test_configuration_error_exits_with_status_2():
    with patch(
        "chunk_egress.cli.get_config", side_effect=ConfigurationError("Missing CONTAINER")
    ):
        assert cli.main(["check"]) == 2


def test_upload_error_exits_with_status_1(tmp_path, mock_output):
    source = tmp_path / "a.log"
    source.write_bytes(b"a")
    mock_output.write.side_effect = CollisionExhaustedError("logs/fixed.gz", attempts=2)

    assert cli.main(["upload", str(source)]) == 1


def test_missing_input_file_exits_with_status_2(tmp_path, mock_output):
    mock_output.write.side_effect = FileNotFoundError("missing.log")

    assert cli.main(["upload", str(tmp_path / "missing.log")]) == 2


def test_directory_input_exits_with_status_2(tmp_path, mock_output):
    mock_output.write.side_effect = lambda chunk: chunk.write_to(io.BytesIO())

    assert cli.main(["upload", str(tmp_path)]) == 2
