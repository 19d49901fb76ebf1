"""Pruebas del decodificador base64 incremental y la escritura a disco."""

import base64
import os

import pytest

from application.services.attachment_pipeline import (
    Base64StreamDecoder,
    PassthroughDecoder,
    decoder_for,
    stream_to_file,
)
from domain.errors import StagingError
from fakes import b64_wrapped


def _chunks(data: bytes, size: int):
    for i in range(0, len(data), size):
        yield data[i:i + size]


@pytest.mark.parametrize("chunk_size", [1, 3, 5, 76, 4096])
def test_base64_round_trip_independent_of_chunking(chunk_size) -> None:
    original = os.urandom(1000) + b"\x00\xff\r\n"
    decoder = Base64StreamDecoder()

    out = b"".join(decoder.decode(c) for c in _chunks(b64_wrapped(original), chunk_size)) + decoder.flush()

    assert out == original


def test_decoder_selection_is_case_insensitive() -> None:
    assert isinstance(decoder_for("base64"), Base64StreamDecoder)
    assert isinstance(decoder_for("BASE64"), Base64StreamDecoder)
    assert isinstance(decoder_for("quoted-printable"), PassthroughDecoder)
    assert isinstance(decoder_for(None), PassthroughDecoder)


def test_stream_to_file_writes_decoded_bytes(tmp_path) -> None:
    original = bytes(range(256)) * 4
    target = tmp_path / "blob.bin"

    written = stream_to_file(_chunks(b64_wrapped(original), 10), "BASE64", target)

    assert written == len(original)
    assert target.read_bytes() == original


def test_unknown_encoding_is_written_through(tmp_path) -> None:
    raw = b"=48=6F=6C=61 quoted printable stays as is"
    target = tmp_path / "note.txt"

    stream_to_file(_chunks(raw, 4), "quoted-printable", target)

    assert target.read_bytes() == raw


def test_unpadded_tail_is_completed(tmp_path) -> None:
    target = tmp_path / "tail.bin"

    stream_to_file([base64.b64encode(b"abcde").rstrip(b"=")], "base64", target)

    assert target.read_bytes() == b"abcde"


def test_write_failure_is_staging_error(tmp_path) -> None:
    with pytest.raises(StagingError):
        stream_to_file([b"AAAA"], "base64", tmp_path / "missing-dir" / "x.bin")
