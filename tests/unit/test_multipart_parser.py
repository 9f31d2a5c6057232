"""Tests for the multipart/form-data parser."""

from typing import Optional

import pytest

from bucket_storage.infrastructure.multipart import (
    FileTooLargeError,
    FormParseError,
    MultipartFormParser,
    guess_content_type,
    is_multipart_form_data,
    parse_multipart_form_data,
    parse_multipart_stream,
    read_stream_limited,
)

BOUNDARY = "----testboundary7MA4YWxk"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _field(name: str, value: str) -> bytes:
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"\r\n'
        "\r\n"
        f"{value}\r\n"
    ).encode()


def _file(name: str, file_name: str, data: bytes, content_type: Optional[str] = "application/pdf") -> bytes:
    header = (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"; filename="{file_name}"\r\n'
    )
    if content_type:
        header += f"Content-Type: {content_type}\r\n"
    return (header + "\r\n").encode() + data + b"\r\n"


def _end() -> bytes:
    return f"--{BOUNDARY}--\r\n".encode()


def test_single_file_and_fields():
    body = _field("note", "quarterly") + _file("file", "report.pdf", b"%PDF" + b"x" * 100) + _end()

    form = parse_multipart_form_data(body, CONTENT_TYPE)

    assert form.fields == {"note": "quarterly"}
    assert len(form.files) == 1
    uploaded = form.files[0]
    assert uploaded.field_name == "file"
    assert uploaded.file_name == "report.pdf"
    assert uploaded.content_type == "application/pdf"
    assert uploaded.size == 104


def test_repeated_field_keeps_last_value():
    body = _field("tag", "first") + _field("tag", "second") + _end()

    form = parse_multipart_form_data(body, CONTENT_TYPE)

    assert form.fields == {"tag": "second"}
    assert form.files == []


def test_file_part_without_content_type_defaults_to_octet_stream():
    body = _file("file", "blob", b"\x00\x01", content_type=None) + _end()

    form = parse_multipart_form_data(body, CONTENT_TYPE)

    assert form.files[0].content_type == "application/octet-stream"


def test_empty_file_name_becomes_unknown():
    body = _file("file", "", b"abc") + _end()

    form = parse_multipart_form_data(body, CONTENT_TYPE)

    assert form.files[0].file_name == "unknown"


def test_body_fed_in_small_chunks():
    body = _field("note", "chunked") + _file("file", "a.bin", bytes(range(256)) * 4) + _end()
    parser = MultipartFormParser(CONTENT_TYPE)

    for i in range(0, len(body), 7):
        parser.feed(body[i:i + 7])
    form = parser.close()

    assert form.fields == {"note": "chunked"}
    assert form.files[0].data == bytes(range(256)) * 4


def test_missing_boundary_is_rejected():
    with pytest.raises(FormParseError, match="Missing boundary"):
        parse_multipart_form_data(b"irrelevant", "multipart/form-data")


def test_empty_body_is_rejected():
    with pytest.raises(FormParseError, match="empty"):
        parse_multipart_form_data(b"", CONTENT_TYPE)


def test_truncated_body_is_rejected():
    body = _file("file", "report.pdf", b"partial data")

    with pytest.raises(FormParseError, match="unexpected end"):
        parse_multipart_form_data(body, CONTENT_TYPE)


def test_second_file_is_rejected():
    body = _file("file", "a.txt", b"a") + _file("other", "b.txt", b"b") + _end()

    with pytest.raises(FormParseError, match="Too many files"):
        parse_multipart_form_data(body, CONTENT_TYPE, max_files=1)


def test_oversized_file_is_rejected():
    body = _file("file", "big.bin", b"x" * 2048) + _end()

    with pytest.raises(FileTooLargeError) as excinfo:
        parse_multipart_form_data(body, CONTENT_TYPE, max_file_size=1024)

    assert excinfo.value.max_size == 1024


@pytest.mark.asyncio
async def test_stream_is_consumed_even_after_rejection():
    body = _file("file", "big.bin", b"x" * 4096) + _end()
    chunks = [body[i:i + 512] for i in range(0, len(body), 512)]
    consumed: list[bytes] = []

    async def stream():
        for chunk in chunks:
            consumed.append(chunk)
            yield chunk

    with pytest.raises(FileTooLargeError):
        await parse_multipart_stream(stream(), CONTENT_TYPE, max_file_size=1024)

    assert len(consumed) == len(chunks)


@pytest.mark.asyncio
async def test_stream_parses_complete_body():
    body = _file("file", "report.pdf", b"y" * 5000) + _end()

    async def stream():
        yield body[:100]
        yield body[100:]

    form = await parse_multipart_stream(stream(), CONTENT_TYPE)

    assert form.files[0].size == 5000


@pytest.mark.asyncio
async def test_raw_stream_within_limit_is_buffered():
    async def stream():
        yield b"abc"
        yield b"def"

    assert await read_stream_limited(stream(), max_size=6) == b"abcdef"


@pytest.mark.asyncio
async def test_raw_stream_over_limit_is_drained_then_rejected():
    consumed: list[int] = []

    async def stream():
        for _ in range(8):
            consumed.append(512)
            yield b"x" * 512

    with pytest.raises(FileTooLargeError) as excinfo:
        await read_stream_limited(stream(), max_size=1024)

    assert excinfo.value.max_size == 1024
    assert sum(consumed) == 4096


def test_is_multipart_form_data():
    assert is_multipart_form_data(CONTENT_TYPE)
    assert is_multipart_form_data("Multipart/Form-Data; boundary=x")
    assert not is_multipart_form_data("application/octet-stream")
    assert not is_multipart_form_data("")
    assert not is_multipart_form_data(None)


def test_guess_content_type():
    assert guess_content_type("report.pdf") == "application/pdf"
    assert guess_content_type("photo.PNG") == "image/png"
    assert guess_content_type("no-extension") == "application/octet-stream"
