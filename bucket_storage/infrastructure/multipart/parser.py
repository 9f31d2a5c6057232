"""
multipart/form-data parsing for upload requests.

The byte-level work is done by python-multipart's callback parser, the
same one Starlette uses for request.form(). This module only collects
what the callbacks report into a ParsedFormData, and enforces our
limits while the body is still streaming in:

- at most one file per request (a second file part is rejected)
- a maximum size per file
- the body must reach the closing boundary; a truncated body is an error

Fields that repeat keep their last value.
"""

import logging
import mimetypes
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import python_multipart
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"

# Plain form fields are small; anything bigger is a malformed request
MAX_FIELD_SIZE = 1024 * 1024


class FormParseError(ValueError):
    """Raised when a multipart body cannot be parsed or breaks a limit."""
    pass


class FileTooLargeError(FormParseError):
    """Raised when an uploaded file exceeds the size limit."""

    def __init__(self, max_size: int) -> None:
        super().__init__(f"File too large. Maximum size: {max_size} bytes")
        self.max_size = max_size


@dataclass
class ParsedFile:
    """A file part extracted from a multipart body."""
    field_name: str
    file_name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ParsedFormData:
    """Files and plain fields from one multipart body."""
    files: list[ParsedFile] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=dict)


def is_multipart_form_data(content_type: Optional[str]) -> bool:
    """Check whether a Content-Type header declares multipart/form-data."""
    return bool(content_type) and content_type.strip().lower().startswith("multipart/form-data")


def guess_content_type(file_name: str) -> str:
    """Guess a MIME type from a file name, falling back to octet-stream."""
    content_type, _ = mimetypes.guess_type(file_name, strict=False)
    return content_type or DEFAULT_FILE_CONTENT_TYPE


class MultipartFormParser:
    """
    Incremental multipart/form-data parser.

    Feed it body chunks as they arrive, then call close() to get the
    parsed form. Limits are checked during feed(), so an oversized or
    extra file fails before the rest of the body is buffered.
    """

    def __init__(
        self,
        content_type: str,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_files: int = 1,
    ) -> None:
        _, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if not boundary:
            raise FormParseError("Missing boundary in multipart/form-data content type")

        self._max_file_size = max_file_size
        self._max_files = max_files
        self._result = ParsedFormData()
        self._received_bytes = 0
        self._finished = False

        # Per-part state, reset in _on_part_begin
        self._header_field = b""
        self._header_value = b""
        self._part_headers: dict[bytes, bytes] = {}
        self._part_name = ""
        self._part_file_name: Optional[str] = None
        self._part_content_type = ""
        self._part_chunks: list[bytes] = []
        self._part_size = 0

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_end": self._on_end,
        }
        self._parser = python_multipart.MultipartParser(boundary, callbacks)

    # -- python-multipart callbacks ----------------------------------------

    def _on_part_begin(self) -> None:
        self._part_headers = {}
        self._part_name = ""
        self._part_file_name = None
        self._part_content_type = ""
        self._part_chunks = []
        self._part_size = 0

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[self._header_field.strip().lower()] = self._header_value.strip()
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        disposition = self._part_headers.get(b"content-disposition")
        if disposition is None:
            raise FormParseError("Missing Content-Disposition header in multipart part")

        _, options = parse_options_header(disposition)
        self._part_name = options.get(b"name", b"").decode("utf-8", errors="replace")

        if b"filename" in options:
            if len(self._result.files) >= self._max_files:
                raise FormParseError(
                    f"Too many files. Maximum number of files is {self._max_files}."
                )
            self._part_file_name = options[b"filename"].decode("utf-8", errors="replace")
            self._part_content_type = self._part_headers.get(b"content-type", b"").decode(
                "latin-1"
            )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._part_size += end - start
        if self._part_file_name is not None:
            if self._part_size > self._max_file_size:
                raise FileTooLargeError(self._max_file_size)
        elif self._part_size > MAX_FIELD_SIZE:
            raise FormParseError(f"Form field '{self._part_name}' is too large")
        self._part_chunks.append(data[start:end])

    def _on_part_end(self) -> None:
        payload = b"".join(self._part_chunks)
        self._part_chunks = []

        if self._part_file_name is None:
            self._result.fields[self._part_name] = payload.decode("utf-8", errors="replace")
            return

        self._result.files.append(
            ParsedFile(
                field_name=self._part_name,
                file_name=self._part_file_name or "unknown",
                content_type=self._part_content_type or DEFAULT_FILE_CONTENT_TYPE,
                data=payload,
            )
        )

    def _on_end(self) -> None:
        self._finished = True

    # -- public API --------------------------------------------------------

    def feed(self, chunk: bytes) -> None:
        """Parse the next chunk of the body."""
        if not chunk:
            return
        self._received_bytes += len(chunk)
        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise FormParseError(f"Form parsing error: {e}") from e

    def close(self) -> ParsedFormData:
        """Finish parsing and return the collected form."""
        # Checked before finalize(); only the closing boundary marks a complete body
        if self._received_bytes == 0:
            raise FormParseError("Form parsing error: request body is empty")
        if not self._finished:
            raise FormParseError("Form parsing error: unexpected end of multipart body")

        self._parser.finalize()

        logger.debug(
            "Parsed multipart body",
            extra={
                "files": len(self._result.files),
                "fields": len(self._result.fields),
                "size_bytes": self._received_bytes,
            }
        )
        return self._result


def parse_multipart_form_data(
    body: bytes,
    content_type: str,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    max_files: int = 1,
) -> ParsedFormData:
    """Parse a fully buffered multipart body."""
    parser = MultipartFormParser(content_type, max_file_size=max_file_size, max_files=max_files)
    parser.feed(body)
    return parser.close()


async def parse_multipart_stream(
    stream: AsyncIterator[bytes],
    content_type: str,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    max_files: int = 1,
) -> ParsedFormData:
    """
    Parse a multipart body as it streams in.

    The stream is always read to the end, even after a limit or parse
    error, so the connection is left in a clean state. The first error
    is raised once the stream is exhausted.
    """
    error: Optional[FormParseError] = None
    parser: Optional[MultipartFormParser] = None

    try:
        parser = MultipartFormParser(content_type, max_file_size=max_file_size, max_files=max_files)
    except FormParseError as e:
        error = e

    async for chunk in stream:
        if error is not None:
            continue
        try:
            parser.feed(chunk)
        except FormParseError as e:
            logger.warning("Rejecting multipart body", extra={"error": str(e)})
            error = e

    if error is not None:
        raise error

    return parser.close()


async def read_stream_limited(stream: AsyncIterator[bytes], max_size: int) -> bytes:
    """
    Buffer a raw request body, keeping at most max_size bytes.

    Chunks past the limit are read and discarded so the stream is
    drained; FileTooLargeError is raised once it is exhausted.
    """
    chunks: list[bytes] = []
    total = 0

    async for chunk in stream:
        total += len(chunk)
        if total > max_size:
            chunks.clear()
            continue
        chunks.append(chunk)

    if total > max_size:
        logger.warning(
            "Rejecting raw body",
            extra={"size_bytes": total, "max_size": max_size}
        )
        raise FileTooLargeError(max_size)

    return b"".join(chunks)
