"""
multipart/form-data parsing for file uploads.

Wraps python-multipart's streaming parser and collects at most one
file plus the plain form fields.
"""

from .parser import (
    FileTooLargeError,
    FormParseError,
    MultipartFormParser,
    ParsedFile,
    ParsedFormData,
    guess_content_type,
    is_multipart_form_data,
    parse_multipart_form_data,
    parse_multipart_stream,
    read_stream_limited,
)

__all__ = [
    "FileTooLargeError",
    "FormParseError",
    "MultipartFormParser",
    "ParsedFile",
    "ParsedFormData",
    "guess_content_type",
    "is_multipart_form_data",
    "parse_multipart_form_data",
    "parse_multipart_stream",
    "read_stream_limited",
]
