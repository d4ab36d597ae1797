"""Content-Type and part header parsing."""

from beartype import beartype

from multipart_downloader.multipart.errors import (
    BoundaryMissingError,
    HeaderMalformedError,
    InvalidContentTypeError,
)

MULTIPART_FORM_DATA = "multipart/form-data"
BOUNDARY_MARKER = "boundary="
FILENAME_MARKER = 'filename="'


def is_multipart(content_type: str) -> bool:
    return MULTIPART_FORM_DATA in content_type


@beartype
def parse_boundary(content_type: str) -> bytes:
    """Extract the part delimiter from a ``multipart/form-data`` Content-Type value.

    Everything after ``boundary=`` is taken verbatim: quotes and parameters
    that follow are not stripped.
    """
    if not is_multipart(content_type):
        raise InvalidContentTypeError(f"expected {MULTIPART_FORM_DATA}, got {content_type!r}")

    position = content_type.find(BOUNDARY_MARKER)
    if position < 0:
        raise BoundaryMissingError(f"no {BOUNDARY_MARKER!r} in {content_type!r}")

    boundary = content_type[position + len(BOUNDARY_MARKER) :]
    if not boundary:
        raise BoundaryMissingError(f"empty boundary in {content_type!r}")
    return boundary.encode()


def extract_filename(header_block: bytes) -> str:
    """Return the ``filename="..."`` value from a part header block.

    The closing quote is the last one on the header line, so names with
    embedded quotes survive.
    """
    text = header_block.decode("utf-8", errors="replace")

    position = text.find(FILENAME_MARKER)
    if position < 0:
        raise HeaderMalformedError("part header has no filename attribute")

    remainder = text[position + len(FILENAME_MARKER) :]
    line_end = remainder.find("\r\n")
    if line_end >= 0:
        remainder = remainder[:line_end]

    closing = remainder.rfind('"')
    if closing < 0:
        raise HeaderMalformedError("unterminated filename attribute")

    file_name = remainder[:closing]
    if not file_name:
        raise HeaderMalformedError("empty filename attribute")
    return file_name
