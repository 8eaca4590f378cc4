"""Access to the end-of-central-directory comment of ZIP archives."""

import os
import struct

from zipsign.errors import MissingFileError

SIGNATURE_PREFIX = "ZipSign=data:application/cms;base64,"

MAX_COMMENT_SIZE = 64 * 1024
MIN_EOCD_SIZE = 22
EOCD_COMMENT_POS = 20
MAX_EOCD_SIZE = MIN_EOCD_SIZE + MAX_COMMENT_SIZE

_MAX_COMMENT_LENGTH = 0xFFFF
_EOCD_SIGNATURE = b"PK\x05\x06"


def _open(path, mode: str):
    try:
        return open(path, mode)
    except FileNotFoundError as exc:
        raise MissingFileError(os.fspath(path)) from exc


def read_prefix(filename, limit: int) -> bytes:
    """Return at most the first ``limit`` bytes of a file."""
    if limit < 0:
        raise ValueError("limit must not be negative")
    with _open(filename, "rb") as file:
        return file.read(limit)


class ZipArchive:
    """A ZIP archive on disk whose comment can be read and replaced.

    Comments are handled as text in latin-1, so every byte value round-trips.
    """

    def __init__(self, filename) -> None:
        self.filename = filename

    def comment_start(self) -> int:
        """Return the offset of the comment-length field of the archive."""
        with _open(self.filename, "rb") as file:
            length = file.seek(0, os.SEEK_END)
            if length < MIN_EOCD_SIZE:
                raise ValueError("invalid zip archive (too small)")
            window = min(length, MAX_EOCD_SIZE)
            offset = length - window
            file.seek(offset)
            buffer = file.read(window)

        last_start = window - MIN_EOCD_SIZE
        pos = buffer.rfind(_EOCD_SIGNATURE, 0, last_start + len(_EOCD_SIGNATURE))
        if pos < 0:
            raise ValueError("invalid zip archive: EOCD not found")
        return offset + pos + EOCD_COMMENT_POS

    def comment(self) -> str:
        """Return the archive comment."""
        start = self.comment_start()
        with _open(self.filename, "rb") as file:
            file.seek(start)
            (length,) = struct.unpack("<H", file.read(2))
            data = file.read(length)
        if len(data) != length:
            raise ValueError("invalid zip archive: comment truncated")
        return data.decode("latin-1")

    def set_comment(self, comment) -> None:
        """Replace the archive comment, dropping anything after it."""
        raw = comment.encode("latin-1") if isinstance(comment, str) else bytes(comment)
        if len(raw) > _MAX_COMMENT_LENGTH:
            raise ValueError("zip comment too long")
        start = self.comment_start()
        with _open(self.filename, "r+b") as file:
            file.seek(start)
            file.write(struct.pack("<H", len(raw)))
            file.write(raw)
            file.truncate()

    def signed_content(self) -> bytes:
        """Return the archive bytes that a signature covers: all before the comment."""
        return read_prefix(self.filename, self.comment_start())