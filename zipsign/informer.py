"""Description of the signature stored in a ZIP archive."""

from __future__ import annotations

import sys
from typing import TextIO

from zipsign.cms import SignedData
from zipsign.zip import SIGNATURE_PREFIX, ZipArchive


def describe(filename) -> str:
    """Return a readable description of an archive's signature.

    Raises ValueError if the archive carries no signature.
    """
    comment = ZipArchive(filename).comment()
    if not comment.startswith(SIGNATURE_PREFIX):
        raise ValueError("missing signature")
    return SignedData.from_base64(comment[len(SIGNATURE_PREFIX):]).to_text()


def print_info(filename, out: TextIO | None = None) -> None:
    """Write the description of an archive's signature to ``out``."""
    out = sys.stdout if out is None else out
    out.write(describe(filename) + "\n")