"""Base64 encoding and decoding with strict validation of padded input."""

import base64

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_INVALID = 0x80
_DECODE_TABLE = {char: value for value, char in enumerate(_ALPHABET)}
_DECODE_TABLE["="] = 0


def _lookup(char: str) -> int:
    return _DECODE_TABLE.get(char, _INVALID)


def _as_text(data) -> str:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("latin-1")
    return data


def encoded_size(length: int) -> int:
    """Return the number of characters needed to encode ``length`` bytes."""
    if length < 0:
        raise ValueError("length must not be negative")
    return ((length + 2) // 3) * 4


def encode(data: bytes) -> str:
    """Encode bytes as padded base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def decoded_size(data) -> int:
    """Return the number of bytes ``data`` decodes to, or 0 if its length is invalid."""
    text = _as_text(data)
    length = len(text)
    if length == 0 or length % 4 != 0:
        return 0
    result = (length // 4) * 3
    if text[-1] == "=":
        result -= 1
        if text[-2] == "=":
            result -= 1
    return result


def _decode_block(block: str, is_last: bool) -> bytes:
    a, b, c, d = (_lookup(char) for char in block)
    out = bytearray([((a << 2) | (b >> 4)) & 0xFF])
    if not is_last or block[2] != "=":
        out.append(((b << 4) | (c >> 2)) & 0xFF)
        if not is_last or block[3] != "=":
            out.append(((c << 6) | d) & 0xFF)
    return bytes(out)


def decode(data) -> bytes:
    """Decode base64 text; text of invalid length decodes to no bytes.

    Characters are not validated here; use :func:`is_valid` for that.
    """
    text = _as_text(data)
    if decoded_size(text) == 0:
        return b""
    blocks = [text[start:start + 4] for start in range(0, len(text), 4)]
    body = b"".join(_decode_block(block, False) for block in blocks[:-1])
    return body + _decode_block(blocks[-1], True)


def is_valid(data) -> bool:
    """Tell whether ``data`` is well-formed, padded base64 text."""
    text = _as_text(data)
    length = len(text)
    if length == 0 or length % 4 != 0:
        return False
    body, tail = text[:-2], text[-2:]
    if any(char == "=" or _lookup(char) == _INVALID for char in body):
        return False
    if tail[0] == "=" and tail[1] != "=":
        return False
    return all(_lookup(char) != _INVALID for char in tail)