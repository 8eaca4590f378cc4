"""Detached CMS (PKCS#7) signed data: creation, parsing and verification."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, NamedTuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from zipsign import base64codec
from zipsign.errors import CryptoError

_OID_DATA = "1.2.840.113549.1.7.1"
_OID_SIGNED_DATA = "1.2.840.113549.1.7.2"
_OID_CONTENT_TYPE = "1.2.840.113549.1.9.3"
_OID_MESSAGE_DIGEST = "1.2.840.113549.1.9.4"
_OID_SIGNING_TIME = "1.2.840.113549.1.9.5"
_OID_RSA = "1.2.840.113549.1.1.1"
_OID_ECDSA_SHA256 = "1.2.840.10045.4.3.2"
_OID_SHA256 = "2.16.840.1.101.3.4.2.1"

_DIGESTS = {
    "1.3.14.3.2.26": ("sha1", hashes.SHA1),
    _OID_SHA256: ("sha256", hashes.SHA256),
    "2.16.840.1.101.3.4.2.2": ("sha384", hashes.SHA384),
    "2.16.840.1.101.3.4.2.3": ("sha512", hashes.SHA512),
}

_NAME_ATTRS = {
    "2.5.4.3": "CN",
    "2.5.4.6": "C",
    "2.5.4.7": "L",
    "2.5.4.8": "ST",
    "2.5.4.10": "O",
    "2.5.4.11": "OU",
    "1.2.840.113549.1.9.1": "emailAddress",
}

_SEQUENCE, _SET, _INTEGER, _OCTETS, _OID, _NULL, _UTCTIME = (
    0x30, 0x31, 0x02, 0x04, 0x06, 0x05, 0x17,
)
_CONTEXT_0, _CONTEXT_1 = 0xA0, 0xA1


# --- DER encoding -----------------------------------------------------------

def _length(n: int) -> bytes:
    if n < 0x80:
        return bytes([n])
    raw = n.to_bytes((n.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(raw)]) + raw


def _tlv(tag: int, content: bytes) -> bytes:
    return bytes([tag]) + _length(len(content)) + content


def _seq(*items: bytes) -> bytes:
    return _tlv(_SEQUENCE, b"".join(items))


def _set_of(items: Iterable[bytes]) -> bytes:
    return _tlv(_SET, b"".join(sorted(items)))


def _integer(value: int) -> bytes:
    size = value.bit_length() // 8 + 1
    return _tlv(_INTEGER, value.to_bytes(size, "big", signed=True))


def _oid(dotted: str) -> bytes:
    parts = [int(p) for p in dotted.split(".")]
    body = bytearray([parts[0] * 40 + parts[1]])
    for part in parts[2:]:
        chunk = [part & 0x7F]
        part >>= 7
        while part:
            chunk.append(0x80 | (part & 0x7F))
            part >>= 7
        body.extend(reversed(chunk))
    return _tlv(_OID, bytes(body))


# --- DER decoding -----------------------------------------------------------

class _Node(NamedTuple):
    tag: int
    content: bytes
    raw: bytes


def _read(data: bytes, pos: int) -> tuple[int, bytes, int]:
    tag = data[pos]
    if tag & 0x1F == 0x1F:
        raise ValueError("unsupported tag")
    length = data[pos + 1]
    pos += 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or count > 4:
            raise ValueError("unsupported length")
        length = int.from_bytes(data[pos:pos + count], "big")
        pos += count
    end = pos + length
    if end > len(data):
        raise ValueError("truncated data")
    return tag, data[pos:end], end


def _items(data: bytes) -> list[_Node]:
    nodes = []
    pos = 0
    while pos < len(data):
        start = pos
        tag, content, pos = _read(data, pos)
        nodes.append(_Node(tag, content, data[start:pos]))
    return nodes


def _expect(node: _Node, tag: int) -> _Node:
    if node.tag != tag:
        raise ValueError(f"unexpected tag 0x{node.tag:02x}")
    return node


def _single(data: bytes) -> _Node:
    nodes = _items(data)
    if len(nodes) != 1:
        raise ValueError("expected exactly one element")
    return nodes[0]


def _decode_oid(node: _Node) -> str:
    content = _expect(node, _OID).content
    if not content:
        raise ValueError("empty object identifier")
    head = min(content[0] // 40, 2)
    parts = [head, content[0] - 40 * head]
    value = 0
    for byte in content[1:]:
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            parts.append(value)
            value = 0
    return ".".join(map(str, parts))


def _decode_int(node: _Node) -> int:
    return int.from_bytes(_expect(node, _INTEGER).content, "big", signed=True)


def _name_text(der: bytes) -> str:
    parts = []
    for rdn in _items(_expect(_single(der), _SEQUENCE).content):
        for atv in _items(rdn.content):
            oid_node, value = _items(atv.content)[:2]
            oid = _decode_oid(oid_node)
            encoding = "utf-16-be" if value.tag == 0x1E else "utf-8"
            text = value.content.decode(encoding, errors="replace")
            parts.append(f"{_NAME_ATTRS.get(oid, oid)}={text}")
    return ", ".join(parts)


@dataclass
class _SignerInfo:
    issuer: bytes
    serial: int
    digest_oid: str
    signed_attrs: bytes | None
    signature: bytes
    attributes: dict[str, list[_Node]] = field(default_factory=dict)


def _public_key_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


class SignedData:
    """A CMS SignedData structure with detached content."""

    def __init__(self, der: bytes) -> None:
        self._der = bytes(der)
        try:
            self._certificates, self._signers = self._parse(self._der)
        except (ValueError, IndexError, TypeError) as exc:
            raise CryptoError("failed to read file", exc) from exc

    @staticmethod
    def _parse(der: bytes):
        info = _items(_expect(_single(der), _SEQUENCE).content)
        if _decode_oid(info[0]) != _OID_SIGNED_DATA:
            raise ValueError("not signed data")
        signed = _items(_expect(_single(_expect(info[1], _CONTEXT_0).content), _SEQUENCE).content)
        _decode_int(signed[0])
        _expect(signed[1], _SET)
        _expect(signed[2], _SEQUENCE)
        rest = signed[3:]
        certificates = []
        if rest and rest[0].tag == _CONTEXT_0:
            certificates = [
                x509.load_der_x509_certificate(node.raw) for node in _items(rest[0].content)
            ]
            rest = rest[1:]
        if rest and rest[0].tag == _CONTEXT_1:
            rest = rest[1:]
        if len(rest) != 1:
            raise ValueError("malformed signer infos")
        signers = [
            SignedData._parse_signer(_expect(node, _SEQUENCE))
            for node in _items(_expect(rest[0], _SET).content)
        ]
        return certificates, signers

    @staticmethod
    def _parse_signer(node: _Node) -> _SignerInfo:
        children = _items(node.content)
        _decode_int(children[0])
        sid = _items(_expect(children[1], _SEQUENCE).content)
        digest_oid = _decode_oid(_items(_expect(children[2], _SEQUENCE).content)[0])
        rest = children[3:]
        signed_attrs = None
        attributes: dict[str, list[_Node]] = {}
        if rest and rest[0].tag == _CONTEXT_0:
            signed_attrs = rest[0].content
            for attr in _items(signed_attrs):
                oid_node, values = _items(_expect(attr, _SEQUENCE).content)[:2]
                attributes[_decode_oid(oid_node)] = _items(_expect(values, _SET).content)
            rest = rest[1:]
        _expect(rest[0], _SEQUENCE)
        signature = _expect(rest[1], _OCTETS).content
        return _SignerInfo(
            issuer=_expect(sid[0], _SEQUENCE).raw,
            serial=_decode_int(sid[1]),
            digest_oid=digest_oid,
            signed_attrs=signed_attrs,
            signature=signature,
            attributes=attributes,
        )

    @classmethod
    def sign(cls, data: bytes, signers, extra_certs=(), embed_certs: bool = False) -> SignedData:
        """Sign ``data`` with each ``(certificate, private_key)`` pair.

        Extra certificates are always embedded; signer certificates only if
        ``embed_certs`` is set.
        """
        signers = list(signers or ())
        if not signers:
            raise CryptoError("unable to sign file")
        digest = hashes.Hash(hashes.SHA256())
        digest.update(bytes(data))
        message_digest = digest.finalize()
        signing_time = datetime.now(timezone.utc).strftime("%y%m%d%H%M%SZ").encode("ascii")

        signer_infos = []
        embedded = []
        for cert, key in signers:
            signer_infos.append(cls._signer_info(cert, key, message_digest, signing_time))
            if embed_certs:
                embedded.append(cert)
        embedded.extend(extra_certs or ())

        digest_alg = _seq(_oid(_OID_SHA256), _tlv(_NULL, b""))
        body = [_integer(1), _set_of([digest_alg]), _seq(_oid(_OID_DATA))]
        if embedded:
            body.append(_tlv(
                _CONTEXT_0,
                b"".join(c.public_bytes(serialization.Encoding.DER) for c in embedded),
            ))
        body.append(_set_of(signer_infos))
        return cls(_seq(_oid(_OID_SIGNED_DATA), _tlv(_CONTEXT_0, _seq(*body))))

    @staticmethod
    def _signer_info(cert, key, message_digest: bytes, signing_time: bytes) -> bytes:
        if not isinstance(cert, x509.Certificate) or not hasattr(key, "public_key"):
            raise CryptoError("failed to add signer")
        if _public_key_der(cert.public_key()) != _public_key_der(key.public_key()):
            raise CryptoError("failed to add signer: key does not match certificate")
        attrs = b"".join(sorted([
            _seq(_oid(_OID_CONTENT_TYPE), _set_of([_oid(_OID_DATA)])),
            _seq(_oid(_OID_SIGNING_TIME), _set_of([_tlv(_UTCTIME, signing_time)])),
            _seq(_oid(_OID_MESSAGE_DIGEST), _set_of([_tlv(_OCTETS, message_digest)])),
        ]))
        to_sign = _tlv(_SET, attrs)
        if isinstance(key, rsa.RSAPrivateKey):
            signature = key.sign(to_sign, padding.PKCS1v15(), hashes.SHA256())
            algorithm = _seq(_oid(_OID_RSA), _tlv(_NULL, b""))
        elif isinstance(key, ec.EllipticCurvePrivateKey):
            signature = key.sign(to_sign, ec.ECDSA(hashes.SHA256()))
            algorithm = _seq(_oid(_OID_ECDSA_SHA256))
        else:
            raise CryptoError("failed to add signer: unsupported key type")
        return _seq(
            _integer(1),
            _seq(cert.issuer.public_bytes(), _integer(cert.serial_number)),
            _seq(_oid(_OID_SHA256), _tlv(_NULL, b"")),
            _tlv(_CONTEXT_0, attrs),
            algorithm,
            _tlv(_OCTETS, signature),
        )

    @classmethod
    def from_base64(cls, data) -> SignedData:
        """Parse base64-encoded DER."""
        return cls(base64codec.decode(data))

    def to_der(self) -> bytes:
        """Return the DER encoding."""
        return self._der

    def to_base64(self) -> str:
        """Return the DER encoding as base64 text."""
        return base64codec.encode(self._der)

    def certificates(self) -> list[x509.Certificate]:
        """Return the embedded certificates."""
        return list(self._certificates)

    def verify(self, data: bytes, certs=(), store=None, check_content: bool = True,
               verbose: bool = False) -> bool:
        """Tell whether every signer's signature over ``data`` is valid.

        Signer certificates are looked up in ``certs`` and the embedded ones.
        If ``store`` is given, each signer certificate must chain to it.
        With ``check_content`` false the content digest is not compared.
        """
        valid = self._verify(bytes(data), certs, store, check_content)
        if not valid and verbose:
            print(f"error: {CryptoError('verification failed')}", file=sys.stderr)
        return valid

    def _verify(self, data, certs, store, check_content) -> bool:
        if not self._signers:
            return False
        candidates = [*(certs or ()), *self._certificates]
        for info in self._signers:
            cert = next(
                (c for c in candidates
                 if c.serial_number == info.serial and c.issuer.public_bytes() == info.issuer),
                None,
            )
            if cert is None:
                return False
            if store is not None and not store.verify(cert, self._certificates):
                return False
            if not self._check_signer(info, cert, data, check_content):
                return False
        return True

    @staticmethod
    def _check_signer(info: _SignerInfo, cert, data: bytes, check_content: bool) -> bool:
        algorithm = _DIGESTS.get(info.digest_oid)
        if algorithm is None:
            return False
        hash_cls = algorithm[1]
        if info.signed_attrs is None:
            payload = data
        else:
            if check_content:
                values = info.attributes.get(_OID_MESSAGE_DIGEST)
                if not values or values[0].tag != _OCTETS:
                    return False
                digest = hashes.Hash(hash_cls())
                digest.update(data)
                if values[0].content != digest.finalize():
                    return False
            payload = _tlv(_SET, info.signed_attrs)
        key = cert.public_key()
        try:
            if isinstance(key, rsa.RSAPublicKey):
                key.verify(info.signature, payload, padding.PKCS1v15(), hash_cls())
            elif isinstance(key, ec.EllipticCurvePublicKey):
                key.verify(info.signature, payload, ec.ECDSA(hash_cls()))
            else:
                return False
        except (InvalidSignature, UnsupportedAlgorithm, ValueError):
            return False
        return True

    def to_text(self) -> str:
        """Return a human-readable description of the structure."""
        lines = [
            "CMS_ContentInfo:",
            f"  contentType: pkcs7-signedData ({_OID_SIGNED_DATA})",
            "  signedData:",
            "    certificates:",
        ]
        if not self._certificates:
            lines.append("      <ABSENT>")
        for cert in self._certificates:
            lines += [
                f"      subject: {cert.subject.rfc4514_string()}",
                f"      issuer: {cert.issuer.rfc4514_string()}",
                f"      serialNumber: {cert.serial_number}",
            ]
        lines.append("    signerInfos:")
        for info in self._signers:
            digest_name = _DIGESTS.get(info.digest_oid, (info.digest_oid,))[0]
            lines += [
                f"      issuer: {_name_text(info.issuer)}",
                f"      serialNumber: {info.serial}",
                f"      digestAlgorithm: {digest_name}",
            ]
            times = info.attributes.get(_OID_SIGNING_TIME)
            if times:
                lines.append(f"      signingTime: {times[0].content.decode('ascii', 'replace')}")
            lines.append(f"      signature: {len(info.signature)} bytes")
        return "\n".join(lines)