"""Loading keys and certificates, and validating certificate chains."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Iterable

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from zipsign.errors import CryptoBaseError, CryptoError, MissingFileError

_MAX_CHAIN_DEPTH = 16


def read_input_file(path) -> bytes:
    """Return the whole content of a file; raise MissingFileError if it cannot be opened."""
    try:
        with open(path, "rb") as file:
            return file.read()
    except OSError as exc:
        raise MissingFileError(os.fspath(path)) from exc


def load_private_key(path):
    """Load an unencrypted private key from a PEM file."""
    data = read_input_file(path)
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoError("failed to parse key file", exc) from exc


def load_certificate(path) -> x509.Certificate:
    """Load the first certificate from a PEM file."""
    data = read_input_file(path)
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as exc:
        raise CryptoError("failed to parse certificate file", exc) from exc


def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints)
    except x509.ExtensionNotFound:
        return True
    return constraints.value.ca


def _is_current(cert: x509.Certificate, now: datetime) -> bool:
    return cert.not_valid_before_utc <= now <= cert.not_valid_after_utc


def _is_self_signed(cert: x509.Certificate) -> bool:
    return cert.issuer == cert.subject and _issued_by(cert, cert)


class CertificateStore:
    """A set of trusted certificates that chains are validated against."""

    def __init__(self) -> None:
        self._certs: list[x509.Certificate] = []

    def add(self, cert) -> None:
        """Trust a certificate."""
        if not isinstance(cert, x509.Certificate):
            raise CryptoError("failed to add certificate to store")
        if cert not in self._certs:
            self._certs.append(cert)

    def load_from_file(self, path) -> None:
        """Trust every certificate of a PEM file."""
        try:
            certs = x509.load_pem_x509_certificates(read_input_file(path))
        except (ValueError, CryptoBaseError) as exc:
            raise CryptoError("failed to load store from file", exc) from exc
        for cert in certs:
            self.add(cert)

    def __contains__(self, cert: object) -> bool:
        return cert in self._certs

    def __len__(self) -> int:
        return len(self._certs)

    def verify(self, cert, untrusted: Iterable[x509.Certificate] | None = ()) -> bool:
        """Tell whether ``cert`` chains up to a trusted self-signed certificate.

        Certificates in ``untrusted`` may serve as intermediates.
        """
        if not isinstance(cert, x509.Certificate):
            raise CryptoError("failed to initialise certificate verification")
        pool = [*self._certs, *(untrusted or ())]
        return self._chains(cert, pool, datetime.now(timezone.utc), frozenset())

    def _chains(self, cert, pool, now, seen) -> bool:
        if not _is_current(cert, now):
            return False
        if _is_self_signed(cert):
            return cert in self._certs
        key = cert.public_bytes(serialization.Encoding.DER)
        if key in seen or len(seen) >= _MAX_CHAIN_DEPTH:
            return False
        seen = seen | {key}
        return any(
            candidate.subject == cert.issuer
            and _is_ca(candidate)
            and _issued_by(cert, candidate)
            and self._chains(candidate, pool, now, seen)
            for candidate in pool
        )