"""Verification of signed ZIP archives."""

from __future__ import annotations

import enum
import sys

from zipsign.cms import SignedData
from zipsign.pki import CertificateStore, load_certificate
from zipsign.zip import SIGNATURE_PREFIX, ZipArchive


class VerifyResult(enum.IntEnum):
    """Outcome of a verification; the value doubles as exit code."""

    GOOD = 0
    BAD = 1
    BAD_MISSING_SIGNATURE = 2
    BAD_INVALID_CERTIFICATE_CHAIN = 3
    BAD_INVALID_SIGNATURE = 4


class _Rejected(Exception):
    def __init__(self, result: VerifyResult, message: str) -> None:
        super().__init__(message)
        self.result = result


class Verifier:
    """Verifies archive signatures against a set of signer certificates."""

    def __init__(self, cert_file) -> None:
        self._signers: list = []
        self.add_certificate(cert_file)

    def add_certificate(self, filename) -> None:
        """Require a signature by the certificate in ``filename`` as well."""
        self._signers.append(load_certificate(filename))

    def verify(self, filename, keyring_path="", verbose: bool = False,
               self_signed: bool = False) -> VerifyResult:
        """Verify the signature of an archive.

        ``keyring_path`` names a PEM file of trusted certificates.  With
        ``self_signed`` the signer certificates are not validated as chains.
        Failures are reported through the result, never raised.
        """
        try:
            return self._verify(filename, keyring_path, verbose, self_signed)
        except _Rejected as exc:
            result, error = exc.result, exc
        except Exception as exc:  # any failure means the archive is not trusted
            result, error = VerifyResult.BAD, exc
        if verbose:
            print(f"error: {error}", file=sys.stderr)
        return result

    def _verify(self, filename, keyring_path, verbose, self_signed) -> VerifyResult:
        archive = ZipArchive(filename)
        content = archive.signed_content()
        comment = archive.comment()
        if not comment.startswith(SIGNATURE_PREFIX):
            raise _Rejected(VerifyResult.BAD_MISSING_SIGNATURE, "missing signature")
        signature = comment[len(SIGNATURE_PREFIX):]

        store = CertificateStore()
        if keyring_path:
            store.load_from_file(keyring_path)
        for cert in self._signers:
            store.add(cert)

        signed = SignedData.from_base64(signature)

        if not self_signed:
            untrusted = signed.certificates()
            if not all(store.verify(cert, untrusted) for cert in self._signers):
                raise _Rejected(
                    VerifyResult.BAD_INVALID_CERTIFICATE_CHAIN,
                    "signers certificate is not valid",
                )

        if not signed.verify(content, self._signers, None, False, verbose):
            raise _Rejected(
                VerifyResult.BAD_INVALID_CERTIFICATE_CHAIN,
                "certificate chain is not valid",
            )

        if signed.verify(content, self._signers, None, True, verbose):
            return VerifyResult.GOOD
        return VerifyResult.BAD_INVALID_SIGNATURE