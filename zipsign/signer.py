"""Signing of ZIP archives with a detached CMS signature kept in the archive comment."""

from __future__ import annotations

from zipsign.cms import SignedData
from zipsign.pki import load_certificate, load_private_key
from zipsign.zip import SIGNATURE_PREFIX, ZipArchive


class Signer:
    """Signs ZIP archives with one or more key and certificate pairs.

    Set :attr:`embed_certs` to include the signer certificates in the
    signature.  Intermediate certificates are always embedded.
    """

    def __init__(self, key_file, cert_file) -> None:
        self.embed_certs = False
        self._signers: list = []
        self._intermediates: list = []
        self.add_signer(key_file, cert_file)

    def add_signer(self, key_file, cert_file) -> None:
        """Add another private key and its certificate as a signer."""
        key = load_private_key(key_file)
        cert = load_certificate(cert_file)
        self._signers.append((cert, key))

    def add_intermediate(self, filename) -> None:
        """Add an intermediate certificate to embed in the signature."""
        self._intermediates.append(load_certificate(filename))

    def create_signature(self, filename) -> str:
        """Return the base64 signature of an archive without changing it."""
        content = ZipArchive(filename).signed_content()
        signed = SignedData.sign(
            content, self._signers, self._intermediates, self.embed_certs
        )
        return signed.to_base64()

    def sign(self, filename) -> None:
        """Sign an archive, replacing its comment with the signature."""
        signature = self.create_signature(filename)
        ZipArchive(filename).set_comment(SIGNATURE_PREFIX + signature)