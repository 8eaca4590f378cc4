from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from zipsign import base64codec
from zipsign.cms import SignedData
from zipsign.errors import CryptoError
from zipsign.pki import CertificateStore

CONTENT = b"PK\x03\x04 archive content" * 20


def _name(cn):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _cert(cn, key, issuer_cn=None, issuer_key=None, ca=False):
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(_name(issuer_cn or cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key or key, hashes.SHA256())
    )


@pytest.fixture(scope="module")
def pki():
    self_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    root_key, signing_key, alice_key = (
        ec.generate_private_key(ec.SECP256R1()) for _ in range(3))
    return {
        "self": _cert("Self", self_key), "self_key": self_key,
        "root": _cert("Root CA", root_key, ca=True),
        "signing": _cert("Signing CA", signing_key, "Root CA", root_key, ca=True),
        "alice": _cert("Alice", alice_key, "Signing CA", signing_key),
        "alice_key": alice_key,
    }


def test_sign_and_verify_self_signed(pki):
    cms = SignedData.sign(CONTENT, [(pki["self"], pki["self_key"])])
    store = CertificateStore()
    store.add(pki["self"])
    assert cms.verify(CONTENT, [pki["self"]], store) is True


def test_failed_to_sign_without_signers():
    with pytest.raises(CryptoError):
        SignedData.sign(CONTENT, [])


def test_failed_to_sign_with_invalid_signer():
    with pytest.raises(CryptoError):
        SignedData.sign(CONTENT, [(None, None)])


def test_failed_to_sign_with_mismatched_key(pki):
    with pytest.raises(CryptoError):
        SignedData.sign(CONTENT, [(pki["alice"], pki["self_key"])])


def test_failed_to_verify_with_other_certificate(pki, capsys):
    cms = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])])
    store = CertificateStore()
    store.add(pki["self"])
    assert cms.verify(CONTENT, [pki["self"]], store, verbose=True) is False
    assert "verification failed" in capsys.readouterr().err


def test_verify_fails_for_changed_content(pki):
    cms = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])])
    assert cms.verify(b"other", [pki["alice"]]) is False
    assert cms.verify(b"other", [pki["alice"]], check_content=False) is True


def test_verify_with_store_requires_chain(pki):
    cms = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])], [pki["signing"]])
    store = CertificateStore()
    store.add(pki["root"])
    assert cms.verify(CONTENT, [pki["alice"]], store) is True
    bare = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])])
    assert bare.verify(CONTENT, [pki["alice"]], store) is False


def test_to_der_is_sequence(pki):
    cms = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])])
    assert cms.to_der()[0] == 0x30


def test_base64_round_trip(pki):
    cms = SignedData.sign(CONTENT, [(pki["alice"], pki["alice_key"])])
    text = cms.to_base64()
    assert base64codec.is_valid(text)
    parsed = SignedData.from_base64(text)
    assert parsed.to_der() == cms.to_der()
    assert parsed.verify(CONTENT, [pki["alice"]]) is True


def test_from_base64_invalid_content():
    with pytest.raises(CryptoError):
        SignedData.from_base64(base64codec.encode(b"Hugo"))


def test_certificates_embedding(pki):
    signer = [(pki["alice"], pki["alice_key"])]
    assert SignedData.sign(CONTENT, signer).certificates() == []
    assert SignedData.sign(CONTENT, signer, embed_certs=True).certificates() == [pki["alice"]]
    assert SignedData.sign(CONTENT, signer, [pki["signing"]]).certificates() == [pki["signing"]]


def test_multiple_signers(pki):
    cms = SignedData.sign(
        CONTENT,
        [(pki["self"], pki["self_key"]), (pki["alice"], pki["alice_key"])],
        embed_certs=True,
    )
    assert cms.verify(CONTENT, [pki["self"]]) is True
    assert cms.verify(CONTENT, []) is True
    assert cms.verify(CONTENT[:-1], []) is False


def test_missing_signer_certificate(pki):
    cms = SignedData.sign(
        CONTENT, [(pki["self"], pki["self_key"]), (pki["alice"], pki["alice_key"])])
    assert cms.verify(CONTENT, [pki["self"]]) is False


def test_to_text(pki):
    signer = [(pki["alice"], pki["alice_key"])]
    plain = SignedData.sign(CONTENT, signer).to_text()
    assert "Signing CA" in plain
    assert "Alice" not in plain
    embedded = SignedData.sign(CONTENT, signer, embed_certs=True).to_text()
    assert "Signing CA" in embedded
    assert "Alice" in embedded