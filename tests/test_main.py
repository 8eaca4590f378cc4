import zipfile
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import NameOID

from zipsign.main import build_app, main
from zipsign.zip import SIGNATURE_PREFIX, ZipArchive


def _name(cn):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _issue(cn, key, issuer_cn, issuer_key, ca):
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(_name(issuer_cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, hashes.SHA256())
    )


def _write_key(path, key):
    path.write_bytes(key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))
    return str(path)


def _write_certs(path, *certs):
    path.write_bytes(b"".join(cert.public_bytes(Encoding.PEM) for cert in certs))
    return str(path)


@pytest.fixture
def pki(tmp_path):
    keys = {name: ec.generate_private_key(ec.SECP256R1()) for name in ("self", "root", "signing", "alice")}
    self_cert = _issue("Self Signed", keys["self"], "Self Signed", keys["self"], True)
    root = _issue("Root CA", keys["root"], "Root CA", keys["root"], True)
    signing = _issue("Signing CA", keys["signing"], "Root CA", keys["root"], True)
    alice = _issue("Alice", keys["alice"], "Signing CA", keys["signing"], False)
    return SimpleNamespace(
        self_key=_write_key(tmp_path / "self.key", keys["self"]),
        self_crt=_write_certs(tmp_path / "self.crt", self_cert),
        root_crt=_write_certs(tmp_path / "root-ca.crt", root),
        signing_crt=_write_certs(tmp_path / "signing-ca.crt", signing),
        alice_key=_write_key(tmp_path / "alice.key", keys["alice"]),
        alice_crt=_write_certs(tmp_path / "alice.crt", alice),
        keyring=_write_certs(tmp_path / "keyring.pem", root, signing),
    )


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "archive.zip"
    with zipfile.ZipFile(path, "w", zipfile.ZIP_STORED) as zf:
        zf.writestr("message.txt", "hello world")
        zf.comment = b"brummni"
    return str(path)


def test_sign_and_verify_self_signed(pki, archive, capsys):
    assert main(["sign", "-f", archive, "-p", pki.self_key, "-c", pki.self_crt]) == 0
    assert ZipArchive(archive).comment().startswith(SIGNATURE_PREFIX)

    capsys.readouterr()
    code = main(["verify", "-f", archive, "-c", pki.self_crt, "--self-signed"])
    assert code == 0
    assert capsys.readouterr().out == "OK\n"


def test_verify_unsigned_archive(pki, archive, capsys):
    code = main(["verify", "--file", archive, "--certificate", pki.self_crt])
    assert code == 2
    assert capsys.readouterr().out == "INVALID_MISSING_SIGNATURE\n"


def test_sign_and_verify_with_keyring(pki, archive, capsys):
    assert main(["sign", "-f", archive, "-p", pki.alice_key, "-c", pki.alice_crt]) == 0
    capsys.readouterr()
    assert main(["verify", "-f", archive, "-c", pki.alice_crt, "-k", pki.keyring]) == 0
    assert capsys.readouterr().out == "OK\n"


def test_verify_invalid_chain(pki, archive, capsys):
    main(["sign", "-f", archive, "-p", pki.alice_key, "-c", pki.alice_crt])
    capsys.readouterr()
    code = main(["verify", "-f", archive, "-c", pki.alice_crt, "-k", pki.root_crt])
    assert code == 3
    assert capsys.readouterr().out == "INVALID_CERTIFICATE_CHAIN\n"


def test_sign_with_intermediate(pki, archive, capsys):
    assert main([
        "sign", "-f", archive, "-p", pki.alice_key, "-c", pki.alice_crt,
        "-i", pki.signing_crt,
    ]) == 0
    capsys.readouterr()
    assert main(["verify", "-f", archive, "-c", pki.alice_crt, "-k", pki.root_crt]) == 0
    assert capsys.readouterr().out == "OK\n"


def test_sign_with_two_signers(pki, archive, capsys):
    assert main([
        "sign", "-f", archive,
        "-p", pki.self_key, "-c", pki.self_crt,
        "-p", pki.alice_key, "-c", pki.alice_crt,
        "-e",
    ]) == 0
    capsys.readouterr()
    assert main(["verify", "-f", archive, "-c", pki.self_crt]) == 0
    assert capsys.readouterr().out == "OK\n"


def test_sign_count_mismatch(pki, archive, capsys):
    code = main([
        "sign", "-f", archive, "-p", pki.self_key,
        "-c", pki.self_crt, "-c", pki.alice_crt,
    ])
    assert code == 1
    assert "count of keys" in capsys.readouterr().err
    assert ZipArchive(archive).comment() == "brummni"


def test_sign_missing_key_file(pki, archive, tmp_path, capsys):
    code = main(["sign", "-f", archive, "-p", str(tmp_path / "none.key"), "-c", pki.self_crt])
    assert code == 1
    assert "error:" in capsys.readouterr().err


def test_verify_missing_certificate(archive, tmp_path, capsys):
    code = main(["verify", "-f", archive, "-c", str(tmp_path / "none.crt")])
    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "error:" in captured.err


def test_info_signed_archive(pki, archive, capsys):
    main(["sign", "-f", archive, "-p", pki.alice_key, "-c", pki.alice_crt, "-e"])
    capsys.readouterr()
    assert main(["info", "-f", archive]) == 0
    out = capsys.readouterr().out
    assert "Signing CA" in out
    assert "Alice" in out


def test_info_unsigned_archive(archive, capsys):
    assert main(["info", "-f", archive]) == 1
    assert "missing signature" in capsys.readouterr().err


def test_missing_required_argument(archive, capsys):
    assert main(["sign", "-f", archive]) == 1
    assert "missing required argument: -p" in capsys.readouterr().err


def test_missing_verb(capsys):
    assert main([]) == 1
    assert "missing verb" in capsys.readouterr().err


def test_help(capsys):
    assert main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "Signs and verifies ZIP archives" in out
    assert "zipsign sign -f archive.zip -p key.pem -c cert.pem" in out


def test_build_app_verbs():
    app = build_app()
    assert [verb.name for verb in app.verbs] == ["sign", "verify", "info"]
    assert app.info.name == "zipsign"