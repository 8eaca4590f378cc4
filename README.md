# zipsign

Sign and verify ZIP archives.

`zipsign` makes a detached CMS (PKCS #7) signature over an archive. The signature
covers every byte up to the archive's comment-length field, so it does not cover
the comment itself. The signature is then stored in the archive comment as
`ZipSign=data:application/cms;base64,<signature>`. A signed archive is still an
ordinary ZIP file, and any unzip tool can open it.

## Installation

```
pip install .
```

This installs the `zipsign` command. You can also run it as `python -m zipsign.main`.

## Command line

Sign an archive with a private key and the signer's certificate:

```
zipsign sign -f archive.zip -p key.pem -c cert.pem
```

| Option | Meaning |
| --- | --- |
| `-f, --file` | Archive to sign (required). |
| `-p, --private-key` | Unencrypted PEM private key of a signer (required, may repeat). |
| `-c, --certificate` | PEM certificate of a signer (required, may repeat; one per key). |
| `-i, --intermediate` | Intermediate certificate to embed (optional, may repeat). |
| `-e, --embed-certificate` | Embed the signer certificates in the signature. |
| `-v, --verbose` | Accepted; signing output does not change. |

Verify a signed archive:

```
zipsign verify -f archive.zip -c cert.pem -k keyring.pem
zipsign verify -f archive.zip -c cert.pem --self-signed
```

| Option | Meaning |
| --- | --- |
| `-f, --file` | Archive to verify (required). |
| `-c, --certificate` | Certificate of the signer (required; repeat it to require more signers). |
| `-k, --keyring` | PEM file of trusted certificates (optional). |
| `-s, --self-signed` | Skip validating the signer certificates as chains. |
| `-v, --verbose` | Write the reason for a failure to standard error. |

`verify` prints `OK`, `INVALID`, `INVALID_MISSING_SIGNATURE`,
`INVALID_CERTIFICATE_CHAIN` or `INVALID_SIGNATURE`. Its exit status is the
matching value of `VerifyResult`: 0, 1, 2, 3 or 4.

Show the contents of an archive's signature:

```
zipsign info -f archive.zip
```

`zipsign -h` prints the full usage, and `zipsign <verb> -h` prints the usage of one verb.
If a required option is missing or an option is not recognised, the usage is
printed and the exit status is 1.

## Library

```python
from zipsign.signer import Signer
from zipsign.verifier import Verifier, VerifyResult
from zipsign.informer import describe

signer = Signer("certs/alice.key", "certs/alice.crt")
signer.add_intermediate("ca/signing-ca.crt")
signer.embed_certs = True
signer.sign("archive.zip")

verifier = Verifier("certs/alice.crt")
result = verifier.verify("archive.zip", "ca/root-ca.crt")
assert result is VerifyResult.GOOD

print(describe("archive.zip"))
```

- `Signer(key_file, cert_file)`: `add_signer()`, `add_intermediate()`,
  `create_signature()` (returns the base64 signature and leaves the archive
  unchanged), and `sign()`.
- `Verifier(cert_file)`: `add_certificate()` and
  `verify(filename, keyring_path="", verbose=False, self_signed=False)`. `verify()`
  reports every failure through its `VerifyResult` and never raises.
- `zipsign.informer`: `describe(filename)` returns the description as text, and
  `print_info(filename, out=None)` writes it out. Both raise `ValueError` for an
  unsigned archive.

Lower-level building blocks:

- `zipsign.zip.ZipArchive` finds, reads and replaces the archive comment
  (`comment_start()`, `comment()`, `set_comment()`). Its `signed_content()` returns
  the bytes that the signature covers. `read_prefix()` reads the start of a file.
- `zipsign.cms.SignedData` creates (`sign()`), parses (`from_base64()`), encodes
  (`to_der()`, `to_base64()`), verifies (`verify()`) and describes (`to_text()`)
  detached CMS signatures.
- `zipsign.pki` has `load_private_key()`, `load_certificate()`, `read_input_file()`
  and `CertificateStore`. The store checks that a certificate chains up to a trusted
  self-signed certificate.
- `zipsign.base64codec` is the strict Base64 codec used for the comment.
- `zipsign.cli` is the small verb-based command-line framework behind the
  `zipsign` command.

Loading and signing failures raise exceptions from `zipsign.errors`:
`CryptoBaseError`, `MissingFileError` and `CryptoError`. A malformed archive raises
`ValueError`.

## Limitations

- New signatures always use SHA-256. Signer keys must be RSA (PKCS #1 v1.5) or
  elliptic-curve (ECDSA) keys. Private keys must be unencrypted PEM.
- Chain validation checks validity periods, the CA basic constraint and issuer
  signatures. It does not check revocation, key usage or other policy extensions.
- Signing replaces any existing archive comment.

## Running the tests

```
pip install .[test]
pytest
```