"""Command line interface: sign, verify and inspect ZIP archives."""

from __future__ import annotations

import sys

from zipsign.cli import App, Arguments
from zipsign.informer import print_info
from zipsign.signer import Signer
from zipsign.verifier import Verifier, VerifyResult

_RESULT_TEXT = {
    VerifyResult.GOOD: "OK",
    VerifyResult.BAD_MISSING_SIGNATURE: "INVALID_MISSING_SIGNATURE",
    VerifyResult.BAD_INVALID_CERTIFICATE_CHAIN: "INVALID_CERTIFICATE_CHAIN",
    VerifyResult.BAD_INVALID_SIGNATURE: "INVALID_SIGNATURE",
}

_EXAMPLES = (
    "Examples:\n"
    "\tSign:\n"
    "\t\tzipsign sign -f archive.zip -p key.pem -c cert.pem\n"
    "\tVerify:\n"
    "\t\tzipsign verify -f archive.zip -c cert.pem\n"
    "\t\tzipsign verify -f archive.zip -c cert.pem --self-signed\n"
)


def _report(exc: BaseException) -> None:
    print(f"error: {exc}", file=sys.stderr)


def sign_command(args: Arguments) -> int:
    """Sign an archive with the given keys and certificates."""
    filename = args.get("f")
    key_files = args.get_list("p")
    cert_files = args.get_list("c")
    try:
        if len(key_files) != len(cert_files):
            raise ValueError("count of keys and signer certificates does not match")
        signer = Signer(key_files[0], cert_files[0])
        signer.embed_certs = args.contains("e")
        if args.contains("i"):
            for intermediate in args.get_list("i"):
                signer.add_intermediate(intermediate)
        for key_file, cert_file in zip(key_files[1:], cert_files[1:]):
            signer.add_signer(key_file, cert_file)
        signer.sign(filename)
    except Exception as exc:
        _report(exc)
        return 1
    return 0


def verify_command(args: Arguments) -> int:
    """Verify an archive and print the outcome; the result is the exit code."""
    filename = args.get("f")
    cert_files = args.get_list("c")
    keyring_path = args.get("k") if args.contains("k") else ""
    result = VerifyResult.BAD
    try:
        verifier = Verifier(cert_files[0])
        for cert_file in cert_files[1:]:
            verifier.add_certificate(cert_file)
        result = verifier.verify(
            filename, keyring_path, args.contains("v"), args.contains("s")
        )
        print(_RESULT_TEXT.get(result, "INVALID"))
    except Exception as exc:
        _report(exc)
    return int(result)


def info_command(args: Arguments) -> int:
    """Print information about an archive's signature."""
    try:
        print_info(args.get("f"))
    except Exception as exc:
        _report(exc)
        return 1
    return 0


def build_app() -> App:
    """Create the application with its sign, verify and info verbs."""
    app = App("zipsign")
    (
        app.set_copyright("2019-2025 the zipsign authors")
        .set_description("Signs and verifies ZIP archives")
        .set_additional_info(_EXAMPLES)
    )

    (
        app.add("sign", sign_command)
        .set_help_text("Signs a zip archive.")
        .add_arg("f", "file", "Archive to sign.")
        .add_list("p", "private-key", "Private key to sign.")
        .add_list("c", "certificate", "Certificate of signer.")
        .add_list("i", "intermediate", "Add intermediate certificate", False)
        .add_flag("e", "embed-certificate", "Embed signers certificate in signature")
        .add_flag("v", "verbose", "Enable additional output")
    )

    (
        app.add("verify", verify_command)
        .set_help_text("Verifies the signature of a zip archive.")
        .add_arg("f", "file", "Archive to verify.")
        .add_arg("c", "certificate", "Certificate of signer.")
        .add_arg("k", "keyring", "Path of keyring file.", False)
        .add_flag("v", "verbose", "Enable additional output")
        .add_flag("s", "self-signed", "Allows self signed certificates, skip cert verify")
    )

    (
        app.add("info", info_command)
        .set_help_text("Print info about the signature of zip archive.")
        .add_arg("f", "file", "Archive to verify.")
    )
    return app


def main(argv=None) -> int:
    """Run the command line with ``argv`` (without the program name)."""
    if argv is None:
        argv = sys.argv[1:]
    return build_app().run(argv)


if __name__ == "__main__":
    sys.exit(main())