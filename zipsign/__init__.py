"""Sign and verify ZIP archives with CMS signatures kept in the archive comment."""

__version__ = "1.5.1"

__all__ = [
    "base64codec",
    "cli",
    "cms",
    "errors",
    "informer",
    "main",
    "pki",
    "signer",
    "verifier",
    "zip",
]