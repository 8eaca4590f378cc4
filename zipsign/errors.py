"""Exceptions raised while handling keys, certificates and signatures."""


class CryptoBaseError(Exception):
    """Base class of all signing and verification errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MissingFileError(CryptoBaseError):
    """Raised when a required file does not exist or cannot be opened."""

    def __init__(self, path) -> None:
        self.path = str(path)
        super().__init__(f"file not found: {self.path}")


class CryptoError(CryptoBaseError):
    """Raised when a cryptographic operation fails."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        text = f"error: {message}"
        if cause is not None:
            text += f" ({type(cause).__name__}: {cause})"
        super().__init__(text)