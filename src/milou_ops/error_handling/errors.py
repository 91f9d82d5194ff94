"""
Exception hierarchy for Milou operations.

Every failure raised by the configuration store, the certificate manager
and the permission guard derives from MilouOpsError so callers can catch
the whole family at once, while the subclasses carry enough structured
detail (missing keys, fingerprints, modes) to act on without re-deriving it.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

PathLike = Union[str, Path]


class MilouOpsError(Exception):
    """Base class for all Milou operations errors."""


class NotFoundError(MilouOpsError):
    """A file, directory or configuration key does not exist.

    Attributes:
        path: The missing path, or the file that was searched
        key: The missing configuration key (if a key lookup failed)
    """

    def __init__(
        self,
        message: str,
        path: Optional[PathLike] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.path = Path(path) if path is not None else None
        self.key = key


class TemplateNotFoundError(NotFoundError):
    """The configuration template file does not exist."""


class TemplateRenderError(MilouOpsError):
    """The configuration template references an unknown placeholder."""

    def __init__(self, message: str, path: Optional[PathLike] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class FilesystemError(MilouOpsError):
    """A filesystem operation failed and the operation was aborted."""

    def __init__(self, message: str, path: Optional[PathLike] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class WriteFailure(FilesystemError):
    """An atomic write failed before the rename; the target is untouched."""


class BackupFailure(FilesystemError):
    """A backup copy could not be created."""


class PermissionMismatch(MilouOpsError):
    """A path does not carry the mode reserved for its artifact class."""

    def __init__(self, path: PathLike, expected: int, actual: int):
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{self.path} has permissions {actual:o} (expected {expected:o})"
        )


class ValidationFailure(MilouOpsError):
    """Required configuration keys are absent or empty."""

    def __init__(self, missing_keys: Sequence[str], message: Optional[str] = None):
        self.missing_keys = list(missing_keys)
        if message is None:
            message = (
                "Missing required environment variables: "
                + ", ".join(self.missing_keys)
            )
        super().__init__(message)


class CertificateError(MilouOpsError):
    """Certificate material is unreadable, invalid or could not be produced."""


class ImportMismatch(CertificateError):
    """The certificate offered for import does not match its private key."""

    def __init__(self, cert_fingerprint: str, key_fingerprint: str):
        self.cert_fingerprint = cert_fingerprint
        self.key_fingerprint = key_fingerprint
        super().__init__(
            "Certificate and private key do not match "
            f"(certificate public key {cert_fingerprint}, "
            f"private key public key {key_fingerprint})"
        )


class KeyMismatch(CertificateError):
    """The live certificate no longer corresponds to the live private key."""

    def __init__(self, cert_fingerprint: str, key_fingerprint: str):
        self.cert_fingerprint = cert_fingerprint
        self.key_fingerprint = key_fingerprint
        super().__init__(
            "Installed certificate and private key do not match "
            f"(certificate public key {cert_fingerprint}, "
            f"private key public key {key_fingerprint})"
        )


class CertificateExpired(CertificateError):
    """The live certificate's validity window has ended."""

    def __init__(self, not_after):
        self.not_after = not_after
        super().__init__(f"Certificate has expired: {not_after.isoformat()}")
