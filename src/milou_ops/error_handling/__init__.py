"""
Error handling utilities for Milou operations.

Provides the exception hierarchy and input validators.
"""

from .errors import (
    MilouOpsError,
    NotFoundError,
    TemplateNotFoundError,
    TemplateRenderError,
    FilesystemError,
    WriteFailure,
    BackupFailure,
    PermissionMismatch,
    ValidationFailure,
    CertificateError,
    ImportMismatch,
    KeyMismatch,
    CertificateExpired,
)
from .validators import (
    validate_key,
    validate_value,
    validate_domain,
    validate_port,
    validate_validity_days,
)

__all__ = [
    # Errors
    "MilouOpsError",
    "NotFoundError",
    "TemplateNotFoundError",
    "TemplateRenderError",
    "FilesystemError",
    "WriteFailure",
    "BackupFailure",
    "PermissionMismatch",
    "ValidationFailure",
    "CertificateError",
    "ImportMismatch",
    "KeyMismatch",
    "CertificateExpired",
    # Validators
    "validate_key",
    "validate_value",
    "validate_domain",
    "validate_port",
    "validate_validity_days",
]
