"""
Security helpers for Milou installations.

Provides permission enforcement, atomic writes, secret generation and
TLS certificate management.
"""

from .permissions import DIR_MODE, PUBLIC_MODE, SECRET_MODE, PermissionGuard
from .secrets import SecretSpec, random_string
from .certificate_manager import (
    CertificateManager,
    CertificateInfo,
    VerificationResult,
)

__all__ = [
    "DIR_MODE",
    "PUBLIC_MODE",
    "SECRET_MODE",
    "PermissionGuard",
    "SecretSpec",
    "random_string",
    "CertificateManager",
    "CertificateInfo",
    "VerificationResult",
]
