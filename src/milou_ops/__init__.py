"""
Milou Ops - configuration and certificate management for Milou installations.

This package manages the secret-bearing KEY=VALUE environment file and the
TLS certificate bundle of a Milou deployment, writing every sensitive file
atomically with owner-only permissions.
"""

__version__ = "0.1.0"

from .config import OpsContext, load_context
from .configuration import ConfigurationStore
from .security import CertificateManager, PermissionGuard

__all__ = [
    "OpsContext",
    "load_context",
    "ConfigurationStore",
    "CertificateManager",
    "PermissionGuard",
]
