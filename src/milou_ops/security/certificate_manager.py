"""
TLS certificate management for Milou installations.

Generates, imports, verifies, renews and removes the certificate bundle
(certificate, private key and optional CA chain) served by the stack.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography import x509
from cryptography.x509.oid import NameOID, ExtendedKeyUsageOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PrivateFormat,
    PublicFormat,
    NoEncryption,
)

from ..config import OpsContext
from ..error_handling import (
    BackupFailure,
    CertificateError,
    CertificateExpired,
    FilesystemError,
    ImportMismatch,
    KeyMismatch,
    NotFoundError,
    PermissionMismatch,
    validate_domain,
    validate_validity_days,
)
from .permissions import DIR_MODE, PUBLIC_MODE, SECRET_MODE, PermissionGuard

logger = logging.getLogger(__name__)

CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"
CA_FILE = "ca.pem"

ARTIFACT_MODES = {
    CERT_FILE: PUBLIC_MODE,
    KEY_FILE: SECRET_MODE,
    CA_FILE: PUBLIC_MODE,
}


@dataclass
class CertificateInfo:
    """Details of the installed certificate.

    Attributes:
        subject: Subject distinguished name (RFC 4514)
        issuer: Issuer distinguished name (RFC 4514)
        serial_number: Certificate serial number
        not_before: Start of the validity window
        not_after: End of the validity window
        fingerprint: SHA256 fingerprint of the certificate
        cert_path: Certificate file
        key_path: Private key file
        ca_path: CA chain file (None if not installed)
        permission_issues: Artifacts whose mode deviates from the expected one
    """
    subject: str
    issuer: str
    serial_number: int
    not_before: datetime
    not_after: datetime
    fingerprint: str
    cert_path: Path
    key_path: Path
    ca_path: Optional[Path] = None
    permission_issues: list[str] = field(default_factory=list)

    @property
    def is_self_signed(self) -> bool:
        return self.subject == self.issuer

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "serial_number": format(self.serial_number, "X"),
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "fingerprint": self.fingerprint,
            "cert_path": str(self.cert_path),
            "key_path": str(self.key_path),
            "ca_path": str(self.ca_path) if self.ca_path else None,
            "permission_issues": list(self.permission_issues),
        }


@dataclass
class VerificationResult:
    """Outcome of a successful certificate verification.

    Attributes:
        subject: Subject distinguished name
        fingerprint: SHA256 fingerprint of the certificate
        not_after: End of the validity window
        days_remaining: Whole days until expiry
        expiring_soon: Fewer than EXPIRY_WARNING_DAYS days remain
        permissions_repaired: Artifacts whose mode had to be corrected
    """
    subject: str
    fingerprint: str
    not_after: datetime
    days_remaining: int
    expiring_soon: bool = False
    permissions_repaired: list[str] = field(default_factory=list)


class CertificateManager:
    """Manages the TLS certificate bundle of a Milou installation."""

    DEFAULT_KEY_SIZE = 2048
    DEFAULT_VALIDITY_DAYS = 365
    EXPIRY_WARNING_DAYS = 30
    BACKUP_PREFIX = "backup_"
    EXTERNAL_BACKUP_PREFIX = "ssl_backup_"
    STAGING_PREFIX = ".staging-"

    def __init__(
        self,
        ssl_dir: Optional[Path] = None,
        context: Optional[OpsContext] = None,
        guard: Optional[PermissionGuard] = None,
    ):
        """Initialize the certificate manager.

        Args:
            ssl_dir: Bundle directory (defaults to the context's ssl_dir)
            context: Operations context
            guard: Permission guard used for writes
        """
        if ssl_dir is None and context is not None:
            ssl_dir = context.ssl_dir
        self.ssl_dir = Path(ssl_dir) if ssl_dir else self._default_ssl_dir()
        self.backup_dir = context.backup_dir if context else self.ssl_dir.parent
        self.guard = guard or PermissionGuard()

    @staticmethod
    def _default_ssl_dir() -> Path:
        """Get the default certificate directory."""
        if os.name == "nt":
            base = Path(os.environ.get("LOCALAPPDATA", "~"))
        else:
            base = Path(os.environ.get("XDG_DATA_HOME", "~/.local/share"))
        return base.expanduser() / "milou" / "ssl"

    @property
    def cert_path(self) -> Path:
        return self.ssl_dir / CERT_FILE

    @property
    def key_path(self) -> Path:
        return self.ssl_dir / KEY_FILE

    @property
    def ca_path(self) -> Path:
        return self.ssl_dir / CA_FILE

    def exists(self) -> bool:
        """Check whether a certificate is installed."""
        return self.cert_path.is_file()

    # =========================================================================
    # Crypto helpers
    # =========================================================================

    def _generate_private_key(self, key_size: int = None) -> rsa.RSAPrivateKey:
        """Generate an RSA private key."""
        return rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size or self.DEFAULT_KEY_SIZE,
        )

    def _key_to_pem(self, key) -> bytes:
        """Convert private key to PEM bytes."""
        return key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=NoEncryption(),
        )

    def _cert_to_pem(self, cert: x509.Certificate) -> bytes:
        """Convert certificate to PEM bytes."""
        return cert.public_bytes(Encoding.PEM)

    def _get_fingerprint(self, cert: x509.Certificate) -> str:
        """Get SHA256 fingerprint of certificate."""
        fingerprint = cert.fingerprint(hashes.SHA256())
        return fingerprint.hex().upper()

    @staticmethod
    def _public_key_fingerprint(public_key) -> str:
        """Get SHA256 fingerprint of a public key's SubjectPublicKeyInfo."""
        der = public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)
        digest = hashes.Hash(hashes.SHA256())
        digest.update(der)
        return digest.finalize().hex().upper()

    def _load_certificate(self, path: Path) -> x509.Certificate:
        try:
            return x509.load_pem_x509_certificate(path.read_bytes())
        except ValueError as e:
            raise CertificateError(f"Invalid certificate file: {path}: {e}") from e

    def _load_private_key(self, path: Path):
        try:
            return serialization.load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as e:
            raise CertificateError(f"Invalid private key file: {path}: {e}") from e

    def _key_fingerprints(self, cert: x509.Certificate, key) -> Tuple[str, str]:
        """Fingerprints of the certificate's public key and the key's public key."""
        return (
            self._public_key_fingerprint(cert.public_key()),
            self._public_key_fingerprint(key.public_key()),
        )

    def build_self_signed(
        self,
        domain: str,
        validity_days: int,
    ) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
        """Create a self-signed server certificate and its key in memory.

        Args:
            domain: Common name and subject alternative name
            validity_days: Certificate validity in days

        Returns:
            Tuple of (certificate, private_key)
        """
        key = self._generate_private_key()

        subject = issuer = x509.Name([
            x509.NameAttribute(NameOID.COUNTRY_NAME, "FR"),
            x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, "IDF"),
            x509.NameAttribute(NameOID.LOCALITY_NAME, "Paris"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Milou"),
            x509.NameAttribute(NameOID.COMMON_NAME, domain),
        ])

        try:
            san = x509.IPAddress(ip_address(domain))
        except ValueError:
            san = x509.DNSName(domain)

        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=True,
                    key_cert_sign=False,
                    crl_sign=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectAlternativeName([san]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )

        return cert, key

    # =========================================================================
    # Filesystem helpers
    # =========================================================================

    def _commit(self, artifacts: dict[str, bytes], remove: Tuple[str, ...] = ()) -> None:
        """Move a complete new bundle into place.

        Every artifact is first written into a staging directory inside the
        bundle directory and the staged key is checked against the staged
        certificate. The files are then moved over the live ones one rename
        after the other. If a move fails, the files already replaced are
        restored from the previous content.

        Args:
            artifacts: File name to content, in commit order
            remove: Live files that must not survive the commit

        Raises:
            KeyMismatch: If the staged certificate and key do not correspond
            FilesystemError: If the bundle could not be committed
        """
        self.guard.ensure_directory(self.ssl_dir, DIR_MODE)

        try:
            staging = Path(tempfile.mkdtemp(dir=self.ssl_dir, prefix=self.STAGING_PREFIX))
        except OSError as e:
            raise FilesystemError(
                f"Failed to create staging directory in {self.ssl_dir}: {e}",
                path=self.ssl_dir,
            ) from e

        try:
            for name, data in artifacts.items():
                self.guard.write_atomically(staging / name, data, ARTIFACT_MODES[name])

            if CERT_FILE in artifacts and KEY_FILE in artifacts:
                cert_fp, key_fp = self._key_fingerprints(
                    self._load_certificate(staging / CERT_FILE),
                    self._load_private_key(staging / KEY_FILE),
                )
                if cert_fp != key_fp:
                    raise KeyMismatch(cert_fp, key_fp)

            previous = {}
            for name in list(artifacts) + list(remove):
                live = self.ssl_dir / name
                previous[name] = live.read_bytes() if live.is_file() else None

            committed = []
            try:
                for name in artifacts:
                    os.replace(staging / name, self.ssl_dir / name)
                    committed.append(name)
                for name in remove:
                    if name not in artifacts:
                        (self.ssl_dir / name).unlink(missing_ok=True)
                        committed.append(name)
            except OSError as e:
                self._rollback(previous, committed)
                raise FilesystemError(
                    f"Failed to install certificate bundle in {self.ssl_dir}: {e}",
                    path=self.ssl_dir,
                ) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        for name in artifacts:
            self.guard.enforce(self.ssl_dir / name, ARTIFACT_MODES[name])

    def _rollback(self, previous: dict[str, Optional[bytes]], committed: list[str]) -> None:
        logger.error(f"Rolling back partially installed bundle: {', '.join(committed)}")
        for name in committed:
            live = self.ssl_dir / name
            if previous[name] is None:
                live.unlink(missing_ok=True)
            else:
                self.guard.write_atomically(live, previous[name], ARTIFACT_MODES[name])

    def _timestamped_path(self, parent: Path, prefix: str) -> Path:
        """First unused path named <prefix>YYYYmmdd_HHMMSS[_N] under parent."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        candidate = parent / f"{prefix}{stamp}"
        counter = 2
        while candidate.exists():
            candidate = parent / f"{prefix}{stamp}_{counter}"
            counter += 1
        return candidate

    def _snapshot(self) -> Path:
        """Copy the live bundle into a new backup subdirectory.

        Raises:
            BackupFailure: If the snapshot could not be completed
        """
        while True:
            backup = self._timestamped_path(self.ssl_dir, self.BACKUP_PREFIX)
            try:
                backup.mkdir(mode=DIR_MODE)
                break
            except FileExistsError:
                continue
            except OSError as e:
                raise BackupFailure(
                    f"Failed to create backup directory: {backup}: {e}", path=backup
                ) from e

        try:
            self.guard.enforce(backup, DIR_MODE)
            self.guard.copy_preserving(self.cert_path, backup / CERT_FILE)
            self.guard.copy_preserving(self.key_path, backup / KEY_FILE)
            if self.ca_path.is_file():
                self.guard.copy_preserving(self.ca_path, backup / CA_FILE)
        except (OSError, FilesystemError) as e:
            shutil.rmtree(backup, ignore_errors=True)
            raise BackupFailure(
                f"Failed to backup certificate bundle to {backup}: {e}", path=backup
            ) from e

        return backup

    def _backup_external(self) -> Path:
        """Copy the whole bundle directory next to the installation.

        Raises:
            BackupFailure: If the copy failed
        """
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            backup = self._timestamped_path(self.backup_dir, self.EXTERNAL_BACKUP_PREFIX)
            shutil.copytree(self.ssl_dir, backup, copy_function=shutil.copy2)
        except OSError as e:
            raise BackupFailure(
                f"Failed to backup SSL directory {self.ssl_dir}: {e}",
                path=self.backup_dir,
            ) from e
        return backup

    def _check_modes(self, repair: bool) -> list[str]:
        """Check the modes of the bundle directory and every present artifact.

        Returns:
            Descriptions of the deviations found (repaired ones when repair=True)
        """
        targets = [(self.ssl_dir, DIR_MODE)]
        targets.extend(
            (self.ssl_dir / name, mode)
            for name, mode in ARTIFACT_MODES.items()
            if (self.ssl_dir / name).is_file()
        )

        issues = []
        for path, mode in targets:
            if repair:
                if self.guard.enforce(path, mode):
                    issues.append(str(path))
            else:
                try:
                    self.guard.enforce(path, mode, repair=False)
                except PermissionMismatch as e:
                    issues.append(str(e))
        return issues

    # =========================================================================
    # Operations
    # =========================================================================

    def generate_self_signed(
        self,
        domain: str = "localhost",
        validity_days: int = DEFAULT_VALIDITY_DAYS,
    ) -> CertificateInfo:
        """Generate a self-signed certificate and install it.

        Any CA chain left from a previous import is removed, since it does
        not belong to the new certificate.

        Args:
            domain: Domain name the certificate is issued for
            validity_days: Certificate validity in days

        Returns:
            Information about the installed certificate

        Raises:
            ValueError: If the domain or validity is invalid
            CertificateError: If key or certificate generation failed
            FilesystemError: If the bundle could not be written
        """
        validate_domain(domain)
        validate_validity_days(validity_days)

        logger.info(f"Generating self-signed SSL certificate for {domain}...")

        try:
            cert, key = self.build_self_signed(domain, validity_days)
        except (ValueError, TypeError) as e:
            raise CertificateError(f"Failed to generate SSL certificate: {e}") from e

        self._commit(
            {KEY_FILE: self._key_to_pem(key), CERT_FILE: self._cert_to_pem(cert)},
            remove=(CA_FILE,),
        )

        self.guard.enforce(self.cert_path, PUBLIC_MODE)
        self.guard.enforce(self.key_path, SECRET_MODE)

        logger.info("Self-signed certificate generated successfully")
        logger.info(f"Certificate: {self.cert_path}")
        logger.info(f"Private key: {self.key_path}")
        return self.info()

    def import_certificate(
        self,
        cert_path: Union[str, Path],
        key_path: Union[str, Path],
        ca_path: Optional[Union[str, Path]] = None,
    ) -> CertificateInfo:
        """Import an externally supplied certificate and private key.

        Args:
            cert_path: PEM certificate to import
            key_path: PEM private key (unencrypted) to import
            ca_path: Optional PEM CA chain

        Returns:
            Information about the installed certificate

        Raises:
            NotFoundError: If an input file is missing or unreadable
            CertificateError: If an input file is not valid PEM
            ImportMismatch: If the certificate does not match the key
        """
        logger.info("Importing SSL certificate...")

        sources = [("Certificate", cert_path), ("Private key", key_path)]
        if ca_path:
            sources.append(("CA certificate", ca_path))
        for label, source in sources:
            source = Path(source)
            if not source.is_file() or not os.access(source, os.R_OK):
                raise NotFoundError(
                    f"{label} file not found or not readable: {source}", path=source
                )

        cert = self._load_certificate(Path(cert_path))
        key = self._load_private_key(Path(key_path))

        cert_fp, key_fp = self._key_fingerprints(cert, key)
        if cert_fp != key_fp:
            raise ImportMismatch(cert_fp, key_fp)

        artifacts = {
            KEY_FILE: Path(key_path).read_bytes(),
            CERT_FILE: Path(cert_path).read_bytes(),
        }
        remove: Tuple[str, ...] = ()
        if ca_path:
            ca_data = Path(ca_path).read_bytes()
            try:
                x509.load_pem_x509_certificates(ca_data)
            except ValueError as e:
                raise CertificateError(f"Invalid CA certificate file: {ca_path}: {e}") from e
            artifacts[CA_FILE] = ca_data
        else:
            remove = (CA_FILE,)

        self._commit(artifacts, remove=remove)

        self.guard.enforce(self.cert_path, PUBLIC_MODE)
        self.guard.enforce(self.key_path, SECRET_MODE)
        if ca_path:
            logger.info(f"CA certificate: {self.ca_path}")

        logger.info("SSL certificate imported successfully")
        return self.info()

    def verify(self) -> VerificationResult:
        """Verify the installed certificate.

        Wrong modes are corrected (with a warning) rather than reported as
        failures.

        Returns:
            VerificationResult with the remaining validity

        Raises:
            NotFoundError: If the certificate or key is missing
            CertificateExpired: If the certificate has expired
            KeyMismatch: If the certificate no longer matches the key
        """
        logger.info("Verifying SSL certificate...")

        if not self.cert_path.is_file():
            raise NotFoundError(
                f"Certificate not found: {self.cert_path}", path=self.cert_path
            )
        if not self.key_path.is_file():
            raise NotFoundError(
                f"Private key not found: {self.key_path}", path=self.key_path
            )

        repaired = self._check_modes(repair=True)

        cert = self._load_certificate(self.cert_path)
        now = datetime.now(timezone.utc)
        not_after = cert.not_valid_after_utc

        if not_after < now:
            logger.error(f"Certificate has expired: {not_after.isoformat()}")
            raise CertificateExpired(not_after)

        days_left = int((not_after - now).total_seconds() // 86400)
        expiring_soon = days_left < self.EXPIRY_WARNING_DAYS
        if expiring_soon:
            logger.warning(f"Certificate expires soon: {days_left} days remaining")
        else:
            logger.info(f"Certificate is valid: {days_left} days remaining")

        key = self._load_private_key(self.key_path)
        cert_fp, key_fp = self._key_fingerprints(cert, key)
        if cert_fp != key_fp:
            raise KeyMismatch(cert_fp, key_fp)

        logger.info("Certificate verification passed")
        return VerificationResult(
            subject=cert.subject.rfc4514_string(),
            fingerprint=self._get_fingerprint(cert),
            not_after=not_after,
            days_remaining=days_left,
            expiring_soon=expiring_soon,
            permissions_repaired=repaired,
        )

    def info(self) -> CertificateInfo:
        """Describe the installed certificate without changing anything.

        Raises:
            NotFoundError: If no certificate is installed
        """
        if not self.cert_path.is_file():
            raise NotFoundError(
                f"Certificate not found: {self.cert_path}", path=self.cert_path
            )

        cert = self._load_certificate(self.cert_path)
        return CertificateInfo(
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=cert.serial_number,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            fingerprint=self._get_fingerprint(cert),
            cert_path=self.cert_path,
            key_path=self.key_path,
            ca_path=self.ca_path if self.ca_path.is_file() else None,
            permission_issues=self._check_modes(repair=False),
        )

    def renew(
        self,
        domain: str = "localhost",
        validity_days: int = DEFAULT_VALIDITY_DAYS,
    ) -> Optional[Path]:
        """Back up the current bundle and generate a new self-signed one.

        Args:
            domain: Domain name for the new certificate
            validity_days: Validity of the new certificate

        Returns:
            The backup directory, or None if no certificate was installed

        Raises:
            BackupFailure: If the backup failed (nothing is generated then)
        """
        validate_domain(domain)
        validate_validity_days(validity_days)

        logger.info("Renewing SSL certificate...")

        backup = None
        if self.cert_path.is_file():
            backup = self._snapshot()
            logger.info(f"Backed up existing certificates to: {backup}")

        self.generate_self_signed(domain, validity_days)

        logger.info("Certificate renewed successfully")
        return backup

    def list_backups(self) -> list[Path]:
        """Renewal backups, oldest first."""
        if not self.ssl_dir.is_dir():
            return []
        backups = [
            p for p in self.ssl_dir.glob(f"{self.BACKUP_PREFIX}*") if p.is_dir()
        ]
        return sorted(backups, key=self._backup_order)

    def _backup_order(self, path: Path) -> Tuple[str, int]:
        """Sort key (timestamp, counter) for backup_YYYYmmdd_HHMMSS[_N]."""
        stamp = path.name[len(self.BACKUP_PREFIX):]
        date, _, rest = stamp.partition("_")
        time, _, counter = rest.partition("_")
        return f"{date}_{time}", int(counter) if counter.isdigit() else 1

    def remove(self) -> Optional[Path]:
        """Delete the bundle directory after a best-effort backup.

        Returns:
            The external backup directory, or None if none was made

        Raises:
            FilesystemError: If the directory could not be deleted
        """
        if not self.ssl_dir.is_dir():
            logger.info("No SSL directory found")
            return None

        logger.warning("Removing SSL certificates...")

        backup = None
        try:
            backup = self._backup_external()
            logger.info(f"Backed up to: {backup}")
        except BackupFailure as e:
            logger.warning(f"Failed to backup SSL directory: {e}")

        try:
            shutil.rmtree(self.ssl_dir)
        except OSError as e:
            raise FilesystemError(
                f"Failed to remove SSL directory: {self.ssl_dir}: {e}",
                path=self.ssl_dir,
            ) from e

        logger.info("SSL certificates removed")
        return backup
