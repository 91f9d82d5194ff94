"""
Permission enforcement and atomic writes for sensitive files.

Every artifact managed by Milou belongs to one permission class:
directories are owner-only, secret files (the configuration file and
private keys) are owner read/write, public files (certificates and CA
chains) are world-readable. PermissionGuard checks and repairs those modes
and provides the write-to-temporary-then-rename primitive used by every
mutating operation.
"""

import hashlib
import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Union

from ..error_handling import (
    FilesystemError,
    NotFoundError,
    PermissionMismatch,
    WriteFailure,
)

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
SECRET_MODE = 0o600
PUBLIC_MODE = 0o644


class PermissionGuard:
    """Enforces permission bits and performs atomic file replacement."""

    TEMP_PREFIX = ".tmp-"

    @staticmethod
    def mode_of(path: Union[str, Path]) -> int:
        """Return the permission bits of a path."""
        return stat.S_IMODE(os.stat(path).st_mode)

    def enforce(
        self,
        path: Union[str, Path],
        expected_mode: int,
        repair: bool = True,
    ) -> bool:
        """Make sure a path carries the expected mode.

        Args:
            path: File or directory to check
            expected_mode: Required permission bits (e.g. 0o600)
            repair: Correct a wrong mode instead of raising

        Returns:
            True if the mode was repaired, False if it was already correct

        Raises:
            NotFoundError: If the path does not exist
            PermissionMismatch: If the mode is wrong and repair is False
            FilesystemError: If the mode could not be corrected
        """
        path = Path(path)
        try:
            actual = self.mode_of(path)
        except FileNotFoundError as e:
            raise NotFoundError(
                f"Cannot verify permissions: {path} not found", path=path
            ) from e

        if actual == expected_mode:
            return False

        mismatch = PermissionMismatch(path, expected_mode, actual)
        if not repair:
            raise mismatch

        logger.warning(str(mismatch))
        try:
            os.chmod(path, expected_mode)
        except OSError as e:
            raise FilesystemError(
                f"Failed to fix permissions on {path}: {e}", path=path
            ) from e

        logger.info(f"Fixed permissions: {path} now {expected_mode:o}")
        return True

    def write_atomically(
        self,
        path: Union[str, Path],
        content: Union[str, bytes],
        mode: int = SECRET_MODE,
    ) -> None:
        """Replace a file's content atomically.

        The content is written to a temporary file in the same directory
        (same filesystem), the mode is applied before any byte is written,
        and the temporary file is renamed over the target. Readers see either
        the previous complete content or the new complete content.

        Args:
            path: Target file
            content: New content (str is encoded as UTF-8)
            mode: Permission bits for the target

        Raises:
            WriteFailure: If anything fails before the rename completes
        """
        path = Path(path)
        data = content.encode("utf-8") if isinstance(content, str) else content

        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=self.TEMP_PREFIX, suffix=".tmp"
            )
        except OSError as e:
            raise WriteFailure(
                f"Failed to create temp file for {path}: {e}", path=path
            ) from e

        tmp_path = Path(tmp_name)
        try:
            with open(fd, "wb") as f:
                os.fchmod(f.fileno(), mode)
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException as e:
            tmp_path.unlink(missing_ok=True)
            if isinstance(e, OSError):
                raise WriteFailure(
                    f"Failed to write {path}: {e}", path=path
                ) from e
            raise

        # The rename may land on a filesystem that rewrites modes
        self.enforce(path, mode)
        logger.debug(f"Atomic write complete: {path} (perms: {mode:o})")

    def ensure_directory(self, path: Union[str, Path], mode: int = DIR_MODE) -> Path:
        """Create a directory if needed and enforce its mode.

        Raises:
            FilesystemError: If the directory cannot be created or fixed
        """
        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to create directory {path}: {e}", path=path
            ) from e
        self.enforce(path, mode)
        return path

    def install(
        self,
        source: Union[str, Path],
        dest: Union[str, Path],
        mode: int,
    ) -> None:
        """Copy a file into place atomically with the given mode.

        Raises:
            NotFoundError: If the source is missing or unreadable
            WriteFailure: If the destination could not be written
        """
        source = Path(source)
        try:
            data = source.read_bytes()
        except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
            raise NotFoundError(
                f"File not found or not readable: {source}", path=source
            ) from e
        self.write_atomically(dest, data, mode)

    def copy_preserving(self, source: Union[str, Path], dest: Union[str, Path]) -> Path:
        """Copy a file together with its mode and timestamps."""
        return Path(shutil.copy2(source, dest))

    @staticmethod
    def checksum(path: Union[str, Path]) -> str:
        """Compute the SHA256 digest of a file.

        Raises:
            NotFoundError: If the file does not exist
        """
        path = Path(path)
        digest = hashlib.sha256()
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}", path=path) from e
        return digest.hexdigest()
