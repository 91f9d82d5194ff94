"""
Atomic KEY=VALUE configuration file management.

The configuration file holds every secret of the installation, so it is
always written through PermissionGuard.write_atomically at mode 600 and
re-checked afterwards. Reads and edits go through the typed entry model in
entries.py: parse once, edit structurally, serialize once.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence, Union

from jinja2 import StrictUndefined, Template
from jinja2 import TemplateError as JinjaTemplateError

from ..config import OpsContext
from ..error_handling import (
    FilesystemError,
    NotFoundError,
    TemplateNotFoundError,
    TemplateRenderError,
    ValidationFailure,
    validate_key,
    validate_value,
)
from ..security.permissions import SECRET_MODE, PermissionGuard
from ..templates import get_template_path
from . import schema
from .entries import ConfigurationFile

logger = logging.getLogger(__name__)

Pairs = Union[Mapping[str, str], Iterable[tuple[str, str]], Sequence[str]]


def _normalize_pairs(pairs: Pairs) -> list[tuple[str, str]]:
    """Turn a mapping, (key, value) pairs or a flat KEY, VALUE list into pairs.

    Raises:
        ValueError: If a flat list has an odd length or an item is not a pair
    """
    if isinstance(pairs, Mapping):
        return list(pairs.items())
    if isinstance(pairs, str):
        raise ValueError(
            "set_many requires key/value pairs, got a single string. "
            "Hint: Use set(key, value) for a single key."
        )

    items = list(pairs)
    if items and all(isinstance(item, str) for item in items):
        if len(items) % 2:
            raise ValueError(
                f"set_many requires key/value pairs, got {len(items)} items. "
                "Hint: Pass KEY1, VALUE1, KEY2, VALUE2, ..."
            )
        return list(zip(items[0::2], items[1::2]))

    result = []
    for item in items:
        if isinstance(item, str) or not isinstance(item, (tuple, list)) or len(item) != 2:
            raise ValueError(
                f"Invalid key/value pair: {item!r}. "
                "Hint: Pass (key, value) tuples or a flat KEY, VALUE list."
            )
        result.append((item[0], item[1]))
    return result


@dataclass
class GenerationResult:
    """Result of generating a configuration file from a template.

    Attributes:
        path: The written configuration file
        template: The template that was rendered
        values: Generated secrets and composite values
    """
    path: Path
    template: Path
    values: dict[str, str] = field(default_factory=dict)

    @property
    def admin_password(self) -> Optional[str]:
        return self.values.get("ADMIN_PASSWORD")

    def to_dict(self, include_secrets: bool = False) -> dict:
        """Convert to dictionary.

        Args:
            include_secrets: Include generated values instead of redacting them

        Returns:
            Dictionary representation
        """
        if include_secrets:
            values = dict(self.values)
        else:
            values = {key: "*** REDACTED ***" for key in self.values}
        return {
            "path": str(self.path),
            "template": str(self.template),
            "values": values,
        }


@dataclass
class ValidationReport:
    """Outcome of a successful validation.

    Attributes:
        path: The validated file
        missing_recommended: Recommended keys that are absent or empty
        permissions_repaired: Whether the file mode had to be corrected
    """
    path: Path
    missing_recommended: list[str] = field(default_factory=list)
    permissions_repaired: bool = False


@dataclass
class MigrationReport:
    """Outcome of a schema migration.

    Attributes:
        path: The migrated file
        added_keys: Keys inserted or filled in by this run
    """
    path: Path
    added_keys: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added_keys)


class ConfigurationStore:
    """Reads and atomically updates one configuration file."""

    def __init__(
        self,
        path: Union[str, Path],
        context: Optional[OpsContext] = None,
        guard: Optional[PermissionGuard] = None,
    ):
        """Initialize the store.

        Args:
            path: Path to the configuration file
            context: Operations context (template and NODE_ENV decisions)
            guard: Permission guard used for writes
        """
        self.path = Path(path)
        self.context = context
        self.guard = guard or PermissionGuard()

    @classmethod
    def from_context(
        cls,
        context: OpsContext,
        guard: Optional[PermissionGuard] = None,
    ) -> "ConfigurationStore":
        """Create a store for the context's configuration file."""
        return cls(context.env_file, context=context, guard=guard)

    # =========================================================================
    # Reading
    # =========================================================================

    def _require_file(self) -> None:
        if not self.path.is_file():
            raise NotFoundError(
                f"Environment file not found: {self.path}", path=self.path
            )

    def _read_text(self) -> str:
        self._require_file()
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FilesystemError(
                f"Environment file is not valid UTF-8: {self.path}: {e}",
                path=self.path,
            ) from e

    def load(self) -> ConfigurationFile:
        """Parse the configuration file.

        Raises:
            NotFoundError: If the file does not exist
            FilesystemError: If the file is not valid UTF-8
        """
        return ConfigurationFile.parse(self._read_text())

    def get(self, key: str) -> str:
        """Get the value of a key.

        Args:
            key: Configuration key

        Returns:
            The value of the first entry for the key

        Raises:
            NotFoundError: If the file or the key does not exist
        """
        validate_key(key)
        value = self.load().get(key)
        if value is None:
            raise NotFoundError(
                f"Key not found: {key}", path=self.path, key=key
            )
        return value

    def get_or_default(self, key: str, default: str = "") -> str:
        """Get the value of a key, or default when it is missing or empty."""
        try:
            value = self.get(key)
        except NotFoundError:
            return default
        return value or default

    def show(self) -> str:
        """Return the file content after re-checking its permissions."""
        self._require_file()
        self.guard.enforce(self.path, SECRET_MODE)
        return self._read_text()

    def checksum(self) -> str:
        """SHA256 of the configuration file (for backup manifests)."""
        return self.guard.checksum(self.path)

    # =========================================================================
    # Writing
    # =========================================================================

    def _write(self, cfg: ConfigurationFile) -> None:
        dropped = cfg.collapse_duplicates()
        if dropped:
            logger.warning(
                f"Collapsed duplicate entries in {self.path}: {', '.join(dropped)}"
            )
        self.guard.write_atomically(self.path, cfg.serialize(), SECRET_MODE)
        self.guard.enforce(self.path, SECRET_MODE)

    def set(self, key: str, value: str) -> None:
        """Set a key, rewriting its entry in place or appending it.

        Raises:
            NotFoundError: If the file does not exist
            ValueError: If the key or value is invalid
        """
        self.set_many({key: value})

    def set_many(self, pairs: Pairs) -> list[str]:
        """Set several keys with a single atomic write.

        Args:
            pairs: Mapping, iterable of (key, value) pairs, or a flat
                KEY1, VALUE1, KEY2, VALUE2 list. Keys absent from the file
                are appended in the order given.

        Returns:
            Keys that were appended rather than rewritten

        Raises:
            NotFoundError: If the file does not exist
            ValueError: If a key or value is invalid, or the pairs are malformed
        """
        updates: dict[str, str] = {}
        for key, value in _normalize_pairs(pairs):
            updates[validate_key(key)] = validate_value(value)

        if not updates:
            logger.debug("set_many called with no key/value pairs")
            return []

        cfg = self.load()
        appended = cfg.apply(updates)
        self._write(cfg)

        logger.debug(f"Updated {len(updates)} values in {self.path}")
        return appended

    def generate(self, template_path: Optional[Union[str, Path]] = None) -> GenerationResult:
        """Generate the configuration file from a template.

        Placeholders are Jinja2 variables named after the generated secrets
        plus NODE_ENV, ENGINE_URL, RABBITMQ_URL and DATABASE_URI.

        Args:
            template_path: Template to render (defaults to the context's
                template, then the packaged one)

        Returns:
            GenerationResult with the generated values

        Raises:
            TemplateNotFoundError: If the template does not exist
        """
        if template_path is None and self.context is not None:
            template_path = self.context.template_file
        template = Path(template_path) if template_path else get_template_path()

        logger.info("Generating environment file...")
        if not template.is_file():
            raise TemplateNotFoundError(
                f"Template file not found: {template}", path=template
            )

        source = template.read_text(encoding="utf-8")
        literals = ConfigurationFile.parse(source)

        secrets = {spec.name: spec.generate() for spec in schema.SECRETS}
        node_env = self.context.node_env if self.context else "production"
        values = dict(secrets)
        values.update(schema.build_composites(
            {key: literals.get(key, "") for key in schema.COMPOSITE_DEFAULTS},
            secrets,
        ))
        values["ENGINE_URL"] = schema.engine_url_for(node_env)
        values["NODE_ENV"] = node_env

        try:
            content = Template(
                source,
                undefined=StrictUndefined,
                keep_trailing_newline=True,
            ).render(**values)
        except JinjaTemplateError as e:
            raise TemplateRenderError(
                f"Failed to render template {template}: {e}", path=template
            ) from e

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.guard.write_atomically(self.path, content, SECRET_MODE)

        logger.info(f"Environment file generated: {self.path}")
        logger.warning(
            "Secrets have been generated. Keep this file secure (600 permissions)."
        )
        return GenerationResult(path=self.path, template=template, values=values)

    def validate(self) -> ValidationReport:
        """Check that every required key has a value.

        Returns:
            ValidationReport listing missing recommended keys

        Raises:
            NotFoundError: If the file does not exist
            ValidationFailure: If required keys are absent or empty
        """
        logger.info("Validating environment file...")
        self._require_file()
        repaired = self.guard.enforce(self.path, SECRET_MODE)

        cfg = self.load()
        missing = [key for key in schema.REQUIRED_KEYS if not cfg.get(key)]
        if missing:
            for key in missing:
                logger.error(f"Missing required environment variable: {key}")
            raise ValidationFailure(missing)

        missing_recommended = []
        for key, consequence in schema.RECOMMENDED_KEYS.items():
            if not cfg.get(key):
                logger.warning(f"{key} not set - {consequence}")
                missing_recommended.append(key)

        logger.info("Environment file validated successfully")
        return ValidationReport(
            path=self.path,
            missing_recommended=missing_recommended,
            permissions_repaired=repaired,
        )

    def migrate(self) -> MigrationReport:
        """Add keys introduced by newer schema versions.

        Only missing keys are added; existing entries are never reordered or
        removed. The file is written once, and only when something changed.

        Returns:
            MigrationReport listing the added keys

        Raises:
            NotFoundError: If the file does not exist
        """
        logger.info("Migrating environment file...")
        cfg = self.load()
        report = MigrationReport(path=self.path)

        for migration in schema.MIGRATIONS:
            if migration.provides[0] not in cfg:
                values = migration.values(cfg)
                if values is None:
                    logger.debug(f"Skipping {migration.name} migration: prerequisites missing")
                    continue
                cfg.insert_after(migration.anchor, migration.block(values))
                report.added_keys.extend(migration.provides)
                logger.info(f"Added {migration.name}: {', '.join(migration.provides)}")
            elif migration.fill_empty:
                empty = [key for key in migration.provides if cfg.get(key) == ""]
                if not empty:
                    continue
                values = migration.values(cfg)
                if values is None:
                    continue
                cfg.apply({key: values[key] for key in empty})
                report.added_keys.extend(empty)
                logger.info(f"Filled empty {migration.name}: {', '.join(empty)}")

        if report.changed:
            self._write(cfg)
        else:
            logger.info("No migration needed - all required variables present")

        self.guard.enforce(self.path, SECRET_MODE)
        return report

    def restore(
        self,
        source: Union[str, Path],
        expected_checksum: Optional[str] = None,
    ) -> None:
        """Install a configuration file taken from a backup.

        Args:
            source: File to restore
            expected_checksum: SHA256 recorded in the backup manifest

        Raises:
            NotFoundError: If the source does not exist
            ValidationFailure: If the checksum does not match
        """
        if expected_checksum is not None:
            actual = self.guard.checksum(source)
            if actual != expected_checksum.lower():
                raise ValidationFailure(
                    [],
                    message=(
                        f"Checksum mismatch for {source}: "
                        f"expected {expected_checksum}, got {actual}"
                    ),
                )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.guard.install(source, self.path, SECRET_MODE)
        logger.info(f"Restored environment file from {source}")
