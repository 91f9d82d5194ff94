"""
Operations context for Milou.

An OpsContext carries the paths and environment decisions that every
operation needs (which configuration file, which certificate directory,
where external backups go). It is built once by the caller and passed
explicitly, so independent contexts can be used side by side.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

NODE_ENVIRONMENTS = ("production", "development")


def _default_base_dir() -> Path:
    """Get the default Milou home directory."""
    if os.name == "nt":
        base = Path(os.environ.get("LOCALAPPDATA", "~"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", "~/.local/share"))
    return base.expanduser() / "milou"


@dataclass
class OpsContext:
    """Paths and settings for one Milou installation.

    Attributes:
        base_dir: Installation directory
        env_file: Path to the KEY=VALUE configuration file
        ssl_dir: Certificate bundle directory
        backup_dir: Directory receiving external backups (ssl_backup_*)
        template_file: Configuration template (None = packaged default)
        node_env: 'production' or 'development'
    """
    base_dir: Path
    env_file: Path
    ssl_dir: Path
    backup_dir: Path
    template_file: Optional[Path] = None
    node_env: str = "production"

    @classmethod
    def for_directory(
        cls,
        base_dir: Path,
        node_env: str = "production",
    ) -> "OpsContext":
        """Create a context with the standard layout under base_dir.

        Args:
            base_dir: Installation directory
            node_env: 'production' or 'development'

        Returns:
            OpsContext with .env, ssl/ and backups rooted at base_dir
        """
        base_dir = Path(base_dir).expanduser()
        return cls(
            base_dir=base_dir,
            env_file=base_dir / ".env",
            ssl_dir=base_dir / "ssl",
            backup_dir=base_dir,
            node_env=node_env,
        )

    @classmethod
    def from_env(cls) -> "OpsContext":
        """Create context from environment variables.

        Environment variables:
            MILOU_HOME: Installation directory
            MILOU_ENV_FILE: Configuration file path
            MILOU_SSL_DIR: Certificate directory
            MILOU_BACKUP_DIR: External backup directory
            MILOU_TEMPLATE: Configuration template path
            NODE_ENV: 'production' or 'development'

        Returns:
            OpsContext instance
        """
        home = os.environ.get("MILOU_HOME")
        context = cls.for_directory(
            Path(home) if home else _default_base_dir(),
            node_env=os.environ.get("NODE_ENV", "production"),
        )

        if os.environ.get("MILOU_ENV_FILE"):
            context.env_file = Path(os.environ["MILOU_ENV_FILE"]).expanduser()
        if os.environ.get("MILOU_SSL_DIR"):
            context.ssl_dir = Path(os.environ["MILOU_SSL_DIR"]).expanduser()
        if os.environ.get("MILOU_BACKUP_DIR"):
            context.backup_dir = Path(os.environ["MILOU_BACKUP_DIR"]).expanduser()
        if os.environ.get("MILOU_TEMPLATE"):
            context.template_file = Path(os.environ["MILOU_TEMPLATE"]).expanduser()

        return context

    @classmethod
    def from_config_file(cls, config_path: str) -> "OpsContext":
        """Create context from a YAML settings file.

        Relative paths in the file are resolved against base_dir.

        Args:
            config_path: Path to the YAML file

        Returns:
            OpsContext instance

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a YAML mapping
        """
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")

        base_dir = Path(data.get("base_dir") or path.parent).expanduser()
        context = cls.for_directory(
            base_dir,
            node_env=data.get("node_env", "production"),
        )

        def resolve(value) -> Path:
            value = Path(value).expanduser()
            return value if value.is_absolute() else base_dir / value

        if data.get("env_file"):
            context.env_file = resolve(data["env_file"])
        if data.get("ssl_dir"):
            context.ssl_dir = resolve(data["ssl_dir"])
        if data.get("backup_dir"):
            context.backup_dir = resolve(data["backup_dir"])
        if data.get("template_file"):
            context.template_file = resolve(data["template_file"])

        return context

    def validate(self) -> None:
        """Validate that the context is usable.

        Raises:
            ValueError: If a setting is invalid
        """
        if self.node_env not in NODE_ENVIRONMENTS:
            raise ValueError(
                f"Invalid NODE_ENV value: {self.node_env} "
                "(use development or production)"
            )


def load_context() -> OpsContext:
    """Load the operations context.

    Uses MILOU_CONFIG_PATH when set, otherwise environment variables.

    Returns:
        Validated OpsContext
    """
    config_path = os.environ.get("MILOU_CONFIG_PATH")
    if config_path:
        context = OpsContext.from_config_file(config_path)
    else:
        context = OpsContext.from_env()

    context.validate()
    return context
