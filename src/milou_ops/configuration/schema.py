"""
Configuration schema: required keys, generated secrets and migrations.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from ..security.secrets import SecretSpec
from .entries import BlankLine, CommentLine, ConfigurationFile, Entry, KeyValueEntry

ENGINE_URL_PRODUCTION = "http://engine:8089"
ENGINE_URL_DEVELOPMENT = "http://localhost:8089"

REQUIRED_KEYS = (
    "DATABASE_URI",
    "REDIS_HOST",
    "REDIS_PORT",
    "SESSION_SECRET",
    "ENCRYPTION_KEY",
    "ENGINE_URL",
)

# Missing values only produce a warning
RECOMMENDED_KEYS = {
    "GHCR_TOKEN": "image pulling may fail",
}

SECRETS = (
    SecretSpec("JWT_SECRET", 64, "hex"),
    SecretSpec("SESSION_SECRET", 64, "hex"),
    SecretSpec("ENCRYPTION_KEY", 64, "hex"),
    SecretSpec("DB_PASSWORD", 32, "alphanumeric"),
    SecretSpec("REDIS_PASSWORD", 32, "alphanumeric"),
    SecretSpec("RABBITMQ_PASSWORD", 32, "alphanumeric"),
    SecretSpec("RABBITMQ_ERLANG_COOKIE", 32, "alphanumeric"),
    SecretSpec("PGADMIN_PASSWORD", 32, "safe"),
    SecretSpec("ADMIN_PASSWORD", 16, "alphanumeric"),
)

# Literal template values used to build composite URLs
COMPOSITE_DEFAULTS = {
    "RABBITMQ_USER": "milou",
    "RABBITMQ_HOST": "rabbitmq",
    "RABBITMQ_PORT": "5672",
    "DB_USER": "milou",
    "DB_HOST": "database",
    "DB_PORT": "5432",
    "DB_NAME": "milou",
}


def engine_url_for(node_env: Optional[str]) -> str:
    """Pick the engine URL for a NODE_ENV value."""
    if node_env == "development":
        return ENGINE_URL_DEVELOPMENT
    return ENGINE_URL_PRODUCTION


def build_composites(literals: dict[str, str], secrets: dict[str, str]) -> dict[str, str]:
    """Compute values assembled from other configuration values.

    Args:
        literals: Plain values read from the template (user, host, port...)
        secrets: Freshly generated secrets

    Returns:
        Mapping of composite key to value
    """
    values = dict(COMPOSITE_DEFAULTS)
    values.update({k: v for k, v in literals.items() if v})

    rabbitmq_url = "amqp://{}:{}@{}:{}".format(
        values["RABBITMQ_USER"],
        secrets["RABBITMQ_PASSWORD"],
        values["RABBITMQ_HOST"],
        values["RABBITMQ_PORT"],
    )
    database_uri = "postgresql://{}:{}@{}:{}/{}".format(
        values["DB_USER"],
        secrets["DB_PASSWORD"],
        values["DB_HOST"],
        values["DB_PORT"],
        values["DB_NAME"],
    )
    return {
        "RABBITMQ_URL": rabbitmq_url,
        "DATABASE_URI": database_uri,
    }


@dataclass
class Migration:
    """One schema evolution step.

    Attributes:
        name: Human-readable name used in logs
        provides: Keys the migration adds
        anchor: Key after which the new block is inserted (appended if absent)
        header: Comment lines placed before the new keys
        values: Computes the new values from the current file, or returns
            None when the migration cannot apply yet
        fill_empty: Also fill keys that are present with an empty value
    """
    name: str
    provides: tuple[str, ...]
    anchor: str
    header: tuple[str, ...]
    values: Callable[[ConfigurationFile], Optional[dict[str, str]]]
    fill_empty: bool = False

    def block(self, values: dict[str, str]) -> list[Entry]:
        entries: list[Entry] = [BlankLine()]
        entries.extend(CommentLine(line) for line in self.header)
        entries.extend(KeyValueEntry(key=key, value=values[key]) for key in self.provides)
        return entries


def _engine_url_values(cfg: ConfigurationFile) -> dict[str, str]:
    return {"ENGINE_URL": engine_url_for(cfg.get("NODE_ENV"))}


def _postgres_values(cfg: ConfigurationFile) -> Optional[dict[str, str]]:
    db_user = cfg.get("DB_USER")
    db_pass = cfg.get("DB_PASSWORD")
    db_name = cfg.get("DB_NAME")
    if not (db_user and db_pass and db_name):
        return None
    return {
        "POSTGRES_USER": db_user,
        "POSTGRES_PASSWORD": db_pass,
        "POSTGRES_DB": db_name,
    }


MIGRATIONS = (
    Migration(
        name="engine URL",
        provides=("ENGINE_URL",),
        anchor="RABBITMQ_PORT",
        header=(
            "# Engine Configuration",
            "# ----------------------------------------",
        ),
        values=_engine_url_values,
        fill_empty=True,
    ),
    Migration(
        name="PostgreSQL container variables",
        provides=("POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB"),
        anchor="DB_PASSWORD",
        header=("# PostgreSQL Container Configuration",),
        values=_postgres_values,
    ),
)
