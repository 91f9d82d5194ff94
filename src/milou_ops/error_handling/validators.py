"""
Input validation functions for Milou operations.

Provides validation for configuration keys and values, domain names,
ports and certificate validity periods.
"""

import re

_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9.-]+$")


def validate_key(key: str) -> str:
    """Validate a configuration key.

    Args:
        key: The key to validate

    Returns:
        The validated key

    Raises:
        ValueError: If the key is invalid
    """
    if not key or not key.strip():
        raise ValueError(
            "Key cannot be empty. "
            "Hint: Use an upper-case variable name such as DATABASE_URI."
        )

    if key != key.strip():
        raise ValueError(
            f"Invalid key: '{key}'. Keys cannot start or end with whitespace. "
            "Hint: Remove the surrounding spaces."
        )

    if "=" in key or "\n" in key or "\r" in key:
        raise ValueError(
            f"Invalid key: {key!r}. Keys cannot contain '=' or line breaks. "
            "Hint: Only the value may contain '=' characters."
        )

    if key.lstrip().startswith(("#", ";")):
        raise ValueError(
            f"Invalid key: '{key}'. Keys cannot start with '#' or ';'. "
            "Hint: Lines starting with '#' or ';' are comments."
        )

    return key


def validate_value(value: str) -> str:
    """Validate a configuration value.

    Args:
        value: The value to validate

    Returns:
        The validated value

    Raises:
        ValueError: If the value would break the line-oriented file format
    """
    if not isinstance(value, str):
        raise ValueError(
            f"Value must be a string, got {type(value).__name__}. "
            "Hint: Convert numbers with str() before storing them."
        )

    if "\n" in value or "\r" in value:
        raise ValueError(
            "Value cannot contain line breaks. "
            "Hint: The configuration file stores one KEY=VALUE per line."
        )

    return value


def validate_domain(domain: str) -> str:
    """Validate a domain name (basic check).

    Args:
        domain: The domain name to validate

    Returns:
        The validated domain

    Raises:
        ValueError: If the domain is invalid
    """
    if not domain:
        raise ValueError(
            "Domain cannot be empty. "
            "Hint: Use 'localhost' for a local installation."
        )

    if not _DOMAIN_RE.match(domain):
        raise ValueError(
            f"Invalid domain: '{domain}'. "
            "Only letters, digits, dots and hyphens are allowed. "
            "Hint: Pass the bare host name (e.g., 'milou.example.com'), "
            "without scheme or port."
        )

    return domain


def validate_port(port) -> int:
    """Validate a TCP port number.

    Args:
        port: The port, as an int or a numeric string

    Returns:
        The validated port as an int

    Raises:
        ValueError: If the port is not a number between 1 and 65535
    """
    if isinstance(port, bool) or not str(port).isdigit():
        raise ValueError(
            f"Invalid port: '{port}'. Port must be numeric. "
            "Hint: Use a value such as 5432."
        )

    port = int(port)
    if port < 1 or port > 65535:
        raise ValueError(
            f"Port must be between 1 and 65535, got {port}."
        )

    return port


def validate_validity_days(days: int, max_days: int = 3650) -> int:
    """Validate a certificate validity period.

    Args:
        days: Validity in days
        max_days: Maximum allowed validity (default: 3650)

    Returns:
        The validated number of days

    Raises:
        ValueError: If the period is out of range
    """
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValueError(
            f"Validity must be an integer number of days, got {days!r}."
        )

    if days < 1:
        raise ValueError(
            f"Validity must be at least 1 day, got {days}. "
            "Hint: Self-signed certificates are usually issued for 365 days."
        )

    if days > max_days:
        raise ValueError(
            f"Validity cannot exceed {max_days} days, got {days}."
        )

    return days
