"""
Random secret generation for configuration files.
"""

import secrets
import string
from dataclasses import dataclass

CHARSETS = {
    "hex": "0123456789abcdef",
    "alphanumeric": string.ascii_letters + string.digits,
    # Safe for shell variables and URLs without quoting
    "safe": string.ascii_letters + string.digits + "_-",
}

MIN_SECRET_LENGTH = 16
MAX_SECRET_LENGTH = 64


@dataclass(frozen=True)
class SecretSpec:
    """How to generate one secret.

    Attributes:
        name: Configuration key and template placeholder
        length: Number of characters
        charset: One of 'hex', 'alphanumeric', 'safe'
    """
    name: str
    length: int
    charset: str = "alphanumeric"

    def generate(self) -> str:
        """Generate a fresh value for this secret."""
        return random_string(self.length, self.charset)


def random_string(length: int = 32, charset: str = "hex") -> str:
    """Generate a cryptographically secure random string.

    Args:
        length: Number of characters (16-64)
        charset: 'hex', 'alphanumeric' or 'safe'

    Returns:
        The random string

    Raises:
        ValueError: If the charset or length is invalid
    """
    if charset not in CHARSETS:
        available = ", ".join(CHARSETS)
        raise ValueError(f"Invalid charset: '{charset}'. Available: {available}")

    if length < MIN_SECRET_LENGTH or length > MAX_SECRET_LENGTH:
        raise ValueError(
            f"Secret length must be between {MIN_SECRET_LENGTH} and "
            f"{MAX_SECRET_LENGTH}, got {length}"
        )

    alphabet = CHARSETS[charset]
    return "".join(secrets.choice(alphabet) for _ in range(length))
