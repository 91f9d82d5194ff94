"""
Jinja2 templates for generated configuration files.
"""

from pathlib import Path

TEMPLATES_DIR = Path(__file__).parent

DEFAULT_ENV_TEMPLATE = "env.template.j2"


def get_template_path(name: str = DEFAULT_ENV_TEMPLATE) -> Path:
    """Get the path to a template file.

    Args:
        name: Template filename

    Returns:
        Path to the template file
    """
    return TEMPLATES_DIR / name
