"""
Safe .env file parser for feature records.

Parses KEY=value files without shell execution and writes them back in a
stable order. Values that could enable shell injection are rejected in both
directions so a meta.env can always be sourced safely by external tooling.
"""

import re
from pathlib import Path

FORBIDDEN_PATTERNS = [
    r'`',           # backticks
    r'\$\(',        # command substitution
    r'\$\{',        # variable expansion
    r';',           # command chaining
    r'&&',          # AND chaining
    r'\|\|',        # OR chaining
    r'\|',          # pipe
    r'\n',          # embedded newline
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _check_value(value: str, where: str) -> None:
    for pattern in FORBIDDEN_PATTERNS:
        if re.search(pattern, value):
            raise ValueError(f"{where}: Forbidden pattern in value")


def parse_env(text: str) -> dict[str, str]:
    """
    Parse env file content, return dict.

    Raises:
        ValueError: if syntax invalid or forbidden pattern found
    """
    result = {}

    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()

        if not line or line.startswith('#'):
            continue

        if '=' not in line:
            raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")

        key, _, value = line.partition('=')
        key = key.strip()
        value = value.strip()

        if not KEY_PATTERN.match(key):
            raise ValueError(f"Line {lineno}: Invalid key '{key}'")

        if len(value) >= 2:
            if (value.startswith('"') and value.endswith('"')) or \
               (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]

        _check_value(value, f"Line {lineno}")
        result[key] = value

    return result


def load_env(filepath: Path) -> dict[str, str]:
    """
    Parse env file safely, return dict.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")
    return parse_env(path.read_text())


def format_env(values: dict[str, str | None]) -> str:
    """Render a dict as KEY="value" lines. None values are dropped."""
    lines = []
    for key, value in values.items():
        if value is None:
            continue
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Invalid key '{key}'")
        value = str(value)
        _check_value(value, f"Key {key}")
        lines.append(f'{key}="{value}"')
    return "\n".join(lines) + "\n"
