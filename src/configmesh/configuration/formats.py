"""
Structured configuration file parsing.

Files are parsed into nested data and flattened into the string-keyed,
string-valued shape every source produces.
"""

import json
import tomllib
from pathlib import Path
from typing import Any, Dict, Union

import yaml

SUPPORTED_FORMATS = ("json", "yaml", "toml")


def detect_file_format(path: Union[str, Path]) -> str:
    """Detect file format from extension, defaulting to json."""
    ext = Path(path).suffix.lower()
    if ext in (".yaml", ".yml"):
        return "yaml"
    if ext == ".toml":
        return "toml"
    return "json"


def parse_config_data(data: bytes, format: str) -> Dict[str, Any]:
    """
    Parse raw file content into a mapping.

    Raises:
        ValueError: unsupported format, malformed content or a non-mapping document
    """
    if format == "json":
        try:
            parsed = json.loads(data.decode("utf-8")) if data.strip() else {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid JSON: {e}") from e
    elif format == "yaml":
        try:
            parsed = yaml.safe_load(data) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e
    elif format == "toml":
        try:
            parsed = tomllib.loads(data.decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid TOML: {e}") from e
    else:
        raise ValueError(f"unsupported format: {format}")

    if not isinstance(parsed, dict):
        raise ValueError("Configuration document must be a mapping")
    return parsed


def stringify_value(value: Any) -> str:
    """Render a scalar (or list of scalars) the way it would appear in an environment variable."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        if all(not isinstance(item, (dict, list, tuple)) for item in value):
            return ",".join(stringify_value(item) for item in value)
        return json.dumps(value, default=str)
    return str(value)


def flatten_config(data: Dict[str, Any], separator: str = ".", prefix: str = "") -> Dict[str, str]:
    """
    Flatten nested mappings into dotted keys.

    >>> flatten_config({"db": {"host": "x", "port": 5432}})
    {'db.host': 'x', 'db.port': '5432'}
    """
    flat: Dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}{separator}{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_config(value, separator, full_key))
        else:
            flat[full_key] = stringify_value(value)
    return flat


def parse_config_file(data: bytes, format: str, separator: str = ".") -> Dict[str, str]:
    """Parse and flatten file content in one step."""
    return flatten_config(parse_config_data(data, format), separator)
