"""Load an API document from disk, auto-detecting JSON or YAML."""

import json
from pathlib import Path
from typing import Any

import yaml


class DocumentLoadError(Exception):
    """The file could not be read or parsed."""


def detect_format(file_path: Path) -> str:
    """Detect the serialization of an API document file.

    Returns: 'json' or 'yaml'.
    """
    if file_path.suffix.lower() == ".json":
        return "json"
    if file_path.suffix.lower() in (".yaml", ".yml"):
        return "yaml"

    text = file_path.read_text(encoding="utf-8")
    return "json" if text.lstrip().startswith(("{", "[")) else "yaml"


def load_document(file_path: Path) -> Any:
    """Read and deserialize an OpenAPI / Swagger file into a generic tree."""
    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentLoadError(f"Cannot read {file_path}: {e}") from e

    fmt = detect_format(file_path)
    try:
        if fmt == "json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DocumentLoadError(f"Cannot parse {file_path} as {fmt.upper()}: {e}") from e
