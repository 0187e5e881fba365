"""
Schema loading and validation for migration.yaml.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from .types import MigrationConfig

logger = logging.getLogger(__name__)

MIGRATION_YAML = "migration.yaml"


def get_schema_path() -> Path:
    """Get path to the bundled JSON schema file."""
    schema_path = Path(__file__).parent / "schemas" / "migration-schema.json"
    if not schema_path.exists():
        raise FileNotFoundError("Could not find migration-schema.json")
    return schema_path


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema for migration.yaml."""
    with open(get_schema_path()) as f:
        return json.load(f)


def validate_migration_yaml(data: Any) -> List[str]:
    """
    Validate migration.yaml data against the JSON schema.

    Returns list of validation errors (empty if valid).
    """
    if data is None:
        return ["migration.yaml is empty"]

    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    found = sorted(
        validator.iter_errors(data),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    for error in found:
        path = ".".join(str(p) for p in error.absolute_path)
        message = error.message
        if path == "cluster.version" and error.validator == "type":
            # YAML reads an unquoted 1.30 as the float 1.3
            message += ' (quote the version, e.g. "1.30")'
        errors.append(f"{path}: {message}" if path else message)
    return errors


def find_migration_yaml() -> Optional[Path]:
    """
    Find migration.yaml by searching up from current directory.

    Returns:
        Path to migration.yaml or None if not found
    """
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        candidate = parent / MIGRATION_YAML
        if candidate.exists():
            return candidate
    return None


def read_migration_yaml(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read raw migration.yaml content.

    Args:
        path: Optional path to migration.yaml. If not provided, searches up from cwd.

    Raises:
        FileNotFoundError: If migration.yaml not found
    """
    migration_path = Path(path) if path else find_migration_yaml()
    if not migration_path or not migration_path.exists():
        raise FileNotFoundError(f"migration.yaml not found at {path or Path.cwd()}")

    logger.debug(f"Reading {migration_path}")
    with open(migration_path) as f:
        return yaml.safe_load(f)


def load_migration_yaml(
    path: Optional[str] = None,
    validate: bool = True,
) -> MigrationConfig:
    """
    Load and parse migration.yaml.

    Args:
        path: Path to migration.yaml (default: search up from cwd)
        validate: Whether to validate against schema

    Returns:
        Parsed MigrationConfig

    Raises:
        FileNotFoundError: If migration.yaml not found
        ValueError: If validation fails or the config is inconsistent
    """
    data = read_migration_yaml(path)

    if validate:
        errors = validate_migration_yaml(data)
        if errors:
            raise ValueError("migration.yaml validation failed:\n" + "\n".join(errors))

    return MigrationConfig.from_dict(data)
