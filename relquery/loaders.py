"""Loaders for entity mapping files."""

import json
import logging
from pathlib import Path

import yaml

from relquery.core.entity import Entity
from relquery.validation import MappingError

logger = logging.getLogger(__name__)

MAPPING_SUFFIXES = {".yaml", ".yml", ".json"}


def _read(path: Path) -> dict:
    with open(path) as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MappingError(f"Mapping file {path} must contain a mapping of entity names to definitions")
    return data.get("entities", data)


def load_mappings(path: str | Path) -> dict[str, Entity]:
    """Load entity definitions from a YAML/JSON file or a directory of them.

    Files either hold the entity definitions at the top level or under an
    ``entities`` key::

        entities:
          user:
            table: users
            relations:
              person: {type: belongs-to, entity: person, fk: person_id}
            filter: {deleted_at: null, status: [not=, archived]}

    Operators in filters are spelled as strings at the head of a list; see
    ``relquery.sql.format.constraint_operator``.

    Args:
        path: Mapping file or directory searched recursively

    Returns:
        Mapping of entity name to Entity

    Raises:
        FileNotFoundError: If the path doesn't exist
        MappingError: If an entity is defined twice or a file is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Mapping path not found: {path}")

    if path.is_dir():
        files = sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in MAPPING_SUFFIXES)
    else:
        files = [path]

    entities: dict[str, Entity] = {}
    for file_path in files:
        for name, definition in _read(file_path).items():
            if name in entities:
                raise MappingError(f"Entity '{name}' is defined more than once (again in {file_path})")
            entities[name] = Entity(**{"name": name, **(definition or {})})
        logger.debug(f"Loaded entity mappings from {file_path}")
    return entities
