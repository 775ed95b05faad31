"""Configuration file format for relquery."""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

CONFIG_NAMES = ["relquery.yaml", "relquery.yml", "relquery.json"]


class DuckDBConnection(BaseModel):
    """DuckDB connection configuration."""

    type: Literal["duckdb"] = "duckdb"
    path: str = Field(..., description="Path to DuckDB database file or :memory:")


class SQLiteConnection(BaseModel):
    """SQLite connection configuration."""

    type: Literal["sqlite"] = "sqlite"
    path: str = Field(..., description="Path to SQLite database file or :memory:")


Connection = DuckDBConnection | SQLiteConnection


class RelqueryConfig(BaseModel):
    """relquery configuration file format.

    Can be saved as relquery.yaml or relquery.json.

    Example YAML:
        mappings: ./entities.yaml
        connection:
          type: duckdb
          path: data/app.db
    """

    connection: Connection | None = Field(default=None, description="Database connection configuration")
    mappings: str | None = Field(default=None, description="Entity mapping file or directory")
    backend: str = Field(default="sql", description="Repository backend name")

    def resolve_paths(self, base_dir: Path | None = None) -> "RelqueryConfig":
        """Resolve relative paths to absolute paths.

        Args:
            base_dir: Base directory for resolving relative paths (defaults to cwd)

        Returns:
            New config with resolved paths
        """
        base = base_dir or Path.cwd()

        mappings = self.mappings
        if mappings is not None and not Path(mappings).is_absolute():
            mappings = str((base / mappings).resolve())

        connection = self.connection
        if connection is not None and connection.path != ":memory:" and not Path(connection.path).is_absolute():
            connection = connection.model_copy(update={"path": str((base / connection.path).resolve())})

        return RelqueryConfig(connection=connection, mappings=mappings, backend=self.backend)


def load_config(config_path: Path) -> RelqueryConfig:
    """Load configuration from YAML or JSON file.

    Args:
        config_path: Path to config file (relquery.yaml or relquery.json)

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        import yaml

        with open(config_path) as f:
            data = yaml.safe_load(f)
    elif suffix == ".json":
        with open(config_path) as f:
            data = json.load(f)
    else:
        raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json")

    config = RelqueryConfig(**(data or {}))

    # Resolve relative paths relative to config file directory
    return config.resolve_paths(config_path.parent)


def find_config(start_dir: Path | None = None) -> Path | None:
    """Find config file by searching up the directory tree.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for name in CONFIG_NAMES:
            config_path = current / name
            if config_path.exists():
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def build_connection_string(config: RelqueryConfig) -> str:
    """Build database connection string from config."""
    if not config.connection:
        return "duckdb:///:memory:"

    if isinstance(config.connection, DuckDBConnection):
        return f"duckdb:///{config.connection.path}"
    elif isinstance(config.connection, SQLiteConnection):
        return f"sqlite:///{config.connection.path}"
    else:
        raise ValueError(f"Unknown connection type: {type(config.connection)}")


def open_repository(config: RelqueryConfig):
    """Connect to the configured database and build the configured repository."""
    from relquery.core.registry import create_repository
    from relquery.db import connect
    from relquery.loaders import load_mappings

    adapter = connect(build_connection_string(config))
    entities = load_mappings(config.mappings) if config.mappings else {}
    return create_repository(config.backend, entities, adapter=adapter)
