"""Registry of repository backends."""

from collections.abc import Callable
from typing import Any

from relquery.core.repository import Repository, build_repository
from relquery.validation import MappingError

_backends: dict[str, Callable[..., Repository]] = {}


def register_backend(name: str, builder: Callable[..., Repository]) -> None:
    """Register a repository builder under a backend name."""
    _backends[name] = builder


def get_backend(name: str) -> Callable[..., Repository]:
    try:
        return _backends[name]
    except KeyError:
        available = ", ".join(sorted(_backends))
        raise MappingError(f"Unknown repository backend '{name}'. Available backends: {available}") from None


def create_repository(backend: str, entities: Any, **options) -> Repository:
    """Build a repository with the named backend.

    Example:
        >>> repo = create_repository("sql", {"user": {"table": "users"}}, adapter=adapter)
    """
    return get_backend(backend)(entities, **options)


register_backend("sql", build_repository)
