"""
Name → factory registries for profiles and dialects.

Registries are plain objects handed to whoever needs them; nothing registers
itself at import time.
"""

from collections.abc import Callable, Iterator, Mapping
from typing import Generic, TypeVar

from dynamo_migrate.core.errors import UnknownNameError

F = TypeVar("F", bound=Callable)


class Registry(Generic[F]):
    """
    Mapping of names to factories.

    Args:
        kind: What the registry holds ("profile", "source", "target"),
            used in error messages
        factories: Initial name → factory mapping
    """

    def __init__(self, kind: str, factories: Mapping[str, F] | None = None):
        self.kind = kind
        self._factories: dict[str, F] = dict(factories or {})

    def register(self, name: str, factory: F) -> None:
        if name in self._factories:
            raise ValueError(f"{self.kind} '{name}' is already registered")
        self._factories[name] = factory

    def get(self, name: str) -> F:
        """
        Look up a factory.

        Raises:
            UnknownNameError: If nothing is registered under `name`
        """
        try:
            return self._factories[name]
        except KeyError:
            raise UnknownNameError(self.kind, name, self.names()) from None

    def create(self, name: str, *args, **kwargs):
        """Look up a factory and call it."""
        return self.get(name)(*args, **kwargs)

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self._factories)

    def __len__(self) -> int:
        return len(self._factories)
