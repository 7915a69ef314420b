"""Name-keyed registry of model loaders."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import BinaryIO

from loguru import logger
from pydantic import ValidationError

from treeir.exceptions import LoaderNotFoundError
from treeir.model import Model

type Loader = Callable[[BinaryIO], Model]


@dataclass
class LoaderRegistry:
    """Maps format names to loaders that read a `Model` from a binary stream.

    Format names are opaque strings; the registry never inspects them beyond
    lookup, so adding a format never changes the core.

    Examples:
        >>> registry = LoaderRegistry()
        >>> @registry.loader("empty")
        ... def load_empty(stream):
        ...     return Model(num_features=0)
        >>> "empty" in registry
        True
        >>> registry.names
        ('empty',)
    """

    _loaders: dict[str, Loader] = field(default_factory=dict)

    def __contains__(self, format_name: str) -> bool:
        """Check if a loader is registered under `format_name`.

        Args:
            format_name (str): The format name to check.

        Returns:
            bool: True if a loader is registered, False otherwise.
        """
        return format_name in self._loaders

    @property
    def names(self) -> tuple[str, ...]:
        """tuple[str, ...]: Registered format names, sorted."""
        return tuple(sorted(self._loaders))

    @property
    def loaders(self) -> MappingProxyType[str, Loader]:
        """Read-only view of registered loaders."""
        return MappingProxyType(self._loaders)

    def register(self, format_name: str, loader: Loader) -> None:
        """Register a loader under a format name.

        Args:
            format_name (str): Name callers use to select the loader.
            loader (Loader): Callable reading a `Model` from a binary stream.

        Raises:
            ValueError: If `format_name` is empty or already registered.
        """
        if not format_name:
            raise ValueError("Format name cannot be empty")
        if format_name in self._loaders:
            raise ValueError(f"A loader is already registered for format '{format_name}'")
        self._loaders[format_name] = loader

    def loader(self, format_name: str) -> Callable[[Loader], Loader]:
        """Return a decorator that registers the decorated function under `format_name`.

        Args:
            format_name (str): Name callers use to select the loader.

        Returns:
            Callable[[Loader], Loader]: Decorator returning the function unchanged.
        """

        def decorator(func: Loader) -> Loader:
            self.register(format_name, func)
            return func

        return decorator

    def get(self, format_name: str) -> Loader:
        """Look up the loader registered under `format_name`.

        Args:
            format_name (str): The format name.

        Returns:
            Loader: The registered loader.

        Raises:
            LoaderNotFoundError: If no loader is registered under `format_name`.
        """
        if format_name not in self._loaders:
            raise LoaderNotFoundError(format_name, list(self._loaders))
        return self._loaders[format_name]

    def load(self, format_name: str, source: str | Path | BinaryIO) -> Model:
        """Load a model with the loader registered under `format_name`.

        Args:
            format_name (str): The format name.
            source (str | Path | BinaryIO): A file path or an open binary stream.

        Returns:
            Model: The loaded model.

        Raises:
            LoaderNotFoundError: If no loader is registered under `format_name`.
            FormatError: If the loader cannot interpret the source.
            OSError: If `source` is a path that cannot be opened.
        """
        try:
            loader = self.get(format_name)
        except LoaderNotFoundError as exc:
            logger.warning("Loader lookup failed", format=format_name, available=exc.available)
            raise

        if isinstance(source, (str, Path)):
            with Path(source).open("rb") as stream:
                model = loader(stream)
        else:
            model = loader(source)

        logger.info(
            "Model loaded",
            format=format_name,
            num_trees=model.num_trees,
            num_features=model.num_features,
        )
        return model


def summarize_validation_error(exc: ValidationError) -> str:
    """Condense a pydantic ValidationError into one line per error.

    Args:
        exc (ValidationError): The error to summarize.

    Returns:
        str: ``<location>: <message>`` entries joined with "; ".
    """
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
    )


default_registry = LoaderRegistry()
