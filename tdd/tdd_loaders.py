"""
Data loader protocol and the registry that resolves call names to loaders.

Resolution is a two-bucket lookup: names registered as built-ins map to
factories; names registered on demand map to an import path that is only
imported when the name is used, optionally behind a capability check of
the engine. Any other name that looks like a qualified path
(`package.module:ClassName` or `package.module.ClassName`) is imported
directly.
"""

import importlib
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from tdd.tdd_debug import dbg
from tdd.tdd_errors import (
    UnknownLoaderError, CapabilityUnavailableError, LoaderNotFoundError,
    NotADataLoaderError, LoaderInstantiationError
)


class DataLoader(ABC):
    """A named plugin that produces a value from call arguments and an engine."""

    @abstractmethod
    def load(self, engine, args: List[Any]) -> Any:
        raise NotImplementedError


class DataLoaderRegistry:
    def __init__(self):
        self._builtins: Dict[str, Callable[[], DataLoader]] = {}
        self._on_demand: Dict[str, Tuple[str, Optional[str]]] = {}

    def register(self, name: str, factory: Callable[[], DataLoader]):
        """Registers a built-in loader; `factory` is called once per resolution."""
        self._builtins[name] = factory

    def register_on_demand(self, name: str, target: str, capability: Optional[str] = None):
        """Registers a loader by import path, imported on first use.

        When `capability` is given, the engine must report it available
        before the import is attempted.
        """
        self._on_demand[name] = (target, capability)

    def names(self) -> List[str]:
        return sorted(set(self._builtins) | set(self._on_demand))

    def __contains__(self, name) -> bool:
        return name in self._builtins or name in self._on_demand

    def resolve(self, engine, name: str) -> DataLoader:
        """Returns a fresh loader instance for a call name."""
        factory = self._builtins.get(name)
        if factory is not None:
            dbg("loader", name, "-> built-in")
            return factory()

        entry = self._on_demand.get(name)
        if entry is not None:
            target, capability = entry
            if capability is not None and not engine.has_capability(capability):
                description = engine.describe_capability(capability)
                raise CapabilityUnavailableError(
                    f"Can't get the \"{name}\" data loader: {description} is not available.",
                    name, capability, description)
            dbg("loader", name, "-> on demand", target)
            return self._instantiate(target, name)

        if name[:1].islower() and "." not in name and ":" not in name:
            raise UnknownLoaderError(f"Unknown data loader: {name}", name)
        dbg("loader", name, "-> import path")
        return self._instantiate(name, name)

    def _instantiate(self, target: str, name: str) -> DataLoader:
        cls = self._load_class(target, name)
        if not isinstance(cls, type):
            raise NotADataLoaderError(
                f"Data loader class must be a class, but {target} is a {type(cls).__name__}.", name)
        if not issubclass(cls, DataLoader):
            raise NotADataLoaderError(
                f"Data loader class {target} must implement the DataLoader interface.", name)
        if inspect.isabstract(cls):
            raise NotADataLoaderError(
                f"Data loader class must be a concrete class, but {target} is abstract.", name)
        try:
            return cls()
        except Exception as e:
            raise LoaderInstantiationError(
                f"Failed to create an instance of {target}: {e}", name) from e

    def _load_class(self, target: str, name: str):
        module_name, sep, attr = target.partition(":")
        if not sep:
            module_name, _, attr = target.rpartition(".")
        if not module_name or not attr:
            raise LoaderNotFoundError(f"Data loader class not found: {target}", name)
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise LoaderNotFoundError(f"Data loader class not found: {target}", name) from e
        try:
            return getattr(module, attr)
        except AttributeError as e:
            raise LoaderNotFoundError(f"Data loader class not found: {target}", name) from e
