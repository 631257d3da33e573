"""
The engine handle passed to data loaders, and the local data builders.

The Engine holds the global data that `get` falls back to, the data root
file names are resolved against, optional capabilities, the loader registry,
and the processing-session driver that notifies progress listeners.
"""

import collections.abc
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from tdd.tdd_datatypes import Fragment
from tdd.tdd_debug import dbg
from tdd.tdd_dataloaders import default_registry
from tdd.tdd_environment import DataLoaderEvaluationEnvironment
from tdd.tdd_errors import EvaluationError
from tdd.tdd_interpreter import evaluate, type_name
from tdd.tdd_loaders import DataLoaderRegistry
from tdd.tdd_serialize import xmltodict


class ProgressEvent(Enum):
    BEGIN_PROCESSING_SESSION = "begin-processing-session"
    END_PROCESSING_SESSION = "end-processing-session"


CAPABILITY_DESCRIPTIONS = {
    "xml": "XML support (the xmltodict package)",
}


class Engine:
    """The host handle: global data, file resolution, capabilities and sessions."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None, *,
                 data_root: Union[str, Path, None] = None,
                 source_encoding: str = "utf-8",
                 time_zone: Optional[str] = None,
                 registry: Optional[DataLoaderRegistry] = None,
                 capabilities: Optional[Dict[str, bool]] = None):
        self.data: Dict[str, Any] = dict(data or {})
        self.data_root = Path(data_root) if data_root is not None else Path.cwd()
        self.source_encoding = source_encoding
        self.time_zone = time_zone
        self.registry = registry or default_registry
        self._capabilities: Dict[str, bool] = {"xml": xmltodict is not None}
        self._capabilities.update(capabilities or {})
        self._listeners: List[Any] = []
        self._local_data_builders: List['LocalDataBuilder'] = []
        self.in_session = False

    # --- host boundary used by loaders and `get` ---

    def get_data(self, name: str) -> Any:
        """The global variable `name`, or None when it doesn't exist."""
        return self.data.get(name)

    def add_data(self, values: Mapping[str, Any]):
        self.data.update(values)

    def has_capability(self, name: str) -> bool:
        return bool(self._capabilities.get(name, False))

    def describe_capability(self, name: str) -> str:
        return CAPABILITY_DESCRIPTIONS.get(name, f"the \"{name}\" capability")

    def resolve_path(self, file_name: str) -> Path:
        """Resolves a file name used in a data loader call against the data root."""
        path = Path(file_name).expanduser()
        if path.is_absolute():
            return path
        return self.data_root / path

    # --- progress listeners and sessions ---

    def add_progress_listener(self, listener):
        """Adds an object with a `notify_progress_event(engine, event, src, error)` method."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_progress_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_progress(self, event: ProgressEvent, src: Any = None, error: Optional[BaseException] = None):
        dbg("progress", event.value, src or "")
        failure = None
        for listener in list(self._listeners):
            try:
                listener.notify_progress_event(self, event, src, error)
            except Exception as e:
                # Every listener must see the event; report the first failure afterwards
                if failure is None:
                    failure = e
        if failure is not None:
            raise failure

    def begin_session(self):
        if self.in_session:
            raise RuntimeError("A processing session is already running.")
        self.in_session = True
        self._notify_progress(ProgressEvent.BEGIN_PROCESSING_SESSION)

    def end_session(self, error: Optional[BaseException] = None):
        if not self.in_session:
            raise RuntimeError("No processing session is running.")
        self.in_session = False
        self._notify_progress(ProgressEvent.END_PROCESSING_SESSION, error=error)

    @contextmanager
    def session(self):
        """Brackets a batch of builds with the session begin and end events."""
        self.begin_session()
        error = None
        try:
            yield self
        except BaseException as e:
            error = e
            raise
        finally:
            self.end_session(error)

    # --- local data ---

    def add_local_data_builder(self, builder: 'LocalDataBuilder'):
        self._local_data_builders.append(builder)
        if hasattr(builder, "notify_progress_event"):
            self.add_progress_listener(builder)

    def build_local_data(self) -> dict:
        """Merges the results of the local data builders, later builders winning."""
        result: dict = {}
        for builder in self._local_data_builders:
            result.update(builder.build(self) or {})
        return result


# =================================================================
# Local Data Builders
# =================================================================

class LocalDataBuilder(ABC):
    @abstractmethod
    def build(self, engine: Engine) -> Optional[Mapping[str, Any]]:
        raise NotImplementedError


class TddHashLocalDataBuilder(LocalDataBuilder):
    """Builds local data by evaluating a TDD hash expression with the data loaders."""

    def __init__(self, source: Union[str, Fragment], file_name: Optional[str] = None):
        if isinstance(source, str):
            source = Fragment(source, file_name=file_name)
        self.source = source

    def build(self, engine: Engine) -> dict:
        value = evaluate(self.source, DataLoaderEvaluationEnvironment(engine))
        if not isinstance(value, collections.abc.Mapping):
            raise EvaluationError(
                f"The TDD expression doesn't evaluate to a hash, but to a {type_name(value)}."
            ).locate(self.source.text, self.source.start, self.source.file_name)
        return value


class CachingLocalDataBuilder(LocalDataBuilder):
    """
    Builds once per processing session with the wrapped builder.

    The result is dropped when the session ends, successfully or not.
    Builds and invalidation are serialized with a lock, so concurrent
    first builds evaluate the wrapped builder only once.
    """

    def __init__(self, builder: LocalDataBuilder):
        self.builder = builder
        self._lock = threading.Lock()
        self._cached: Optional[Mapping[str, Any]] = None

    @property
    def is_populated(self) -> bool:
        return self._cached is not None

    def build(self, engine: Engine) -> Mapping[str, Any]:
        with self._lock:
            if self._cached is None:
                result = self.builder.build(engine)
                self._cached = {} if result is None else result
            return self._cached

    def notify_progress_event(self, engine: Engine, event: ProgressEvent, src: Any = None,
                              error: Optional[BaseException] = None):
        if event is ProgressEvent.END_PROCESSING_SESSION:
            with self._lock:
                self._cached = None
