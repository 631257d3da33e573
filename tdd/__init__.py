from tdd.tdd_datatypes import Fragment, FunctionCall, Event, Directive
from tdd.tdd_errors import (
    TddError, TddSyntaxError, EvaluationError, NoSuchVariableError, NotAHashError,
    ResolutionError, UnknownLoaderError, CapabilityUnavailableError, LoaderNotFoundError,
    NotADataLoaderError, LoaderInstantiationError, LoaderExecutionError
)
from tdd.tdd_parser import parse
from tdd.tdd_interpreter import (
    EvaluationEnvironment, SimpleEvaluationEnvironment, Interpreter,
    evaluate, evaluate_as_hash, evaluate_as_sequence, type_name
)
from tdd.tdd_environment import DataLoaderEvaluationEnvironment
from tdd.tdd_loaders import DataLoader, DataLoaderRegistry
from tdd.tdd_dataloaders import default_registry, resolve_data_loader
from tdd.tdd_runtime import (
    Engine, ProgressEvent, LocalDataBuilder, TddHashLocalDataBuilder, CachingLocalDataBuilder
)
from tdd.tdd_printer import Printer, dump

__all__ = [
    "Fragment", "FunctionCall", "Event", "Directive",
    "TddError", "TddSyntaxError", "EvaluationError", "NoSuchVariableError", "NotAHashError",
    "ResolutionError", "UnknownLoaderError", "CapabilityUnavailableError", "LoaderNotFoundError",
    "NotADataLoaderError", "LoaderInstantiationError", "LoaderExecutionError",
    "parse",
    "EvaluationEnvironment", "SimpleEvaluationEnvironment", "Interpreter",
    "evaluate", "evaluate_as_hash", "evaluate_as_sequence", "type_name",
    "DataLoaderEvaluationEnvironment",
    "DataLoader", "DataLoaderRegistry", "default_registry", "resolve_data_loader",
    "Engine", "ProgressEvent", "LocalDataBuilder", "TddHashLocalDataBuilder", "CachingLocalDataBuilder",
    "Printer", "dump",
]
