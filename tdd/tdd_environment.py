"""
The evaluation environment that resolves calls with data loaders.

`get(name, subName, ...)` is handled here; every other call name goes to
the engine's loader registry. Hash literals being built are kept on a scope
stack so `get` can see the keys already evaluated in the enclosing hashes.
"""

import collections.abc
from typing import Any, List, Optional

from tdd.tdd_datatypes import Event, Directive, FunctionCall
from tdd.tdd_errors import EvaluationError, NoSuchVariableError, NotAHashError
from tdd.tdd_interpreter import EvaluationEnvironment, Interpreter, type_name


class DataLoaderEvaluationEnvironment(EvaluationEnvironment):
    """Resolves every call; create one per evaluation."""

    def __init__(self, engine):
        self.engine = engine
        # Hashes under construction, outermost first
        self._scopes: List[dict] = []
        # Depth of sequences and parameter lists; hashes inside them are not scopes
        self._suppressed = 0

    def evaluate_function_call(self, call: FunctionCall, interpreter: Interpreter) -> Any:
        params = interpreter.evaluate_params(call)
        if call.name == "get":
            return self.get(params)
        loader = self.engine.registry.resolve(self.engine, call.name)
        return loader.load(self.engine, params)

    def notify(self, event: Event, interpreter: Interpreter,
               name: Optional[str] = None, extra: Any = None) -> Optional[Directive]:
        match event:
            case Event.ENTER_SEQUENCE | Event.ENTER_FUNCTION_PARAMS:
                self._suppressed += 1
            case Event.LEAVE_SEQUENCE | Event.LEAVE_FUNCTION_PARAMS:
                self._suppressed -= 1
            case Event.ENTER_HASH if self._suppressed == 0:
                self._scopes.append(extra)
            case Event.LEAVE_HASH if self._suppressed == 0:
                self._scopes.pop()
        return None

    def find_top_level_variable(self, name: str) -> Any:
        """Looks a name up in the enclosing hashes, innermost first, then in the engine data."""
        for scope in reversed(self._scopes):
            # A key bound to null doesn't hide the outer ones
            value = scope.get(name)
            if value is not None:
                return value
        return self.engine.get_data(name)

    def get(self, params: List[Any]) -> Any:
        if not params:
            raise EvaluationError(
                "Function \"get\" needs at least 1 argument. get(name, subName, subSubName, ...)")
        for i, p in enumerate(params, 1):
            if not isinstance(p, str):
                raise EvaluationError(
                    f"Parameters to function \"get\" must be strings, but parameter at position "
                    f"{i} is a {type_name(p)}.")

        value = self.find_top_level_variable(params[0])
        if value is None:
            raise NoSuchVariableError(f"No variable with name \"{params[0]}\" exists.", params[0], 1)
        for i, name in enumerate(params[1:], 2):
            if not isinstance(value, collections.abc.Mapping):
                raise NotAHashError(
                    f"Parameter at position {i - 1} must be the name of a hash variable, but it is "
                    f"the name of a {type_name(value)} variable.", i - 1)
            value = value.get(name)
            if value is None:
                raise NoSuchVariableError(
                    f"No sub-variable with name \"{name}\" exists (referred by parameter at "
                    f"position {i}).", name, i)
        return value
