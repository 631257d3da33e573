"""
Evaluates TDD syntax trees through a pluggable evaluation environment.

The interpreter walks the tree depth-first. Every function call is handed
to the environment, and the environment is notified when the walk enters
and leaves a hash, a sequence, a call parameter list or a hash entry.
"""

import collections.abc
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional, Union, List

from tdd.tdd_datatypes import (
    Fragment, FunctionCall, Node, Literal, Word, SequenceNode, HashNode,
    CallNode, PairNode, FlagNode, MergeNode, Event, Directive
)
from tdd.tdd_debug import dbg
from tdd.tdd_errors import TddError, EvaluationError, LoaderExecutionError
from tdd.tdd_parser import parse


class EvaluationEnvironment(ABC):
    """The policy consulted by the Interpreter while it walks a tree."""

    @abstractmethod
    def evaluate_function_call(self, call: FunctionCall, interpreter: 'Interpreter') -> Any:
        """
        Resolves a function call.

        `call.params` holds the unevaluated parameter nodes; use
        `interpreter.evaluate_params(call)` to evaluate them. Return the
        resolved value, or `call` itself to leave the call unresolved.
        """
        raise NotImplementedError

    def notify(self, event: Event, interpreter: 'Interpreter',
               name: Optional[str] = None, extra: Any = None) -> Optional[Directive]:
        """
        Receives a structural event. `name` is the hash key or function
        name, `extra` the hash or list being built. Returning
        Directive.SKIP or Directive.FRAGMENT on ENTER_HASH_KEY (and
        Directive.FRAGMENT on ENTER_HASH) changes how the entry is evaluated.
        """
        return None


class SimpleEvaluationEnvironment(EvaluationEnvironment):
    """Leaves every function call unresolved and ignores all events."""

    def evaluate_function_call(self, call, interpreter):
        return call


SIMPLE_ENVIRONMENT = SimpleEvaluationEnvironment()


def type_name(value: Any) -> str:
    """The TDD name of a value's type, for error messages."""
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case str():
            return "string"
        case int() | float() | Decimal():
            return "number"
        case FunctionCall():
            return "function call"
        case Fragment():
            return "fragment"
        case collections.abc.Mapping():
            return "hash"
        case list() | tuple():
            return "sequence"
        case _:
            return type(value).__name__


class Interpreter:
    """Evaluates one TDD syntax tree with one evaluation environment."""

    def __init__(self, environment: Optional[EvaluationEnvironment] = None, *, force_strings: bool = False):
        self.environment = environment or SIMPLE_ENVIRONMENT
        self.force_strings = force_strings
        # Offset of the construct being evaluated, in the full source text
        self.position: int = 0
        self.fragment: Optional[Fragment] = None

    @property
    def text(self) -> Optional[str]:
        return self.fragment.text if self.fragment else None

    @property
    def file_name(self) -> Optional[str]:
        return self.fragment.file_name if self.fragment else None

    def evaluate(self, node: Node) -> Any:
        """Public entry point: evaluates a syntax tree and returns plain values."""
        self.fragment = node.fragment
        return self._eval(node)

    def _eval(self, node: Node) -> Any:
        self.position = node.fragment.start
        match node:
            case Literal():
                return node.value
            case Word():
                return node.text if self.force_strings else node.value
            case HashNode():
                return self._eval_hash(node)
            case SequenceNode():
                return self._eval_sequence(node)
            case CallNode():
                return self._eval_call(node)
            case _:
                raise TypeError(f"Cannot evaluate {type(node).__name__}")

    def _notify(self, event: Event, position: int, name: Optional[str] = None, extra: Any = None) -> Directive:
        self.position = position
        try:
            directive = self.environment.notify(event, self, name, extra)
        except TddError as e:
            raise e.locate(self.text, position, self.file_name)
        except Exception as e:
            raise EvaluationError(
                f"The evaluation environment failed to handle the \"{event.value}\" event: {e}"
            ).locate(self.text, position, self.file_name) from e
        return directive or Directive.CONTINUE

    # Every enter event that was handled gets its leave event, even if the
    # contents fail to evaluate.

    def _eval_hash(self, node: HashNode) -> Union[dict, Fragment]:
        result: dict = {}
        directive = self._notify(Event.ENTER_HASH, node.body.start, extra=result)
        try:
            if directive is Directive.FRAGMENT and node.braced:
                return node.fragment
            for item in node.items:
                match item:
                    case PairNode():
                        self._eval_pair(item, result)
                    case FlagNode():
                        self._eval_flag(item, result)
                    case MergeNode():
                        self._eval_merge(item, result)
            return result
        finally:
            self._notify(Event.LEAVE_HASH, node.body.end, extra=result)

    def _eval_pair(self, item: PairNode, result: dict):
        value_node = item.value
        directive = self._notify(Event.ENTER_HASH_KEY, value_node.fragment.start, name=item.key)
        try:
            match directive:
                case Directive.SKIP:
                    pass
                case Directive.FRAGMENT:
                    result[item.key] = value_node.fragment
                case _:
                    # A repeated key replaces the earlier value
                    result[item.key] = self._eval(value_node)
        finally:
            self._notify(Event.LEAVE_HASH_KEY, value_node.fragment.end, name=item.key)

    def _eval_flag(self, item: FlagNode, result: dict):
        directive = self._notify(Event.ENTER_HASH_KEY, item.fragment.start, name=item.key)
        try:
            if directive is not Directive.SKIP:
                result[item.key] = True
        finally:
            self._notify(Event.LEAVE_HASH_KEY, item.fragment.end, name=item.key)

    def _eval_merge(self, item: MergeNode, result: dict):
        value = self._eval(item.expr)
        if isinstance(value, collections.abc.Mapping):
            result.update(value)
            return
        if isinstance(item.expr, CallNode):
            message = (f"Function \"{item.expr.name}\" doesn't evaluate to a hash, but to a "
                       f"{type_name(value)}, so it can't be added to the hash.")
        else:
            message = (f"This expression should be either a string or a hash, but it's a "
                       f"{type_name(value)}.")
        raise EvaluationError(message).locate(self.text, item.fragment.start, self.file_name)

    def _eval_sequence(self, node: SequenceNode) -> list:
        result: list = []
        self._notify(Event.ENTER_SEQUENCE, node.body.start, extra=result)
        try:
            for item in node.items:
                result.append(self._eval(item))
            return result
        finally:
            self._notify(Event.LEAVE_SEQUENCE, node.body.end, extra=result)

    def evaluate_params(self, call: FunctionCall) -> List[Any]:
        """
        Evaluates the parameter nodes of a call handed to the environment.

        The values replace `call.params`, so a second request returns them
        without evaluating (or notifying) again.
        """
        if call.evaluated:
            return call.params
        span = call.body or call.fragment
        start = span.start if span else self.position
        end = span.end if span else self.position
        self._notify(Event.ENTER_FUNCTION_PARAMS, start, name=call.name)
        try:
            values = [self._eval(p) if isinstance(p, Node) else p for p in call.params]
        finally:
            self._notify(Event.LEAVE_FUNCTION_PARAMS, end, name=call.name)
        call.params = values
        call.evaluated = True
        return values

    def _eval_call(self, node: CallNode) -> Any:
        call = FunctionCall(node.name, node.params, node.fragment, node.body)
        dbg("call", node.name, "at", node.fragment.char_position)
        try:
            result = self.environment.evaluate_function_call(call, self)
        except TddError as e:
            raise e.locate(self.text, node.fragment.start, self.file_name)
        except Exception as e:
            raise LoaderExecutionError(
                f"Failed to evaluate function \"{node.name}\": {e}", node.name
            ).locate(self.text, node.fragment.start, self.file_name) from e
        if result is call:
            # Left unresolved: keep it with evaluated params
            self.evaluate_params(call)
        return result


# =================================================================
# Public API
# =================================================================

def evaluate(source: Union[str, Fragment], environment: Optional[EvaluationEnvironment] = None, *,
             force_strings: bool = False, file_name: Optional[str] = None) -> Any:
    """Evaluates a single TDD expression."""
    node = parse(source, "value", file_name=file_name)
    return Interpreter(environment, force_strings=force_strings).evaluate(node)


def evaluate_as_hash(source: Union[str, Fragment], environment: Optional[EvaluationEnvironment] = None, *,
                     force_strings: bool = False, file_name: Optional[str] = None) -> dict:
    """Evaluates hash content written without the enclosing braces."""
    node = parse(source, "hash", file_name=file_name)
    return Interpreter(environment, force_strings=force_strings).evaluate(node)


def evaluate_as_sequence(source: Union[str, Fragment], environment: Optional[EvaluationEnvironment] = None, *,
                         force_strings: bool = False, file_name: Optional[str] = None) -> list:
    """Evaluates sequence content written without the enclosing brackets."""
    node = parse(source, "sequence", file_name=file_name)
    return Interpreter(environment, force_strings=force_strings).evaluate(node)
