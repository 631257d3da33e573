"""
Exception hierarchy of the TDD language and its data loaders.

Every error carries a human-readable message. Errors that can be tied to
a source location also carry the source text, the 0-based position and the
file name, and render a short source excerpt with `format_error()`.
"""

from typing import Optional

# Width of the source excerpt shown under an error message.
EXCERPT_WIDTH = 56


class TddError(Exception):
    """Base class of all errors raised by the TDD core."""
    def __init__(self, message: str, *, text: Optional[str] = None,
                 position: Optional[int] = None, file_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.text = text
        self.position = position
        self.file_name = file_name

    def locate(self, text: Optional[str], position: Optional[int], file_name: Optional[str] = None):
        """Attaches a source location unless the error already has one."""
        if self.position is None and position is not None:
            self.text = text
            self.position = position
            self.file_name = file_name
        return self

    @property
    def char_position(self) -> Optional[int]:
        return None if self.position is None else self.position + 1

    @property
    def line(self) -> Optional[int]:
        if self.position is None or self.text is None:
            return None
        return self.text.count("\n", 0, self.position) + 1

    @property
    def column(self) -> Optional[int]:
        if self.position is None or self.text is None:
            return None
        return self.position - (self.text.rfind("\n", 0, self.position) + 1) + 1

    def format_error(self) -> str:
        """Formats the message with its location and a source excerpt."""
        out = [self.message]
        if self.position is not None:
            where = f" in {self.file_name}" if self.file_name else ""
            if self.text is not None:
                out.append(f"Error location{where}: line {self.line}, column {self.column} "
                           f"(character {self.char_position})")
                context = source_excerpt(self.text, self.position)
                if context:
                    out.append(context)
            else:
                out.append(f"Error location{where}: character {self.char_position}")
        return "\n".join(out)

    def __str__(self):
        return self.format_error()


def source_excerpt(text: str, position: int, width: int = EXCERPT_WIDTH) -> str:
    """Renders the line around `position`, cut to `width` characters, with a caret under it."""
    line_start = text.rfind("\n", 0, position) + 1
    line_end = text.find("\n", position)
    if line_end == -1:
        line_end = len(text)
    line = text[line_start:line_end].rstrip("\r")
    col = position - line_start
    # Slide the window so the caret stays visible
    start = 0
    if len(line) > width:
        start = min(max(col - width // 2, 0), max(len(line) - width, 0))
    shown = line[start:start + width].expandtabs(1)
    prefix = "..." if start > 0 else ""
    suffix = "..." if start + width < len(line) else ""
    caret = " " * (len(prefix) + col - start) + "^"
    return f"  {prefix}{shown}{suffix}\n  {caret}"


class TddSyntaxError(TddError):
    """Malformed TDD source text."""
    def __init__(self, message: str, *, text: Optional[str] = None,
                 position: Optional[int] = None, file_name: Optional[str] = None):
        super().__init__("TDD syntax error: " + message, text=text,
                         position=position, file_name=file_name)
        self.reason = message


# =================================================================
# Evaluation
# =================================================================

class EvaluationError(TddError):
    """Wrong argument types or counts, failed lookups, bad hash additions."""
    pass


class NoSuchVariableError(EvaluationError):
    def __init__(self, message: str, name: str, step: int):
        super().__init__(message)
        self.name = name
        self.step = step


class NotAHashError(EvaluationError):
    def __init__(self, message: str, step: int):
        super().__init__(message)
        self.step = step


# =================================================================
# Data Loader Resolution
# =================================================================

class ResolutionError(TddError):
    """A call name could not be resolved to a data loader."""
    def __init__(self, message: str, loader_name: str):
        super().__init__(message)
        self.loader_name = loader_name


class UnknownLoaderError(ResolutionError):
    pass


class CapabilityUnavailableError(ResolutionError):
    def __init__(self, message: str, loader_name: str, capability: str, description: str):
        super().__init__(message, loader_name)
        self.capability = capability
        self.description = description


class LoaderNotFoundError(ResolutionError):
    pass


class NotADataLoaderError(ResolutionError):
    pass


class LoaderInstantiationError(ResolutionError):
    pass


class LoaderExecutionError(TddError):
    """A resolved loader failed; the original exception is the `__cause__`."""
    def __init__(self, message: str, function_name: str):
        super().__init__(message)
        self.function_name = function_name
