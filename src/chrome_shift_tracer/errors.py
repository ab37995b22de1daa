"""
Exception types raised by chrome_shift_tracer.

Recorder and model-builder failures are fatal for a run. Attribution code
catches its own failures per node or per sub-check and never raises these
past a single layout shift.
"""

from typing import Any, Dict, Optional

from .i18n import _


class ShiftTracerError(Exception):
    """Base class for every error raised by this package."""


class ProtocolError(ShiftTracerError, ValueError):
    """An error reply to a CDP command."""

    def __init__(self, method: str, error: Dict[str, Any]):
        self.method = method
        self.code: Optional[int] = error.get("code")
        self.message: str = error.get("message", "")
        self.data = error.get("data")
        super().__init__(_("Command {method} failed: {message}", method=method, message=self.message))


class TraceRecorderStateError(ShiftTracerError):
    """The recorder was asked to do something its current state does not allow."""


class TraceTimeoutError(ShiftTracerError, TimeoutError):
    """`Tracing.tracingComplete` did not arrive before the drain deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(_("Trace did not complete within {timeout} seconds", timeout=timeout))


class TraceParseError(ShiftTracerError):
    """The buffered trace stream could not be turned into trace events."""


class TraceCaptureError(ShiftTracerError):
    """Raised at the run boundary when capturing or parsing the trace failed."""


class MissingSubModelError(ShiftTracerError, KeyError):
    """A consumer asked for a sub-model the trace engine did not produce."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(_("Trace engine result has no '{name}' sub-model", name=name))

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidShiftIndexError(ShiftTracerError, IndexError):
    """A layout shift index outside the flattened cluster sequence."""

    def __init__(self, index: Any, count: int):
        self.index = index
        self.count = count
        super().__init__(
            _("Layout shift index {index} is out of range (0..{last})", index=index, last=count - 1)
        )
