#!/usr/bin/env python3
"""
Trace Processor - compiles a finalized trace into the named sub-models.

The handler set is closed and fixed: every handler is a pure
`build(events, options)` function run over the same corrected event sequence,
so handlers can run on a thread pool without sharing state.
"""

import logging
import types
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidShiftIndexError, MissingSubModelError, TraceParseError
from ..i18n import _
from ..trace_event import TraceEvent
from . import frames, layout_shifts, meta, network_requests, screenshots
from .layout_shifts import LayoutShifts
from .options import EngineOptions
from .recent_input import correct_recent_input

logger = logging.getLogger(__name__)

HandlerBuild = Callable[[Sequence[TraceEvent], EngineOptions], Any]

DEFAULT_HANDLERS: Tuple[Tuple[str, HandlerBuild], ...] = (
    ("Meta", meta.build),
    ("Frames", frames.build),
    ("NetworkRequests", network_requests.build),
    ("Screenshots", screenshots.build),
    ("LayoutShifts", layout_shifts.build),
)


class TraceEngineResult(Mapping[str, Any]):
    """Read-only view of the sub-models built from one trace."""

    def __init__(self, data: Dict[str, Any], events: Sequence[TraceEvent]):
        self._data = types.MappingProxyType(dict(data))
        self._events: Tuple[TraceEvent, ...] = tuple(events)

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    @property
    def events(self) -> Tuple[TraceEvent, ...]:
        """The corrected event sequence the sub-models were built from."""
        return self._events

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, name: str, default: Any = None) -> Any:  # type: ignore[override]
        """
        Returns the sub-model `name`.

        Raises:
            MissingSubModelError: If the sub-model was not built and no default is given.
        """
        if name in self._data:
            return self._data[name]
        if default is not None:
            return default
        raise MissingSubModelError(name)

    @property
    def layout_shifts(self) -> LayoutShifts:
        return self.get("LayoutShifts")

    def layout_shift_events(self) -> List[TraceEvent]:
        return self.layout_shifts.clustered_events()

    def layout_shift_event(self, index: int) -> TraceEvent:
        shifts = self.layout_shift_events()
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(shifts):
            raise InvalidShiftIndexError(index, len(shifts))
        return shifts[index]

    def to_dict(self) -> Dict[str, Any]:
        return {"data": {name: model.to_dict() for name, model in self._data.items()}}


class TraceProcessor:
    """Runs the recent-input correction and then each handler in declared order."""

    def __init__(
        self,
        handlers: Sequence[Tuple[str, HandlerBuild]] = DEFAULT_HANDLERS,
        options: Optional[EngineOptions] = None,
    ):
        self.handlers = tuple(handlers)
        self.options = options or EngineOptions()

    def _run_handler(self, name: str, build: HandlerBuild, events: Sequence[TraceEvent]) -> Any:
        try:
            return build(events, self.options)
        except Exception as e:
            logger.error(_("Handler {name} failed: {e}", name=name, e=e))
            raise TraceParseError(_("Handler {name} could not process the trace: {e}", name=name, e=e)) from e

    def parse(self, events: Sequence[TraceEvent], parallel: bool = False) -> TraceEngineResult:
        """
        Build every sub-model from `events`.

        Args:
            events: A finalized trace or any sequence of TraceEvents. It is not modified.
            parallel: Run the handlers on a thread pool.

        Raises:
            TraceParseError: If any handler fails.
        """
        corrected = correct_recent_input(events, self.options.recent_input_window_us)

        data: Dict[str, Any] = {}
        if parallel and len(self.handlers) > 1:
            with ThreadPoolExecutor(max_workers=len(self.handlers)) as executor:
                futures = [
                    (name, executor.submit(self._run_handler, name, build, corrected)) for name, build in self.handlers
                ]
                for name, future in futures:
                    data[name] = future.result()
        else:
            for name, build in self.handlers:
                data[name] = self._run_handler(name, build, corrected)

        logger.debug("Built %d sub-models from %d events", len(data), len(corrected))
        return TraceEngineResult(data, corrected)
