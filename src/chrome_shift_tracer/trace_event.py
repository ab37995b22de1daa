"""
Trace event values and the finalized trace they belong to.

Events are built once from the `Tracing.dataCollected` wire format and never
mutated afterwards; code that needs a corrected event builds a new one.
"""

import dataclasses
import functools
import hashlib
import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import TraceParseError
from .i18n import _

# Phases used by the handlers.
PHASE_ASYNC_BEGIN = "b"
PHASE_ASYNC_END = "e"
PHASE_ASYNC_INSTANT = "n"
PHASE_INSTANT = "I"
PHASE_MARK = "R"
PHASE_COMPLETE = "X"
PHASE_METADATA = "M"

LAYOUT_SHIFT = "LayoutShift"


@dataclasses.dataclass(frozen=True)
class TraceEvent:
    name: str
    category: str
    phase: str
    ts: Union[int, float]
    pid: int = 0
    tid: int = 0
    args: Dict[str, Any] = dataclasses.field(default_factory=dict, hash=False)
    dur: Optional[Union[int, float]] = None
    id: Optional[str] = None
    scope: Optional[str] = None

    @property
    def data(self) -> Dict[str, Any]:
        data = self.args.get("data")
        return data if isinstance(data, dict) else {}

    @property
    def is_layout_shift(self) -> bool:
        return self.name == LAYOUT_SHIFT and "score" in self.data

    def with_data(self, **changes: Any) -> "TraceEvent":
        """A copy of this event whose `args.data` has `changes` applied."""
        data = dict(self.data)
        data.update(changes)
        args = dict(self.args)
        args["data"] = data
        return dataclasses.replace(self, args=args)

    @classmethod
    def from_wire(cls, raw: Dict[str, Any]) -> "TraceEvent":
        args = raw.get("args") or {}
        event_id = raw.get("id")
        if event_id is None and isinstance(raw.get("id2"), dict):
            id2 = raw["id2"]
            event_id = id2.get("local", id2.get("global"))
        return cls(
            name=raw["name"],
            category=raw.get("cat", ""),
            phase=raw["ph"],
            ts=raw.get("ts", 0),
            pid=raw.get("pid", 0),
            tid=raw.get("tid", 0),
            args=args,
            dur=raw.get("dur"),
            id=None if event_id is None else str(event_id),
            scope=raw.get("scope"),
        )

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "name": self.name,
            "cat": self.category,
            "ph": self.phase,
            "ts": self.ts,
            "pid": self.pid,
            "tid": self.tid,
            "args": self.args,
        }
        if self.dur is not None:
            wire["dur"] = self.dur
        if self.id is not None:
            wire["id"] = self.id
        if self.scope is not None:
            wire["scope"] = self.scope
        return wire


def _check_wire_event(index: int, raw: Any) -> None:
    if not isinstance(raw, dict):
        raise TraceParseError(_("Trace event #{index} is not an object", index=index))
    for key, expected in (("name", str), ("ph", str)):
        if not isinstance(raw.get(key), expected):
            raise TraceParseError(_("Trace event #{index} has no valid '{field}'", index=index, field=key))
    ts = raw.get("ts", 0)
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        raise TraceParseError(_("Trace event #{index} has a non-numeric timestamp", index=index))
    if "args" in raw and raw["args"] is not None and not isinstance(raw["args"], dict):
        raise TraceParseError(_("Trace event #{index} has non-object args", index=index))


def parse_trace_events(raw_events: Iterable[Any]) -> Tuple[TraceEvent, ...]:
    """
    Converts wire events into TraceEvents, keeping their order.

    Raises:
        TraceParseError: If any element is not a well-formed trace event.
    """
    events: List[TraceEvent] = []
    for index, raw in enumerate(raw_events):
        _check_wire_event(index, raw)
        events.append(TraceEvent.from_wire(raw))
    return tuple(events)


class Trace(Sequence[TraceEvent]):
    """The finalized, ordered event sequence of one capture."""

    def __init__(self, events: Iterable[TraceEvent]):
        self._events: Tuple[TraceEvent, ...] = tuple(events)

    @classmethod
    def from_wire(cls, raw_events: Iterable[Any]) -> "Trace":
        return cls(parse_trace_events(raw_events))

    @functools.cached_property
    def fingerprint(self) -> str:
        """Content hash of the events, stable for equal traces."""
        digest = hashlib.sha1()
        for event in self._events:
            digest.update(json.dumps(event.to_wire(), sort_keys=True, default=str).encode("utf-8"))
            digest.update(b"\n")
        return digest.hexdigest()

    @property
    def events(self) -> Tuple[TraceEvent, ...]:
        return self._events

    def __getitem__(self, index: Any) -> Any:
        return self._events[index]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self._events)

    def to_wire(self) -> Dict[str, Any]:
        return {"traceEvents": [event.to_wire() for event in self._events]}


def load_trace(path: str) -> Trace:
    """
    Reads a saved trace: either a bare JSON array of events or an object with
    a `traceEvents` array.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise TraceParseError(_("Trace file {path} is not valid JSON: {e}", path=path, e=e)) from e

    if isinstance(document, dict):
        document = document.get("traceEvents")
    if not isinstance(document, list):
        raise TraceParseError(_("Trace file {path} has no event array", path=path))
    return Trace.from_wire(document)
