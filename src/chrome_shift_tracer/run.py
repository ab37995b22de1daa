#!/usr/bin/env python3
"""
Analysis run - wires the computed artifacts of one capture together.

Every artifact is requested through the run's own cache, so consumers that
ask for the same artifact share one computation. A run is not reused across
captures.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .artifact_cache import ComputedArtifactCache
from .cdp_client import CDPSession
from .config import TracerConfig
from .dom_nodes import NodeResolver
from .engine.layout_shifts import impacted_nodes, shift_score
from .engine.options import EngineOptions
from .engine.processor import TraceEngineResult, TraceProcessor
from .errors import ProtocolError, TraceCaptureError, TraceParseError, TraceRecorderStateError
from .i18n import _
from .metrics import CLSResult, biggest_impact_node, compute_cls
from .root_causes import RootCauseAttributor, RootCauses
from .trace_elements import TraceElement, collect_trace_elements
from .trace_event import Trace
from .trace_recorder import RecorderState, TraceRecorder

logger = logging.getLogger(__name__)

# Failures that mean no usable trace exists; TraceTimeoutError is a TimeoutError.
CAPTURE_ERRORS = (TraceRecorderStateError, TraceParseError, ProtocolError, ConnectionError, TimeoutError)


@dataclasses.dataclass(frozen=True)
class LayoutShiftReport:
    trace: Trace
    engine_result: TraceEngineResult
    cls: CLSResult
    root_causes: RootCauses
    trace_elements: List[TraceElement]

    def shift_items(self) -> List[Dict[str, Any]]:
        """One row per clustered shift: its score, representative element and causes."""
        elements = {element.backend_node_id: element for element in self.trace_elements}
        items = []
        for index, event in enumerate(self.engine_result.layout_shift_events()):
            biggest = biggest_impact_node(impacted_nodes(event), self.cls.impact_by_node_id)
            element = elements.get(biggest) if biggest is not None else None
            causes = []
            for cause in self.root_causes.for_shift(index):
                entry = cause.to_dict()
                entry["cause"] = cause.description
                node_id = entry.get("backendNodeId")
                if node_id in elements:
                    entry["node"] = elements[node_id].node.to_dict()
                causes.append(entry)
            items.append(
                {
                    "index": index,
                    "ts": event.ts,
                    "score": shift_score(event),
                    "node": element.node.to_dict() if element else None,
                    "causes": causes,
                }
            )
        return items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "traceEngineResult": self.engine_result.to_dict(),
            "cls": self.cls.to_dict(),
            "rootCauses": self.root_causes.to_dict(),
            "traceElements": [element.to_dict() for element in self.trace_elements],
            "layoutShifts": self.shift_items(),
        }


class AnalysisRun:
    """Per-run context owning a fresh artifact cache."""

    def __init__(self, session: CDPSession, config: Optional[TracerConfig] = None):
        self.session = session
        self.config = config or TracerConfig()
        self.cache = ComputedArtifactCache()
        self.options = EngineOptions.from_config(self.config)
        self.processor = TraceProcessor(options=self.options)
        self.resolver = NodeResolver(session, self.cache)

    def _session_fingerprint(self, trace: Trace) -> Any:
        # Backend node ids only mean something on the session that recorded them.
        return (trace.fingerprint, self.session.session_key)

    async def trace_engine_result(self, trace: Trace) -> TraceEngineResult:
        return await self.cache.get_or_compute(
            "TraceEngineResult", trace.fingerprint, lambda: self.processor.parse(trace)
        )

    async def cls(self, trace: Trace) -> CLSResult:
        async def compute() -> CLSResult:
            return compute_cls(await self.trace_engine_result(trace), self.options)

        return await self.cache.get_or_compute("CLSResult", trace.fingerprint, compute)

    async def root_causes(self, trace: Trace) -> RootCauses:
        async def compute() -> RootCauses:
            engine_result = await self.trace_engine_result(trace)
            return await RootCauseAttributor(self.session, engine_result, self.config, self.resolver).attribute_all()

        return await self.cache.get_or_compute("RootCauses", self._session_fingerprint(trace), compute)

    async def trace_elements(self, trace: Trace) -> List[TraceElement]:
        async def compute() -> List[TraceElement]:
            engine_result = await self.trace_engine_result(trace)
            cls_result = await self.cls(trace)
            root_causes = await self.root_causes(trace)
            return await collect_trace_elements(self.resolver, cls_result, engine_result, root_causes, self.config)

        return await self.cache.get_or_compute("TraceElements", self._session_fingerprint(trace), compute)

    async def report(self, trace: Trace) -> LayoutShiftReport:
        return LayoutShiftReport(
            trace=trace,
            engine_result=await self.trace_engine_result(trace),
            cls=await self.cls(trace),
            root_causes=await self.root_causes(trace),
            trace_elements=await self.trace_elements(trace),
        )


async def capture_trace(
    session: CDPSession,
    action: Callable[[], Awaitable[Any]],
    config: Optional[TracerConfig] = None,
    timespan: bool = False,
) -> Trace:
    """
    Record a trace around `action`.

    Errors raised by `action` propagate unchanged after tracing is stopped.

    Raises:
        TraceCaptureError: If the trace could not be recorded or parsed.
    """
    recorder = TraceRecorder(session, config)
    try:
        await recorder.start(timespan=timespan)
    except CAPTURE_ERRORS as e:
        raise TraceCaptureError(_("Trace capture/parsing failed: {e}", e=e)) from e

    try:
        await action()
    except asyncio.CancelledError:
        # No further protocol events are awaited once the run is cancelled.
        recorder.reset()
        raise
    except Exception:
        if recorder.state is RecorderState.RECORDING:
            try:
                await recorder.stop()
            except CAPTURE_ERRORS as stop_error:
                logger.warning(_("Could not stop tracing after a failed action: {e}", e=stop_error))
        raise

    try:
        return await recorder.stop()
    except CAPTURE_ERRORS as e:
        raise TraceCaptureError(_("Trace capture/parsing failed: {e}", e=e)) from e


async def capture_and_analyze(
    session: CDPSession,
    action: Callable[[], Awaitable[Any]],
    config: Optional[TracerConfig] = None,
    timespan: bool = False,
) -> LayoutShiftReport:
    """
    Record a trace around `action` and analyze its layout shifts.

    Raises:
        TraceCaptureError: If the trace could not be recorded or parsed.
    """
    trace = await capture_trace(session, action, config, timespan)
    run = AnalysisRun(session, config)
    try:
        await run.trace_engine_result(trace)
    except TraceParseError as e:
        raise TraceCaptureError(_("Trace capture/parsing failed: {e}", e=e)) from e
    return await run.report(trace)
