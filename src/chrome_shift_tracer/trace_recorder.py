#!/usr/bin/env python3
"""
Trace Recorder - starts protocol tracing and drains the streamed chunks into
one finalized Trace.
"""

import asyncio
import enum
import logging
from typing import Any, Dict, List, Optional

from .cdp_client import CDPSession
from .config import TracerConfig
from .engine.meta import TIMESPAN_MARKER_ID
from .errors import TraceParseError, TraceRecorderStateError, TraceTimeoutError
from .i18n import _
from .trace_event import Trace

logger = logging.getLogger(__name__)

DEFAULT_TRACE_CATEGORIES = [
    # Exclude the browser defaults; trace volume stays bounded by this list.
    "-*",
    "disabled-by-default-lighthouse",
    # LayoutShift and viewport events.
    "loading",
    "v8",
    "v8.execute",
    "blink.user_timing",
    "blink.console",
    "devtools.timeline",
    "disabled-by-default-devtools.timeline",
    "disabled-by-default-devtools.screenshot",
    "disabled-by-default-devtools.timeline.stack",
    "disabled-by-default-devtools.timeline.frame",
    "latencyInfo",
    # LayoutInvalidationTracking, used for shift root causes.
    "disabled-by-default-devtools.timeline.invalidationTracking",
    "disabled-by-default-v8.cpu_profiler",
]


class RecorderState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    DRAINING = "draining"


class TraceRecorder:
    """
    Drives `Tracing.start` / `Tracing.end` on one session.

    The recorder moves IDLE -> RECORDING -> DRAINING -> IDLE. A drain that
    misses its deadline raises TraceTimeoutError and leaves the recorder IDLE.
    """

    def __init__(self, session: CDPSession, config: Optional[TracerConfig] = None):
        self.session = session
        self.config = config or TracerConfig()
        self.state = RecorderState.IDLE
        self.timespan = False

    def trace_categories(self) -> List[str]:
        categories = list(DEFAULT_TRACE_CATEGORIES)
        for category in self.config.extra_trace_categories:
            if category not in categories:
                categories.append(category)
        return categories

    async def start(self, timespan: bool = False) -> None:
        """
        Begin recording.

        Args:
            timespan: Record a bounded window instead of a navigation; a clock
                sync marker is emitted right after start so the window start
                can be located in the trace.
        """
        if self.state is not RecorderState.IDLE:
            raise TraceRecorderStateError(_("Cannot start tracing while {state}.", state=self.state.value))

        await self.session.send_command(
            "Tracing.start",
            {
                "categories": ",".join(self.trace_categories()),
                "options": f"sampling-frequency={self.config.sampling_frequency}",
            },
        )
        self.state = RecorderState.RECORDING
        self.timespan = timespan
        logger.info(_("Tracing started."))

        if timespan:
            try:
                await self.session.send_command("Tracing.recordClockSyncMarker", {"syncId": TIMESPAN_MARKER_ID})
            except Exception:
                await self._end_tracing()
                raise

    async def _end_tracing(self) -> None:
        """Ends browser tracing without collecting it and returns to IDLE."""
        self.reset()
        try:
            await self.session.send_command("Tracing.end")
        except Exception as e:
            logger.warning(_("Could not end tracing: {e}", e=e))

    def reset(self) -> None:
        """Forgets the current recording without talking to the browser."""
        self.state = RecorderState.IDLE
        self.timespan = False

    async def stop(self) -> Trace:
        """
        End recording and collect every buffered chunk.

        Raises:
            TraceRecorderStateError: If the recorder is not recording.
            TraceTimeoutError: If `Tracing.tracingComplete` misses the deadline.
            TraceParseError: If the collected stream is malformed.
        """
        if self.state is not RecorderState.RECORDING:
            raise TraceRecorderStateError(_("Cannot stop tracing while {state}.", state=self.state.value))

        chunks: List[Any] = []
        complete = asyncio.get_running_loop().create_future()

        def on_data(params: Dict[str, Any]) -> None:
            chunks.append(params.get("value", []))

        def on_complete(params: Dict[str, Any]) -> None:
            if not complete.done():
                complete.set_result(params)

        self.session.on("Tracing.dataCollected", on_data)
        self.session.on("Tracing.tracingComplete", on_complete)
        self.state = RecorderState.DRAINING
        try:
            await self.session.send_command("Tracing.end")
            await asyncio.wait_for(complete, timeout=self.config.drain_timeout)
        except asyncio.TimeoutError:
            logger.error(_("Trace did not complete within {timeout} seconds", timeout=self.config.drain_timeout))
            raise TraceTimeoutError(self.config.drain_timeout) from None
        finally:
            self.session.off("Tracing.dataCollected", on_data)
            self.session.off("Tracing.tracingComplete", on_complete)
            self.state = RecorderState.IDLE

        raw_events: List[Any] = []
        for index, chunk in enumerate(chunks):
            if not isinstance(chunk, list):
                raise TraceParseError(_("Trace chunk #{index} is not an event array", index=index))
            raw_events.extend(chunk)
        trace = Trace.from_wire(raw_events)
        logger.info(_("Collected {count} trace events in {chunks} chunks.", count=len(trace), chunks=len(chunks)))
        return trace
