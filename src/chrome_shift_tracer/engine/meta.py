"""Trace-wide facts: bounds, main frame, navigations and marker timestamps."""

import dataclasses
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..trace_event import TraceEvent
from .options import EngineOptions

TIMESPAN_MARKER_ID = "shift-tracer-timespan-marker"

Timestamp = Union[int, float]


@dataclasses.dataclass(frozen=True)
class Navigation:
    ts: Timestamp
    frame_id: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ts": self.ts, "frameId": self.frame_id, "url": self.url}


@dataclasses.dataclass(frozen=True)
class Meta:
    min_ts: Optional[Timestamp]
    max_ts: Optional[Timestamp]
    main_frame_id: Optional[str]
    main_frame_url: Optional[str]
    navigations: Tuple[Navigation, ...]
    viewport_change_ts: Optional[Timestamp]
    timespan_marker_ts: Optional[Timestamp]

    @property
    def duration(self) -> Timestamp:
        if self.min_ts is None or self.max_ts is None:
            return 0
        return self.max_ts - self.min_ts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minTs": self.min_ts,
            "maxTs": self.max_ts,
            "mainFrameId": self.main_frame_id,
            "mainFrameUrl": self.main_frame_url,
            "navigations": [n.to_dict() for n in self.navigations],
            "viewportChangeTs": self.viewport_change_ts,
            "timespanMarkerTs": self.timespan_marker_ts,
        }


def build(events: Sequence[TraceEvent], options: EngineOptions) -> Meta:
    min_ts: Optional[Timestamp] = None
    max_ts: Optional[Timestamp] = None
    main_frame_id: Optional[str] = None
    main_frame_url: Optional[str] = None
    navigations: List[Navigation] = []
    viewport_ts: Optional[Timestamp] = None
    marker_ts: Optional[Timestamp] = None

    for event in events:
        # Metadata events carry ts 0 and say nothing about the timeline.
        if event.phase != "M":
            end = event.ts + (event.dur or 0)
            min_ts = event.ts if min_ts is None else min(min_ts, event.ts)
            max_ts = end if max_ts is None else max(max_ts, end)

        if event.name == "TracingStartedInBrowser" and main_frame_id is None:
            for frame in event.data.get("frames", []):
                if not frame.get("parent"):
                    main_frame_id = frame.get("frame")
                    main_frame_url = frame.get("url")
                    break
        elif event.name == "navigationStart":
            data = event.data
            if data.get("isLoadingMainFrame", True) and data.get("documentLoaderURL"):
                navigations.append(
                    Navigation(ts=event.ts, frame_id=event.args.get("frame", ""), url=data["documentLoaderURL"])
                )
        elif event.name == "viewport" and viewport_ts is None:
            viewport_ts = event.ts
        elif event.name == "clock_sync" and event.args.get("sync_id") == TIMESPAN_MARKER_ID:
            marker_ts = event.ts

    if main_frame_id is None and navigations:
        main_frame_id = navigations[0].frame_id
        main_frame_url = navigations[0].url

    return Meta(
        min_ts=min_ts,
        max_ts=max_ts,
        main_frame_id=main_frame_id,
        main_frame_url=main_frame_url,
        navigations=tuple(navigations),
        viewport_change_ts=viewport_ts,
        timespan_marker_ts=marker_ts,
    )
