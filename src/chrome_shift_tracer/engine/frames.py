"""Frame tree as reported by the browser process, plus child frames created during the trace."""

import dataclasses
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..trace_event import TraceEvent
from .options import EngineOptions

Timestamp = Union[int, float]


@dataclasses.dataclass(frozen=True)
class FrameInfo:
    frame_id: str
    url: str
    name: str
    parent_id: Optional[str]
    process_id: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frameId": self.frame_id,
            "url": self.url,
            "name": self.name,
            "parentId": self.parent_id,
            "processId": self.process_id,
        }


@dataclasses.dataclass(frozen=True)
class ChildFrameCreation:
    ts: Timestamp
    frame_id: str
    parent_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ts": self.ts, "frameId": self.frame_id, "parentId": self.parent_id}


@dataclasses.dataclass(frozen=True)
class Frames:
    frames: Tuple[FrameInfo, ...]
    child_frame_creations: Tuple[ChildFrameCreation, ...]

    def get(self, frame_id: str) -> Optional[FrameInfo]:
        for frame in self.frames:
            if frame.frame_id == frame_id:
                return frame
        return None

    @property
    def main_frame(self) -> Optional[FrameInfo]:
        for frame in self.frames:
            if frame.parent_id is None:
                return frame
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": [f.to_dict() for f in self.frames],
            "childFrameCreations": [c.to_dict() for c in self.child_frame_creations],
        }


def _frame_from_data(data: Dict[str, Any]) -> Optional[FrameInfo]:
    frame_id = data.get("frame")
    if not frame_id:
        return None
    return FrameInfo(
        frame_id=frame_id,
        url=data.get("url", ""),
        name=data.get("name", ""),
        parent_id=data.get("parent") or None,
        process_id=data.get("processId"),
    )


def build(events: Sequence[TraceEvent], options: EngineOptions) -> Frames:
    # Later commits replace earlier records for the same frame but keep its first-seen position.
    frames: Dict[str, FrameInfo] = {}
    creations: List[ChildFrameCreation] = []

    for event in events:
        if event.name == "TracingStartedInBrowser":
            for data in event.data.get("frames", []):
                frame = _frame_from_data(data)
                if frame:
                    frames[frame.frame_id] = frame
        elif event.name == "FrameCommittedInBrowser":
            frame = _frame_from_data(event.data)
            if frame:
                frames[frame.frame_id] = frame
        elif event.name == "RenderFrameImpl::createChildFrame":
            child = event.args.get("child")
            parent = event.args.get("frame")
            if child and parent:
                creations.append(ChildFrameCreation(ts=event.ts, frame_id=child, parent_id=parent))

    return Frames(frames=tuple(frames.values()), child_frame_creations=tuple(creations))
