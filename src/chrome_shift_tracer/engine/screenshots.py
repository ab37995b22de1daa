import dataclasses
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from ..trace_event import TraceEvent
from .options import EngineOptions

SCREENSHOT_EVENT = "Screenshot"


@dataclasses.dataclass(frozen=True)
class Screenshot:
    ts: Union[int, float]
    # Base64 JPEG exactly as captured.
    data: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ts": self.ts, "data": self.data}


@dataclasses.dataclass(frozen=True)
class Screenshots:
    screenshots: Tuple[Screenshot, ...]

    def closest_before(self, ts: Union[int, float]) -> Optional[Screenshot]:
        best = None
        for screenshot in self.screenshots:
            if screenshot.ts > ts:
                break
            best = screenshot
        return best

    def to_dict(self) -> Dict[str, Any]:
        return {"screenshots": [s.to_dict() for s in self.screenshots]}


def build(events: Sequence[TraceEvent], options: EngineOptions) -> Screenshots:
    shots = [
        Screenshot(ts=event.ts, data=event.args["snapshot"])
        for event in events
        if event.name == SCREENSHOT_EVENT and isinstance(event.args.get("snapshot"), str)
    ]
    shots.sort(key=lambda s: s.ts)
    return Screenshots(screenshots=tuple(shots))
