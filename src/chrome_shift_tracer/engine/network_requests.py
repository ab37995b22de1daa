"""Network requests assembled from the Resource* trace events."""

import dataclasses
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from ..trace_event import TraceEvent
from .options import EngineOptions

Timestamp = Union[int, float]

RENDER_BLOCKING_STATUSES = ("blocking", "in_body_parser_blocking")
FONT_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf", ".eot")


@dataclasses.dataclass(frozen=True)
class NetworkRequest:
    request_id: str
    url: str
    start_ts: Timestamp
    send_ts: Optional[Timestamp] = None
    response_ts: Optional[Timestamp] = None
    finish_ts: Optional[Timestamp] = None
    mime_type: str = ""
    resource_type: str = ""
    render_blocking: str = ""
    frame_id: str = ""
    priority: str = ""
    status_code: Optional[int] = None
    failed: bool = False

    @property
    def is_font(self) -> bool:
        if self.resource_type == "Font":
            return True
        mime = self.mime_type.lower()
        if mime.startswith("font/") or mime.startswith("application/font") or mime == "application/x-font-woff":
            return True
        return urlparse(self.url).path.lower().endswith(FONT_EXTENSIONS)

    @property
    def is_render_blocking(self) -> bool:
        return self.render_blocking in RENDER_BLOCKING_STATUSES

    @property
    def end_ts(self) -> Timestamp:
        """Best known completion time: finish, else response, else start."""
        for ts in (self.finish_ts, self.response_ts, self.send_ts):
            if ts is not None:
                return ts
        return self.start_ts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "url": self.url,
            "startTs": self.start_ts,
            "sendTs": self.send_ts,
            "responseTs": self.response_ts,
            "finishTs": self.finish_ts,
            "mimeType": self.mime_type,
            "resourceType": self.resource_type,
            "renderBlocking": self.render_blocking,
            "frameId": self.frame_id,
            "priority": self.priority,
            "statusCode": self.status_code,
            "failed": self.failed,
        }


@dataclasses.dataclass(frozen=True)
class NetworkRequests:
    requests: Tuple[NetworkRequest, ...]

    def by_id(self, request_id: str) -> Optional[NetworkRequest]:
        for request in self.requests:
            if request.request_id == request_id:
                return request
        return None

    def finished_between(self, start_ts: Timestamp, end_ts: Timestamp) -> List[NetworkRequest]:
        """Requests whose completion falls in the half-open window (start_ts, end_ts]."""
        return [r for r in self.requests if start_ts < r.end_ts <= end_ts]

    def to_dict(self) -> Dict[str, Any]:
        return {"requests": [r.to_dict() for r in self.requests]}


def build(events: Sequence[TraceEvent], options: EngineOptions) -> NetworkRequests:
    # request id -> accumulated fields; dict order keeps first-seen order.
    pending: Dict[str, Dict[str, Any]] = {}

    for event in events:
        if not event.name.startswith("Resource"):
            continue
        data = event.data
        request_id = data.get("requestId")
        if not request_id:
            continue
        fields = pending.setdefault(request_id, {"request_id": request_id, "url": "", "start_ts": event.ts})

        if event.name == "ResourceWillSendRequest":
            fields["start_ts"] = min(fields["start_ts"], event.ts)
        elif event.name == "ResourceSendRequest":
            fields["start_ts"] = min(fields["start_ts"], event.ts)
            fields["send_ts"] = event.ts
            # Redirects re-send under the same id; the last url wins.
            fields["url"] = data.get("url", fields["url"])
            fields["resource_type"] = data.get("resourceType", fields.get("resource_type", ""))
            fields["render_blocking"] = data.get("renderBlocking", fields.get("render_blocking", ""))
            fields["frame_id"] = data.get("frame", fields.get("frame_id", ""))
            fields["priority"] = data.get("priority", fields.get("priority", ""))
        elif event.name == "ResourceReceiveResponse":
            fields["response_ts"] = event.ts
            fields["mime_type"] = data.get("mimeType", "")
            fields["status_code"] = data.get("statusCode")
        elif event.name == "ResourceFinish":
            fields["finish_ts"] = event.ts
            fields["failed"] = bool(data.get("didFail", False))

    requests = tuple(NetworkRequest(**fields) for fields in pending.values() if fields["url"])
    return NetworkRequests(requests=requests)
