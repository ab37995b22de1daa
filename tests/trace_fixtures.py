"""Builders for wire-format trace events used across the tests."""

from typing import Any, Dict, List, Optional

from chrome_shift_tracer.trace_event import Trace

MS = 1000


def wire_event(name: str, ts: int, data: Optional[Dict[str, Any]] = None, **fields: Any) -> Dict[str, Any]:
    event = {
        "name": name,
        "cat": fields.pop("cat", "devtools.timeline"),
        "ph": fields.pop("ph", "I"),
        "ts": ts,
        "pid": fields.pop("pid", 1),
        "tid": fields.pop("tid", 1),
        "args": fields.pop("args", {"data": data} if data is not None else {}),
    }
    event.update(fields)
    return event


def impacted(node_id: int, old_rect: List[float], new_rect: List[float]) -> Dict[str, Any]:
    return {"node_id": node_id, "old_rect": old_rect, "new_rect": new_rect}


def layout_shift(
    ts: int,
    score: float,
    had_recent_input: bool = False,
    nodes: Optional[List[Dict[str, Any]]] = None,
    is_main_frame: bool = True,
    weighted: Optional[float] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "score": score,
        "weighted_score_delta": score if weighted is None else weighted,
        "had_recent_input": had_recent_input,
        "is_main_frame": is_main_frame,
        "impacted_nodes": nodes or [],
    }
    return wire_event("LayoutShift", ts, data, cat="loading")


def viewport(ts: int) -> Dict[str, Any]:
    return wire_event("viewport", ts, {"width": 1350, "height": 940}, cat="loading")


def navigation_start(ts: int, url: str = "https://example.com/", frame: str = "MAIN") -> Dict[str, Any]:
    return wire_event(
        "navigationStart",
        ts,
        args={"frame": frame, "data": {"documentLoaderURL": url, "isLoadingMainFrame": True}},
        cat="blink.user_timing",
        ph="R",
    )


def tracing_started(ts: int = 0, url: str = "https://example.com/") -> Dict[str, Any]:
    return wire_event(
        "TracingStartedInBrowser",
        ts,
        {"frames": [{"frame": "MAIN", "url": url, "name": "", "processId": 2}]},
        cat="disabled-by-default-devtools.timeline",
    )


def invalidation(ts: int, node_id: int, node_name: str, reason: str) -> Dict[str, Any]:
    return wire_event(
        "LayoutInvalidationTracking",
        ts,
        {"nodeId": node_id, "nodeName": node_name, "reason": reason, "frame": "MAIN"},
        cat="disabled-by-default-devtools.timeline.invalidationTracking",
    )


def request_events(
    request_id: str,
    url: str,
    send_ts: int,
    finish_ts: int,
    resource_type: str = "Other",
    render_blocking: str = "non_blocking",
    mime_type: str = "text/plain",
) -> List[Dict[str, Any]]:
    return [
        wire_event(
            "ResourceSendRequest",
            send_ts,
            {
                "requestId": request_id,
                "url": url,
                "resourceType": resource_type,
                "renderBlocking": render_blocking,
                "frame": "MAIN",
                "priority": "High",
            },
        ),
        wire_event(
            "ResourceReceiveResponse",
            send_ts + 1,
            {"requestId": request_id, "mimeType": mime_type, "statusCode": 200},
        ),
        wire_event("ResourceFinish", finish_ts, {"requestId": request_id, "didFail": False}),
    ]


def make_trace(*groups: Any) -> Trace:
    """Flattens events and event lists into one Trace, keeping order."""
    raw: List[Dict[str, Any]] = []
    for group in groups:
        if isinstance(group, list):
            raw.extend(group)
        else:
            raw.append(group)
    return Trace.from_wire(raw)


def cluster_example_trace() -> Trace:
    """Shifts of 0.1@0ms, 0.05@500ms, 0.2@3000ms and 0.1@3100ms."""
    return make_trace(
        tracing_started(0),
        layout_shift(0, 0.1, nodes=[impacted(1, [0, 0, 100, 100], [0, 50, 100, 100])]),
        layout_shift(500 * MS, 0.05, nodes=[impacted(2, [0, 0, 10, 10], [0, 10, 10, 10])]),
        layout_shift(3000 * MS, 0.2, nodes=[impacted(3, [0, 0, 50, 50], [0, 100, 50, 50])]),
        layout_shift(3100 * MS, 0.1, nodes=[impacted(1, [0, 0, 100, 100], [0, 20, 100, 100])]),
    )
