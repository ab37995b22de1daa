"""
Layout shift sub-model: the shift events, their session-window clusters and
the layout invalidations recorded around them.

Clustering follows the CLS session window: a shift joins the current cluster
unless it comes more than `cluster_gap_us` after the previous shift, or would
stretch the cluster past `cluster_limit_us`. Shifts still flagged with
`had_recent_input` after the correction pass are kept aside and never
clustered.
"""

import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..trace_event import TraceEvent
from .options import EngineOptions

logger = logging.getLogger(__name__)

Timestamp = Union[int, float]
Rect = Tuple[float, float, float, float]

LAYOUT_INVALIDATION_EVENT = "LayoutInvalidationTracking"


@dataclasses.dataclass(frozen=True)
class ImpactedNode:
    node_id: int
    old_rect: Rect
    new_rect: Rect


def _as_rect(value: Any) -> Optional[Rect]:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return None
    try:
        x, y, width, height = (float(v) for v in value)
    except (TypeError, ValueError):
        return None
    return (x, y, width, height)


def impacted_nodes(event: TraceEvent) -> List[ImpactedNode]:
    """The well-formed `impacted_nodes` entries of a shift, in trace order."""
    nodes = []
    for raw in event.data.get("impacted_nodes") or []:
        if not isinstance(raw, dict) or not raw.get("node_id"):
            continue
        old_rect = _as_rect(raw.get("old_rect"))
        new_rect = _as_rect(raw.get("new_rect"))
        if old_rect is None or new_rect is None:
            continue
        nodes.append(ImpactedNode(node_id=int(raw["node_id"]), old_rect=old_rect, new_rect=new_rect))
    return nodes


def shift_score(event: TraceEvent) -> float:
    """Weighted score of one shift, falling back to the raw score on old traces."""
    data = event.data
    weighted = data.get("weighted_score_delta")
    if weighted is not None:
        return float(weighted)
    return float(data.get("score", 0.0))


@dataclasses.dataclass(frozen=True)
class LayoutShiftCluster:
    events: Tuple[TraceEvent, ...]
    score: float
    start_ts: Timestamp
    end_ts: Timestamp

    @property
    def worst_shift(self) -> TraceEvent:
        worst = self.events[0]
        for event in self.events[1:]:
            if shift_score(event) > shift_score(worst):
                worst = event
        return worst

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events": [e.to_wire() for e in self.events],
            "score": self.score,
            "startTs": self.start_ts,
            "endTs": self.end_ts,
        }


def cluster_layout_shifts(
    shifts: Iterable[TraceEvent], gap_us: Timestamp, limit_us: Timestamp
) -> Tuple[LayoutShiftCluster, ...]:
    """Group time-ordered shifts into session windows."""
    clusters: List[LayoutShiftCluster] = []
    current: List[TraceEvent] = []
    first_ts: Timestamp = 0
    prev_ts: Timestamp = 0

    def close() -> None:
        if current:
            score = 0.0
            for event in current:
                score += shift_score(event)
            clusters.append(
                LayoutShiftCluster(events=tuple(current), score=score, start_ts=first_ts, end_ts=prev_ts)
            )

    for event in shifts:
        if current and (event.ts - prev_ts > gap_us or event.ts - first_ts > limit_us):
            close()
            current = []
        if not current:
            first_ts = event.ts
        current.append(event)
        prev_ts = event.ts
    close()
    return tuple(clusters)


def max_cluster_score(clusters: Iterable[LayoutShiftCluster]) -> float:
    return max((c.score for c in clusters), default=0.0)


@dataclasses.dataclass(frozen=True)
class LayoutShifts:
    shifts: Tuple[TraceEvent, ...]
    ignored_shifts: Tuple[TraceEvent, ...]
    clusters: Tuple[LayoutShiftCluster, ...]
    session_max_score: float
    layout_invalidations: Tuple[TraceEvent, ...]

    @property
    def cluster_with_max_score(self) -> Optional[LayoutShiftCluster]:
        best = None
        for cluster in self.clusters:
            if best is None or cluster.score > best.score:
                best = cluster
        return best

    def clustered_events(self) -> List[TraceEvent]:
        """Shift events flattened in cluster order; the index is the shift's key."""
        return [event for cluster in self.clusters for event in cluster.events]

    def invalidations_between(self, start_ts: Timestamp, end_ts: Timestamp) -> List[TraceEvent]:
        """Layout invalidations in the half-open window (start_ts, end_ts]."""
        return [e for e in self.layout_invalidations if start_ts < e.ts <= end_ts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clusters": [c.to_dict() for c in self.clusters],
            "ignoredShifts": [e.to_wire() for e in self.ignored_shifts],
            "sessionMaxScore": self.session_max_score,
            "layoutInvalidations": [e.to_wire() for e in self.layout_invalidations],
        }


def build(events: Sequence[TraceEvent], options: EngineOptions) -> LayoutShifts:
    shifts: List[TraceEvent] = []
    ignored: List[TraceEvent] = []
    invalidations: List[TraceEvent] = []
    missing_weighted = 0

    for event in events:
        if event.is_layout_shift:
            if "weighted_score_delta" not in event.data:
                missing_weighted += 1
            if event.data.get("had_recent_input"):
                ignored.append(event)
            else:
                shifts.append(event)
        elif event.name == LAYOUT_INVALIDATION_EVENT:
            invalidations.append(event)

    if missing_weighted:
        logger.warning("%d layout shifts have no weighted_score_delta; using raw scores", missing_weighted)

    # Chunks can arrive slightly out of order; sorted() is stable for equal timestamps.
    shifts = sorted(shifts, key=lambda e: e.ts)
    invalidations = sorted(invalidations, key=lambda e: e.ts)
    clusters = cluster_layout_shifts(shifts, options.cluster_gap_us, options.cluster_limit_us)

    return LayoutShifts(
        shifts=tuple(shifts),
        ignored_shifts=tuple(ignored),
        clusters=clusters,
        session_max_score=max_cluster_score(clusters),
        layout_invalidations=tuple(invalidations),
    )
