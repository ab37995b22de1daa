#!/usr/bin/env python3
"""
CLS Metric Computer - cumulative layout shift and the per-node impact map.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .engine.layout_shifts import (
    ImpactedNode,
    Rect,
    cluster_layout_shifts,
    impacted_nodes,
    max_cluster_score,
    shift_score,
)
from .engine.options import EngineOptions
from .engine.processor import TraceEngineResult

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 15


def rect_area(rect: Rect) -> float:
    _, _, width, height = rect
    return max(width, 0.0) * max(height, 0.0)


def rect_overlap_area(a: Rect, b: Rect) -> float:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    width = min(ax + aw, bx + bw) - max(ax, bx)
    height = min(ay + ah, by + bh) - max(ay, by)
    if width <= 0 or height <= 0:
        return 0.0
    return width * height


def area_of_impact(node: ImpactedNode) -> float:
    """Pixels covered by the node before or after the shift."""
    return rect_area(node.old_rect) + rect_area(node.new_rect) - rect_overlap_area(node.old_rect, node.new_rect)


@dataclasses.dataclass(frozen=True)
class CLSResult:
    cumulative_layout_shift: float
    cumulative_layout_shift_main_frame: float
    # Insertion order is the order nodes were first seen; top-N ties depend on it.
    impact_by_node_id: Dict[int, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cumulativeLayoutShift": self.cumulative_layout_shift,
            "cumulativeLayoutShiftMainFrame": self.cumulative_layout_shift_main_frame,
            "impactByNodeId": {str(node_id): value for node_id, value in self.impact_by_node_id.items()},
        }


def impact_by_node_id(shifts: Sequence[Any]) -> Dict[int, float]:
    """
    Spreads each shift's weighted score over its impacted nodes in proportion
    to their area of impact, and sums the shares per node across shifts.
    """
    impact: Dict[int, float] = {}
    for event in shifts:
        area_per_node: Dict[int, float] = {}
        total_area = 0.0
        for node in impacted_nodes(event):
            area = area_of_impact(node)
            area_per_node[node.node_id] = area_per_node.get(node.node_id, 0.0) + area
            total_area += area
        if total_area <= 0:
            continue
        score = shift_score(event)
        for node_id, area in area_per_node.items():
            impact[node_id] = impact.get(node_id, 0.0) + area / total_area * score
    return impact


def compute_cls(engine_result: TraceEngineResult, options: Optional[EngineOptions] = None) -> CLSResult:
    """
    CLS for the captured page: the maximum cluster score, the same over the
    main-frame shifts only, and the impact map.

    Raises:
        MissingSubModelError: If the engine result has no LayoutShifts sub-model.
    """
    options = options or EngineOptions()
    layout_shifts = engine_result.get("LayoutShifts")

    main_frame_shifts = [e for e in layout_shifts.shifts if e.data.get("is_main_frame")]
    main_frame_clusters = cluster_layout_shifts(main_frame_shifts, options.cluster_gap_us, options.cluster_limit_us)

    result = CLSResult(
        cumulative_layout_shift=layout_shifts.session_max_score,
        cumulative_layout_shift_main_frame=max_cluster_score(main_frame_clusters),
        impact_by_node_id=impact_by_node_id(layout_shifts.shifts),
    )
    logger.debug(
        "CLS %.4f (main frame %.4f) over %d shifts, %d impacted nodes",
        result.cumulative_layout_shift,
        result.cumulative_layout_shift_main_frame,
        len(layout_shifts.shifts),
        len(result.impact_by_node_id),
    )
    return result


def top_impacted_nodes(impact: Mapping[int, float], n: int = DEFAULT_TOP_N) -> List[Tuple[int, float]]:
    """The `n` largest entries, ties kept in insertion order."""
    return sorted(impact.items(), key=lambda item: item[1], reverse=True)[:n]


def biggest_impact_node(nodes: Sequence[ImpactedNode], impact: Mapping[int, float]) -> Optional[int]:
    """The node of one shift with the largest overall impact; the first one wins a tie."""
    biggest = None
    biggest_score = float("-inf")
    for node in nodes:
        score = impact.get(node.node_id)
        if score is not None and score > biggest_score:
            biggest = node.node_id
            biggest_score = score
    return biggest
