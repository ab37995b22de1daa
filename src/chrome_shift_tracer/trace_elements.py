#!/usr/bin/env python3
"""
Trace elements - DOM details for the nodes most involved in layout shifts.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional

from .config import TracerConfig
from .dom_nodes import DescribedNode, NodeResolver
from .engine.layout_shifts import impacted_nodes, shift_score
from .engine.processor import TraceEngineResult
from .metrics import CLSResult, biggest_impact_node, top_impacted_nodes
from .root_causes import RootCauses, UnsizedMedia

logger = logging.getLogger(__name__)

LAYOUT_SHIFT_ELEMENT = "layout-shift"


@dataclasses.dataclass(frozen=True)
class TraceElement:
    trace_event_type: str
    backend_node_id: int
    node: DescribedNode

    def to_dict(self) -> Dict[str, Any]:
        return {
            "traceEventType": self.trace_event_type,
            "nodeId": self.backend_node_id,
            "node": self.node.to_dict(),
        }


def top_layout_shift_node_ids(
    cls_result: CLSResult,
    engine_result: TraceEngineResult,
    root_causes: Optional[RootCauses],
    max_elements: int = 15,
    max_shifts: int = 15,
) -> List[int]:
    """
    Backend ids worth describing: the most impacted nodes overall, then for
    the largest shifts their biggest node and any unsized media behind them.
    Duplicates are dropped, first occurrence kept.
    """
    impact = cls_result.impact_by_node_id
    node_ids = [node_id for node_id, _score in top_impacted_nodes(impact, max_elements)]

    events = engine_result.layout_shift_events()
    ranked = sorted(range(len(events)), key=lambda i: shift_score(events[i]), reverse=True)
    for index in ranked[:max_shifts]:
        biggest = biggest_impact_node(impacted_nodes(events[index]), impact)
        if biggest is not None:
            node_ids.append(biggest)
        if root_causes is not None:
            for cause in root_causes.for_shift(index):
                if isinstance(cause, UnsizedMedia):
                    node_ids.append(cause.backend_node_id)

    return list(dict.fromkeys(node_ids))


async def collect_trace_elements(
    resolver: NodeResolver,
    cls_result: CLSResult,
    engine_result: TraceEngineResult,
    root_causes: Optional[RootCauses] = None,
    config: Optional[TracerConfig] = None,
) -> List[TraceElement]:
    """Describe each selected node; nodes that cannot be resolved are skipped."""
    config = config or TracerConfig()
    node_ids = top_layout_shift_node_ids(
        cls_result, engine_result, root_causes, config.top_n_nodes, config.max_layout_shifts
    )

    elements: List[TraceElement] = []
    for node_id in node_ids:
        node = await resolver.resolve(resolver.ref(node_id))
        if node is None:
            continue
        elements.append(TraceElement(trace_event_type=LAYOUT_SHIFT_ELEMENT, backend_node_id=node_id, node=node))

    logger.debug("Described %d of %d layout shift elements", len(elements), len(node_ids))
    return elements
