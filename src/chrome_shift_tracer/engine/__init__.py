from .layout_shifts import LayoutShiftCluster, LayoutShifts, cluster_layout_shifts, shift_score
from .options import EngineOptions
from .processor import DEFAULT_HANDLERS, TraceEngineResult, TraceProcessor

__all__ = [
    "DEFAULT_HANDLERS",
    "EngineOptions",
    "LayoutShiftCluster",
    "LayoutShifts",
    "TraceEngineResult",
    "TraceProcessor",
    "cluster_layout_shifts",
    "shift_score",
]
