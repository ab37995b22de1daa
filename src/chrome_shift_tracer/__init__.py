"""Chrome layout shift tracing: capture, CLS windowing and root-cause attribution over CDP."""

from .artifact_cache import ComputedArtifactCache
from .cdp_client import CDPSession
from .config import TracerConfig, load_config
from .dom_nodes import BackendNodeRef, DescribedNode, NodeResolver
from .engine import EngineOptions, LayoutShiftCluster, TraceEngineResult, TraceProcessor
from .errors import (
    InvalidShiftIndexError,
    MissingSubModelError,
    ProtocolError,
    ShiftTracerError,
    TraceCaptureError,
    TraceParseError,
    TraceRecorderStateError,
    TraceTimeoutError,
)
from .logger import setup_logging, setup_logging_from_config
from .metrics import CLSResult, compute_cls, top_impacted_nodes
from .root_causes import (
    FontChange,
    InjectedIframe,
    RenderBlockingRequest,
    RootCauseAttributor,
    RootCauses,
    UnsizedMedia,
)
from .run import AnalysisRun, LayoutShiftReport, capture_and_analyze, capture_trace
from .target_manager import connect_to_page, find_page_targets
from .trace_elements import TraceElement, collect_trace_elements
from .trace_event import Trace, TraceEvent, load_trace
from .trace_recorder import TraceRecorder

__version__ = "0.1.0"

__all__ = [
    "AnalysisRun",
    "BackendNodeRef",
    "CDPSession",
    "CLSResult",
    "ComputedArtifactCache",
    "DescribedNode",
    "EngineOptions",
    "FontChange",
    "InjectedIframe",
    "InvalidShiftIndexError",
    "LayoutShiftCluster",
    "LayoutShiftReport",
    "MissingSubModelError",
    "NodeResolver",
    "ProtocolError",
    "RenderBlockingRequest",
    "RootCauseAttributor",
    "RootCauses",
    "ShiftTracerError",
    "Trace",
    "TraceCaptureError",
    "TraceElement",
    "TraceEngineResult",
    "TraceEvent",
    "TraceParseError",
    "TraceProcessor",
    "TraceRecorder",
    "TraceRecorderStateError",
    "TraceTimeoutError",
    "TracerConfig",
    "UnsizedMedia",
    "capture_and_analyze",
    "capture_trace",
    "collect_trace_elements",
    "compute_cls",
    "connect_to_page",
    "find_page_targets",
    "load_config",
    "load_trace",
    "setup_logging",
    "setup_logging_from_config",
    "top_impacted_nodes",
]
