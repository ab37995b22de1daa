#!/usr/bin/env python3
"""
Root-Cause Attributor - best-effort reasons for each clustered layout shift.

Each shift gets four independent sub-checks (font changes, injected iframes,
render-blocking requests, unsized media) that read the trace and query the
live page. A failing query or sub-check only empties that sub-check's result;
it never fails the shift or the run.
"""

import asyncio
import dataclasses
import logging
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from .cdp_client import CDPSession
from .config import TracerConfig
from .dom_nodes import DescribedNode, NodeResolver, declared_properties
from .engine.layout_shifts import LayoutShifts, impacted_nodes
from .engine.network_requests import NetworkRequests
from .engine.processor import TraceEngineResult
from .i18n import _
from .trace_event import TraceEvent

logger = logging.getLogger(__name__)

FONTS_CHANGED_REASON = "Fonts changed"
ADDED_TO_LAYOUT_REASON = "Added to layout"
SIZE_CHANGED_REASON = "Size changed"
MEDIA_ELEMENTS = ("img", "video")
OUT_OF_FLOW_POSITIONS = ("absolute", "fixed")


@dataclasses.dataclass(frozen=True)
class FontChange:
    request_url: str
    kind: ClassVar[str] = "FontChange"

    @property
    def description(self) -> str:
        return _("A layout shift may have occurred because the font for some text changed")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "requestUrl": self.request_url}


@dataclasses.dataclass(frozen=True)
class InjectedIframe:
    backend_node_id: int
    kind: ClassVar[str] = "InjectedIframe"

    @property
    def description(self) -> str:
        return _(
            "A layout shift may have occurred because an iframe was added to the page "
            "without space being previously allocated for it"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "backendNodeId": self.backend_node_id}


@dataclasses.dataclass(frozen=True)
class RenderBlockingRequest:
    request_url: str
    kind: ClassVar[str] = "RenderBlockingRequest"

    @property
    def description(self) -> str:
        return _("A layout shift may have occurred because of a render blocking request")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "requestUrl": self.request_url}


@dataclasses.dataclass(frozen=True)
class UnsizedMedia:
    backend_node_id: int
    kind: ClassVar[str] = "UnsizedMedia"

    @property
    def description(self) -> str:
        return _("A layout shift may have occurred because of CSS defining the size of an otherwise unsized element")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "backendNodeId": self.backend_node_id}


RootCause = Union[FontChange, InjectedIframe, RenderBlockingRequest, UnsizedMedia]


@dataclasses.dataclass(frozen=True)
class RootCauses:
    # Keyed by the shift's index into the flattened cluster events.
    layout_shifts: Dict[int, Tuple[RootCause, ...]]

    def for_shift(self, index: int) -> Tuple[RootCause, ...]:
        return self.layout_shifts.get(index, ())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layoutShifts": {
                str(index): [cause.to_dict() for cause in causes] for index, causes in self.layout_shifts.items()
            }
        }


def _is_explicit(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() not in ("auto", "initial", "unset", "inherit")


def is_sized(attributes: Dict[str, str], declared: Dict[str, str]) -> bool:
    """
    Whether a media element reserves its box before loading: both size
    attributes, both explicit CSS dimensions, or an aspect ratio plus one
    dimension.
    """
    if attributes.get("width") and attributes.get("height"):
        return True
    has_width = _is_explicit(declared.get("width"))
    has_height = _is_explicit(declared.get("height"))
    if has_width and has_height:
        return True
    if _is_explicit(declared.get("aspect-ratio")) and (has_width or has_height):
        return True
    return False


class RootCauseAttributor:
    def __init__(
        self,
        session: CDPSession,
        engine_result: TraceEngineResult,
        config: Optional[TracerConfig] = None,
        resolver: Optional[NodeResolver] = None,
    ):
        self.session = session
        self.engine_result = engine_result
        self.config = config or TracerConfig()
        self.resolver = resolver or NodeResolver(session)
        self.layout_shifts: LayoutShifts = engine_result.get("LayoutShifts")
        self.network_requests: NetworkRequests = engine_result.get("NetworkRequests")
        self._events = self.layout_shifts.clustered_events()

    async def _enable_domains(self) -> None:
        for domain in ("DOM", "CSS"):
            try:
                await self.session.enable(domain)
            except Exception as e:
                logger.warning(_("Could not enable {domain}: {e}", domain=domain, e=e))

    def shift_window(self, index: int) -> Tuple[Union[int, float], Union[int, float]]:
        """
        Half-open window (start, end] of trace activity that can explain shift
        `index`: from the previous shift, or the trace start, up to this shift.
        """
        event = self._events[index]
        if index > 0:
            start = self._events[index - 1].ts
        else:
            meta = self.engine_result.data.get("Meta")
            start = meta.min_ts if meta is not None and meta.min_ts is not None else 0
            # A shift at the very first timestamp still needs an open start.
            start = min(start, event.ts) - 1
        return start, event.ts

    async def attribute_all(self) -> RootCauses:
        """Root causes for every clustered shift, keyed by flattened index."""
        if not self._events:
            return RootCauses(layout_shifts={})

        await self._enable_domains()
        semaphore = asyncio.Semaphore(self.config.attribution_concurrency)

        async def attribute(index: int) -> Tuple[int, Tuple[RootCause, ...]]:
            async with semaphore:
                return index, tuple(await self.root_causes_for_shift(index))

        results = await asyncio.gather(*(attribute(i) for i in range(len(self._events))))
        causes = dict(sorted(results, key=lambda item: item[0]))
        logger.info(
            _(
                "Attributed {count} layout shifts, {found} with causes.",
                count=len(causes),
                found=sum(1 for c in causes.values() if c),
            )
        )
        return RootCauses(layout_shifts=causes)

    async def root_causes_for_shift(self, index: int) -> List[RootCause]:
        start, end = self.shift_window(index)
        event = self._events[index]
        invalidations = self.layout_shifts.invalidations_between(start, end)

        checks = (
            ("font changes", self._font_changes(invalidations, start, end)),
            ("injected iframes", self._injected_iframes(invalidations)),
            ("render-blocking requests", self._render_blocking_requests(start, end)),
            ("unsized media", self._unsized_media(event, invalidations)),
        )
        results = await asyncio.gather(*(check for _name, check in checks), return_exceptions=True)

        causes: List[RootCause] = []
        for (name, _check), result in zip(checks, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    _("Root cause check {name} failed for shift {index}: {e}", name=name, index=index, e=result)
                )
                continue
            causes.extend(result)
        return causes

    async def _font_changes(self, invalidations: Sequence[TraceEvent], start: float, end: float) -> List[RootCause]:
        if not any(e.data.get("reason") == FONTS_CHANGED_REASON for e in invalidations):
            return []
        return [FontChange(request_url=r.url) for r in self.network_requests.finished_between(start, end) if r.is_font]

    async def _injected_iframes(self, invalidations: Sequence[TraceEvent]) -> List[RootCause]:
        seen: Dict[int, InjectedIframe] = {}
        for invalidation in invalidations:
            data = invalidation.data
            node_name = str(data.get("nodeName", "")).upper()
            node_id = data.get("nodeId")
            if node_name.startswith("IFRAME") and data.get("reason") == ADDED_TO_LAYOUT_REASON and node_id:
                seen.setdefault(node_id, InjectedIframe(backend_node_id=node_id))
        return list(seen.values())

    async def _render_blocking_requests(self, start: float, end: float) -> List[RootCause]:
        return [
            RenderBlockingRequest(request_url=r.url)
            for r in self.network_requests.finished_between(start, end)
            if r.is_render_blocking
        ]

    def _media_candidates(self, event: TraceEvent, invalidations: Sequence[TraceEvent]) -> List[int]:
        candidates: Dict[int, None] = {}
        for node in impacted_nodes(event):
            candidates[node.node_id] = None
        for invalidation in invalidations:
            data = invalidation.data
            node_name = str(data.get("nodeName", "")).lower()
            if (
                data.get("nodeId")
                and data.get("reason") == SIZE_CHANGED_REASON
                and node_name.startswith(MEDIA_ELEMENTS)
            ):
                candidates[data["nodeId"]] = None
        return list(candidates)

    async def _check_media_node(self, backend_node_id: int) -> Optional[RootCause]:
        node: Optional[DescribedNode] = await self.resolver.resolve(self.resolver.ref(backend_node_id))
        if node is None or node.local_name not in MEDIA_ELEMENTS:
            return None
        computed = await self.resolver.computed_style(node.node_id)
        if computed.get("position") in OUT_OF_FLOW_POSITIONS:
            return None
        matched = await self.resolver.matched_styles(node.node_id)
        if is_sized(node.attributes, declared_properties(matched)):
            return None
        return UnsizedMedia(backend_node_id=backend_node_id)

    async def _unsized_media(self, event: TraceEvent, invalidations: Sequence[TraceEvent]) -> List[RootCause]:
        candidates = self._media_candidates(event, invalidations)
        results = await asyncio.gather(*(self._check_media_node(node_id) for node_id in candidates))
        return [cause for cause in results if cause is not None]
