#!/usr/bin/env python3
"""
DOM node helpers - backend node references, their resolution over the
protocol and readable node descriptions.

A backend node id from the trace is only meaningful on the session that
recorded it, and the node may be gone by the time we ask. Every resolution is
a protocol round-trip that may yield None.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional

from .artifact_cache import ComputedArtifactCache
from .cdp_client import CDPSession
from .errors import ProtocolError
from .i18n import _

logger = logging.getLogger(__name__)

NODE_NOT_FOUND = "Could not find node"
SNIPPET_MAX_LENGTH = 500
ATTRIBUTE_MAX_LENGTH = 75


@dataclasses.dataclass(frozen=True)
class BackendNodeRef:
    backend_node_id: int
    session_key: str


@dataclasses.dataclass(frozen=True)
class DescribedNode:
    backend_node_id: int
    node_id: int
    node_name: str
    attributes: Dict[str, str] = dataclasses.field(default_factory=dict, hash=False)
    frame_id: Optional[str] = None

    @property
    def local_name(self) -> str:
        return self.node_name.lower()

    @property
    def selector(self) -> str:
        """Tag plus id and classes, e.g. `img#hero.wide`."""
        if self.local_name.startswith("#"):
            return self.local_name
        desc = self.local_name
        if self.attributes.get("id"):
            desc += f"#{self.attributes['id']}"
        class_list = self.attributes.get("class", "").strip().split()
        if class_list:
            desc += "." + ".".join(class_list)
        return desc

    @property
    def snippet(self) -> str:
        """An opening tag rebuilt from the attributes."""
        if self.local_name.startswith("#"):
            return self.local_name
        parts = [f"<{self.local_name}"]
        for name, value in self.attributes.items():
            if len(value) > ATTRIBUTE_MAX_LENGTH:
                value = value[:ATTRIBUTE_MAX_LENGTH] + "…"
            parts.append(f'{name}="{value}"')
        snippet = " ".join(parts) + ">"
        if len(snippet) > SNIPPET_MAX_LENGTH:
            snippet = snippet[: SNIPPET_MAX_LENGTH - 2] + "…>"
        return snippet

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backendNodeId": self.backend_node_id,
            "nodeName": self.node_name,
            "attributes": dict(self.attributes),
            "selector": self.selector,
            "snippet": self.snippet,
            "frameId": self.frame_id,
        }


def _attributes_dict(raw: List[str]) -> Dict[str, str]:
    return dict(zip(raw[::2], raw[1::2]))


def is_node_not_found(error: Exception) -> bool:
    return isinstance(error, ProtocolError) and NODE_NOT_FOUND in error.message


class NodeResolver:
    """
    Resolves backend node refs against one session.

    Results go through the run's artifact cache, so each node costs at most
    one push/describe round-trip per run.
    """

    def __init__(self, session: CDPSession, cache: Optional[ComputedArtifactCache] = None):
        self.session = session
        self.cache = cache or ComputedArtifactCache()

    def ref(self, backend_node_id: int) -> BackendNodeRef:
        return BackendNodeRef(backend_node_id=backend_node_id, session_key=self.session.session_key)

    async def _request_document(self) -> bool:
        # pushNodesByBackendIdsToFrontend only works once the frontend has a document.
        try:
            await self.session.send_command("DOM.getDocument", {"depth": -1, "pierce": True})
            return True
        except Exception as e:
            logger.warning(_("DOM.getDocument failed: {e}", e=e))
            return False

    async def ensure_document(self) -> bool:
        return await self.cache.get_or_compute("DOMDocument", self.session.session_key, self._request_document)

    async def _describe(self, ref: BackendNodeRef) -> Optional[DescribedNode]:
        try:
            response = await self.session.send_command(
                "DOM.pushNodesByBackendIdsToFrontend", {"backendNodeIds": [ref.backend_node_id]}
            )
            node_ids = response.get("result", {}).get("nodeIds") or []
            if not node_ids or not node_ids[0]:
                logger.debug("Backend node %s has no frontend node", ref.backend_node_id)
                return None
            response = await self.session.send_command("DOM.describeNode", {"nodeId": node_ids[0]})
            node = response.get("result", {}).get("node") or {}
        except Exception as e:
            if is_node_not_found(e):
                logger.debug("Backend node %s is no longer in the document", ref.backend_node_id)
            else:
                logger.warning(_("Could not resolve node {node}: {e}", node=ref.backend_node_id, e=e))
            return None

        return DescribedNode(
            backend_node_id=ref.backend_node_id,
            node_id=node_ids[0],
            node_name=node.get("nodeName", ""),
            attributes=_attributes_dict(node.get("attributes", [])),
            frame_id=node.get("frameId"),
        )

    async def resolve(self, ref: BackendNodeRef) -> Optional[DescribedNode]:
        """The live node behind `ref`, or None if it cannot be resolved."""
        if ref.session_key != self.session.session_key:
            logger.warning(
                _(
                    "Node {node} belongs to session {session_key}, not this one",
                    node=ref.backend_node_id,
                    session_key=ref.session_key,
                )
            )
            return None
        await self.ensure_document()
        return await self.cache.get_or_compute("DescribedNode", ref, lambda: self._describe(ref))

    async def resolve_many(self, refs: List[BackendNodeRef]) -> Dict[int, Optional[DescribedNode]]:
        results: Dict[int, Optional[DescribedNode]] = {}
        for ref in refs:
            results[ref.backend_node_id] = await self.resolve(ref)
        return results

    async def computed_style(self, node_id: int) -> Dict[str, str]:
        """Computed style as `{property: value}`; empty if the query fails."""
        try:
            response = await self.session.send_command("CSS.getComputedStyleForNode", {"nodeId": node_id})
        except Exception as e:
            logger.warning(_("CSS.getComputedStyleForNode error: {error}", error=e))
            return {}
        computed = response.get("result", {}).get("computedStyle", [])
        return {prop["name"]: prop.get("value", "") for prop in computed if "name" in prop}

    async def matched_styles(self, node_id: int) -> Dict[str, Any]:
        """Raw `CSS.getMatchedStylesForNode` result; empty if the query fails."""
        try:
            response = await self.session.send_command("CSS.getMatchedStylesForNode", {"nodeId": node_id})
        except Exception as e:
            logger.warning(_("CSS.getMatchedStylesForNode error: {error}", error=e))
            return {}
        return response.get("result", {})


def declared_properties(matched_styles: Dict[str, Any]) -> Dict[str, str]:
    """
    Author-declared properties from matched rules and the inline style.

    Later matched rules win over earlier ones and the inline style wins over
    all of them; user-agent rules are skipped.
    """
    declared: Dict[str, str] = {}
    rules = matched_styles.get("matchedCSSRules") or []
    for rule_match in rules:
        rule = rule_match.get("rule", {})
        if rule.get("origin") == "user-agent":
            continue
        for prop in rule.get("style", {}).get("cssProperties", []):
            if prop.get("value") and not prop.get("disabled"):
                declared[prop["name"]] = prop["value"]
    inline = matched_styles.get("inlineStyle") or {}
    for prop in inline.get("cssProperties", []):
        if prop.get("value") and not prop.get("disabled"):
            declared[prop["name"]] = prop["value"]
    return declared
