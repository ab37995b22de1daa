"""
Unit tests for chrome_shift_tracer/root_causes.py and dom_nodes.py.

The live page is a FakeDom behind FakeSession, so every protocol query the
attributor makes is answered from a small in-memory node table.
"""

import asyncio
import unittest
from unittest.mock import patch

from chrome_shift_tracer.config import TracerConfig
from chrome_shift_tracer.dom_nodes import BackendNodeRef, DescribedNode, NodeResolver, declared_properties
from chrome_shift_tracer.engine import TraceProcessor
from chrome_shift_tracer.root_causes import (
    FontChange,
    InjectedIframe,
    RenderBlockingRequest,
    RootCauseAttributor,
    UnsizedMedia,
    is_sized,
)
from fake_session import FakeDom, FakeSession
from trace_fixtures import MS, impacted, invalidation, layout_shift, make_trace, request_events, tracing_started

RECT_A = [0, 0, 100, 100]
RECT_B = [0, 100, 100, 100]


def shift_with_nodes(ts, *node_ids, score=0.1):
    return layout_shift(ts, score, nodes=[impacted(node_id, RECT_A, RECT_B) for node_id in node_ids])


class TestIsSized(unittest.TestCase):
    def test_size_attributes(self):
        self.assertTrue(is_sized({"width": "640", "height": "480"}, {}))
        self.assertFalse(is_sized({"width": "640"}, {}))

    def test_css_dimensions(self):
        self.assertTrue(is_sized({}, {"width": "100%", "height": "300px"}))
        self.assertFalse(is_sized({}, {"width": "100%", "height": "auto"}))

    def test_aspect_ratio_with_one_dimension(self):
        self.assertTrue(is_sized({}, {"aspect-ratio": "16 / 9", "width": "100%"}))
        self.assertFalse(is_sized({}, {"aspect-ratio": "16 / 9"}))


class TestDeclaredProperties(unittest.TestCase):
    def test_inline_wins_and_user_agent_rules_are_skipped(self):
        matched = {
            "inlineStyle": {"cssProperties": [{"name": "width", "value": "50px"}]},
            "matchedCSSRules": [
                {"rule": {"origin": "user-agent", "style": {"cssProperties": [{"name": "height", "value": "1px"}]}}},
                {"rule": {"origin": "regular", "style": {"cssProperties": [{"name": "width", "value": "10px"}]}}},
                {
                    "rule": {
                        "origin": "regular",
                        "style": {"cssProperties": [{"name": "aspect-ratio", "value": "1", "disabled": True}]},
                    }
                },
            ],
        }
        self.assertEqual(declared_properties(matched), {"width": "50px"})


class TestNodeResolver(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.session = FakeSession()
        self.dom = FakeDom(self.session, {1: ("IMG", {"id": "hero", "class": "wide banner", "src": "/a.jpg"})})
        self.resolver = NodeResolver(self.session)

    async def test_resolve_describes_node(self):
        node = await self.resolver.resolve(self.resolver.ref(1))

        self.assertEqual(node.node_id, 1001)
        self.assertEqual(node.selector, "img#hero.wide.banner")
        self.assertEqual(node.snippet, '<img id="hero" class="wide banner" src="/a.jpg">')
        self.assertEqual(
            self.session.methods(),
            ["DOM.getDocument", "DOM.pushNodesByBackendIdsToFrontend", "DOM.describeNode"],
        )
        self.assertEqual(self.session.calls("DOM.getDocument"), [{"depth": -1, "pierce": True}])

    async def test_resolution_is_memoized(self):
        first = await self.resolver.resolve(self.resolver.ref(1))
        second = await self.resolver.resolve(self.resolver.ref(1))
        self.assertIs(first, second)
        self.assertEqual(len(self.session.calls("DOM.describeNode")), 1)
        self.assertEqual(len(self.session.calls("DOM.getDocument")), 1)

    async def test_node_not_found_resolves_to_none(self):
        self.dom.missing.add(1)
        self.assertIsNone(await self.resolver.resolve(self.resolver.ref(1)))

    async def test_unknown_backend_id_resolves_to_none(self):
        self.assertIsNone(await self.resolver.resolve(self.resolver.ref(42)))
        self.assertEqual(self.session.calls("DOM.describeNode"), [])

    async def test_ref_from_another_session_is_not_dereferenced(self):
        with self.assertLogs("chrome_shift_tracer.dom_nodes", level="WARNING"):
            node = await self.resolver.resolve(BackendNodeRef(1, "some-other-session"))
        self.assertIsNone(node)
        self.assertEqual(self.session.sent, [])

    async def test_style_queries_degrade_to_empty(self):
        self.session.reply("CSS.getComputedStyleForNode", RuntimeError("gone"))
        self.session.reply("CSS.getMatchedStylesForNode", RuntimeError("gone"))
        with self.assertLogs("chrome_shift_tracer.dom_nodes", level="WARNING"):
            self.assertEqual(await self.resolver.computed_style(1001), {})
            self.assertEqual(await self.resolver.matched_styles(1001), {})

    def test_text_node_description(self):
        node = DescribedNode(backend_node_id=5, node_id=6, node_name="#text")
        self.assertEqual(node.selector, "#text")
        self.assertEqual(node.snippet, "#text")


class TestRootCauseAttributor(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.session = FakeSession()
        self.dom = FakeDom(
            self.session,
            {
                1: ("IMG", {"src": "/1.jpg"}),
                2: ("IMG", {"src": "/2.jpg"}),
                3: ("IMG", {"src": "/3.jpg"}),
                4: ("IMG", {"src": "/4.jpg", "width": "10", "height": "10"}),
                5: ("DIV", {"class": "banner"}),
                6: ("VIDEO", {}),
            },
        )

    async def attribute(self, trace, config=None):
        engine_result = TraceProcessor().parse(trace)
        return await RootCauseAttributor(self.session, engine_result, config).attribute_all()

    async def test_one_missing_node_does_not_stop_attribution(self):
        self.dom.missing.add(2)
        trace = make_trace(tracing_started(0), shift_with_nodes(1000 * MS, 1, 2, 3))

        causes = await self.attribute(trace)

        self.assertEqual(causes.for_shift(0), (UnsizedMedia(1), UnsizedMedia(3)))

    async def test_enables_dom_and_css(self):
        await self.attribute(make_trace(shift_with_nodes(0, 5)))
        self.assertEqual(self.session.methods()[:2], ["DOM.enable", "CSS.enable"])

    async def test_sized_and_non_media_nodes_are_not_causes(self):
        self.dom.computed[3] = {"position": "absolute"}
        self.dom.matched[6] = {"width": "100%", "aspect-ratio": "16 / 9"}
        trace = make_trace(shift_with_nodes(0, 3, 4, 5, 6))
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), ())

    async def test_invalidated_media_is_a_candidate(self):
        trace = make_trace(
            invalidation(500 * MS, 6, "VIDEO", "Size changed"),
            shift_with_nodes(1000 * MS, 5),
        )
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), (UnsizedMedia(6),))

    async def test_font_change(self):
        trace = make_trace(
            tracing_started(0),
            request_events("f1", "https://example.com/a.woff2", 100 * MS, 800 * MS, resource_type="Font"),
            request_events("x1", "https://example.com/app.js", 100 * MS, 850 * MS, resource_type="Script"),
            invalidation(900 * MS, 5, "DIV", "Fonts changed"),
            shift_with_nodes(1000 * MS, 5),
        )
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), (FontChange("https://example.com/a.woff2"),))

    async def test_font_request_without_font_invalidation_is_ignored(self):
        trace = make_trace(
            request_events("f1", "https://example.com/a.woff2", 100 * MS, 800 * MS, resource_type="Font"),
            shift_with_nodes(1000 * MS, 5),
        )
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), ())

    async def test_injected_iframe_only_in_its_window(self):
        trace = make_trace(
            tracing_started(0),
            shift_with_nodes(1000 * MS, 5),
            invalidation(1500 * MS, 50, "IFRAME", "Added to layout"),
            invalidation(1600 * MS, 50, "IFRAME", "Added to layout"),
            shift_with_nodes(2000 * MS, 5),
        )
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), ())
        self.assertEqual(causes.for_shift(1), (InjectedIframe(50),))

    async def test_render_blocking_request(self):
        trace = make_trace(
            tracing_started(0),
            request_events("c1", "https://example.com/app.css", 10 * MS, 400 * MS, render_blocking="blocking"),
            request_events("c2", "https://example.com/late.css", 10 * MS, 400 * MS),
            shift_with_nodes(1000 * MS, 5),
        )
        causes = await self.attribute(trace)
        self.assertEqual(causes.for_shift(0), (RenderBlockingRequest("https://example.com/app.css"),))

    async def test_failed_sub_check_only_drops_its_own_causes(self):
        trace = make_trace(
            tracing_started(0),
            request_events("c1", "https://example.com/app.css", 10 * MS, 400 * MS, render_blocking="blocking"),
            shift_with_nodes(1000 * MS, 1),
        )
        with patch.object(RootCauseAttributor, "_font_changes", side_effect=RuntimeError("boom")):
            with self.assertLogs("chrome_shift_tracer.root_causes", level="WARNING"):
                causes = await self.attribute(trace)
        self.assertEqual(
            causes.for_shift(0),
            (RenderBlockingRequest("https://example.com/app.css"), UnsizedMedia(1)),
        )

    async def test_results_are_keyed_by_flattened_index(self):
        trace = make_trace(*[shift_with_nodes(i * 2000 * MS, 1 if i % 2 else 5) for i in range(5)])
        causes = await self.attribute(trace, TracerConfig(attribution_concurrency=2))

        self.assertEqual(list(causes.layout_shifts), [0, 1, 2, 3, 4])
        self.assertEqual(causes.for_shift(1), (UnsizedMedia(1),))
        self.assertEqual(causes.for_shift(2), ())
        self.assertEqual(len(self.session.calls("DOM.describeNode")), 2)

    async def test_attribution_concurrency_bounds_shifts_in_flight(self):
        describe = self.session.replies["DOM.describeNode"]
        in_flight = peak = 0

        async def slow_describe(params):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return describe(params)

        self.session.reply("DOM.describeNode", slow_describe)
        trace = make_trace(*[shift_with_nodes(i * 2000 * MS, node_id) for i, node_id in enumerate((1, 2, 3, 4, 6))])

        causes = await self.attribute(trace, TracerConfig(attribution_concurrency=2))

        self.assertEqual(peak, 2)
        self.assertEqual(len(self.session.calls("DOM.describeNode")), 5)
        self.assertEqual(causes.for_shift(4), (UnsizedMedia(6),))

    async def test_no_shifts_sends_nothing(self):
        causes = await self.attribute(make_trace(tracing_started(0)))
        self.assertEqual(causes.layout_shifts, {})
        self.assertEqual(self.session.sent, [])

    async def test_to_dict(self):
        causes = await self.attribute(make_trace(shift_with_nodes(0, 1)))
        self.assertEqual(causes.to_dict(), {"layoutShifts": {"0": [{"type": "UnsizedMedia", "backendNodeId": 1}]}})


if __name__ == "__main__":
    unittest.main()
