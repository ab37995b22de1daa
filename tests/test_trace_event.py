import json
import os
import tempfile
import unittest

from chrome_shift_tracer.errors import TraceParseError
from chrome_shift_tracer.trace_event import Trace, TraceEvent, load_trace, parse_trace_events
from trace_fixtures import cluster_example_trace, impacted, layout_shift, wire_event


class TestTraceEvent(unittest.TestCase):
    def test_from_wire_reads_all_fields(self):
        event = TraceEvent.from_wire(
            {"name": "X", "cat": "c", "ph": "b", "ts": 12, "pid": 3, "tid": 4, "args": {"a": 1}, "dur": 5, "id": 9}
        )
        self.assertEqual(
            (event.name, event.category, event.phase, event.ts, event.pid, event.tid, event.dur, event.id),
            ("X", "c", "b", 12, 3, 4, 5, "9"),
        )
        self.assertEqual(event.args, {"a": 1})

    def test_from_wire_uses_id2(self):
        event = TraceEvent.from_wire({"name": "X", "ph": "n", "ts": 1, "id2": {"local": "0x1f"}})
        self.assertEqual(event.id, "0x1f")

    def test_layout_shift_detection(self):
        self.assertTrue(TraceEvent.from_wire(layout_shift(0, 0.1)).is_layout_shift)
        self.assertFalse(TraceEvent.from_wire(wire_event("LayoutShift", 0, {})).is_layout_shift)
        self.assertFalse(TraceEvent.from_wire(wire_event("Layout", 0, {"score": 1})).is_layout_shift)

    def test_with_data_leaves_original_untouched(self):
        raw = layout_shift(10, 0.2, had_recent_input=True, nodes=[impacted(1, [0, 0, 1, 1], [0, 1, 1, 1])])
        original = TraceEvent.from_wire(raw)

        corrected = original.with_data(had_recent_input=False)

        self.assertTrue(original.data["had_recent_input"])
        self.assertFalse(corrected.data["had_recent_input"])
        self.assertEqual(corrected.data["impacted_nodes"], original.data["impacted_nodes"])
        self.assertTrue(raw["args"]["data"]["had_recent_input"])

    def test_to_wire_round_trip(self):
        raw = wire_event("ResourceFinish", 7, {"requestId": "1"}, dur=3, id="r1")
        self.assertEqual(TraceEvent.from_wire(raw).to_wire(), raw)


class TestParseTraceEvents(unittest.TestCase):
    def test_rejects_non_object(self):
        with self.assertRaises(TraceParseError):
            parse_trace_events([wire_event("A", 1), "not an event"])

    def test_rejects_missing_name(self):
        with self.assertRaises(TraceParseError):
            parse_trace_events([{"ph": "I", "ts": 1}])

    def test_rejects_non_numeric_timestamp(self):
        for ts in ("12", True, None):
            with self.subTest(ts=ts):
                with self.assertRaises(TraceParseError):
                    parse_trace_events([{"name": "A", "ph": "I", "ts": ts}])

    def test_rejects_non_object_args(self):
        with self.assertRaises(TraceParseError):
            parse_trace_events([{"name": "A", "ph": "I", "ts": 1, "args": []}])

    def test_keeps_order(self):
        events = parse_trace_events([wire_event("B", 5), wire_event("A", 1)])
        self.assertEqual([e.name for e in events], ["B", "A"])


class TestTrace(unittest.TestCase):
    def test_fingerprint_is_stable_for_equal_traces(self):
        self.assertEqual(cluster_example_trace().fingerprint, cluster_example_trace().fingerprint)

    def test_fingerprint_changes_with_content(self):
        a = Trace.from_wire([layout_shift(0, 0.1)])
        b = Trace.from_wire([layout_shift(0, 0.2)])
        self.assertNotEqual(a.fingerprint, b.fingerprint)

    def test_sequence_protocol(self):
        trace = cluster_example_trace()
        self.assertEqual(len(trace), 5)
        self.assertEqual(trace[0].name, "TracingStartedInBrowser")
        self.assertEqual(list(trace), list(trace.events))

    def test_load_trace_accepts_both_layouts(self):
        raw = [layout_shift(0, 0.1), layout_shift(10, 0.2)]
        with tempfile.TemporaryDirectory() as tmp:
            for name, document in (("array.json", raw), ("object.json", {"traceEvents": raw, "metadata": {}})):
                path = os.path.join(tmp, name)
                with open(path, "w", encoding="utf-8") as f:
                    json.dump(document, f)
                with self.subTest(layout=name):
                    trace = load_trace(path)
                    self.assertEqual(len(trace), 2)
                    self.assertEqual(trace.to_wire(), {"traceEvents": raw})

    def test_load_trace_rejects_bad_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "broken.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertRaises(TraceParseError):
                load_trace(path)

    def test_load_trace_rejects_missing_event_array(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "empty.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"metadata": {}}, f)
            with self.assertRaises(TraceParseError):
                load_trace(path)


if __name__ == "__main__":
    unittest.main()
