from __future__ import annotations

import shutil
import unittest
from unittest import mock

from _support import BASE_OPTIONS, FakeEngine, FixedMeasurer, two_node_model

from archdraw.config import RenderConfig
from archdraw.errors import LayoutFailure, ModelFrozen
from archdraw.layout import (
    GraphEdgeSpec,
    GraphNodeSpec,
    GraphSpec,
    GraphvizLayoutEngine,
    LayeredLayoutEngine,
    build_graph_spec,
    build_graphviz_dot,
    create_engine,
    layout,
    parse_graphviz_plain,
    size_nodes,
)
from archdraw.model import BoundingBox, DiagramModel, Direction


def _config(**overrides) -> RenderConfig:
    options = dict(BASE_OPTIONS)
    options.update(overrides)
    return RenderConfig.from_mapping(options)


def _pair_spec(*edge_ids: str) -> GraphSpec:
    return GraphSpec(
        nodes=[GraphNodeSpec("A", 96.0, 96.0), GraphNodeSpec("B", 96.0, 96.0)],
        edges=[GraphEdgeSpec(edge_id, "A", Direction.RIGHT, "B", Direction.LEFT) for edge_id in edge_ids],
    )


PLAIN_PAIR = """graph 1 3 2
node A 0.5 1.5 1 1 "" solid box black lightgrey
node B 2.5 1.5 1 1 "" solid box black lightgrey
edge A B 4 1 1.5 1.5 1.5 1.5 1.5 2 1.5 solid black
stop
"""


class NodeSizingTests(unittest.TestCase):
    def test_untitled_nodes_skip_measurement(self) -> None:
        model = two_node_model()
        measurer = FixedMeasurer()
        size_nodes(model, _config(), measurer)
        self.assertEqual(measurer.calls, [])
        self.assertEqual((model.get_node("A").width, model.get_node("A").height), (80.0, 80.0))

    def test_titled_node_grows_to_fit_label(self) -> None:
        model = DiagramModel()
        model.add_node("api", title="Public API Gateway Service")
        measurer = FixedMeasurer()
        size_nodes(model, _config(), measurer)
        node = model.get_node("api")
        self.assertEqual(measurer.calls, ["Public API Gateway Service"])
        self.assertGreaterEqual(node.width, 80.0)
        self.assertLessEqual(node.width, 120.0)
        self.assertGreater(node.height, 80.0)


class GraphvizTranslationTests(unittest.TestCase):
    def test_dot_has_clusters_ports_and_placeholders(self) -> None:
        model = DiagramModel()
        model.add_group("cloud", title="Cloud")
        model.add_group("empty", parent="cloud")
        model.add_node("A", parent="cloud")
        model.add_node("B")
        model.add_edge("e1", "A", "bottom", "B", "L")
        model.add_edge("loop", "B", "right", "B", "left")
        spec = build_graph_spec(model, _config())
        dot = build_graphviz_dot(spec)

        self.assertIn('subgraph "cluster_cloud"', dot)
        self.assertIn('subgraph "cluster_empty"', dot)
        self.assertIn('"A":s -> "B":w;', dot)
        self.assertIn('style="invis"', dot)
        self.assertIn('rankdir="LR"', dot)
        self.assertNotIn('"B":e -> "B"', dot)
        self.assertEqual([edge.edge_id for edge in spec.edges], ["e1"])

    def test_parse_plain_output(self) -> None:
        result = parse_graphviz_plain(PLAIN_PAIR, _pair_spec("e1"))
        self.assertEqual(result.node_positions["A"], (0.0, 0.0))
        self.assertEqual(result.node_positions["B"], (192.0, 0.0))
        self.assertEqual(result.edge_points["e1"], [(96.0, 48.0), (144.0, 48.0), (192.0, 48.0)])

    def test_parallel_edges_matched_in_order(self) -> None:
        plain = PLAIN_PAIR.replace(
            "stop",
            "edge A B 2 1 1 2 1 solid black\nstop",
        )
        result = parse_graphviz_plain(plain, _pair_spec("first", "second"))
        self.assertEqual(result.edge_points["first"][1], (144.0, 48.0))
        self.assertEqual(result.edge_points["second"], [(96.0, 96.0), (192.0, 96.0)])

    def test_missing_node_is_fatal(self) -> None:
        plain = "\n".join(line for line in PLAIN_PAIR.splitlines() if not line.startswith("node B"))
        with self.assertRaises(LayoutFailure):
            parse_graphviz_plain(plain, _pair_spec("e1"))

    def test_malformed_header(self) -> None:
        with self.assertRaises(LayoutFailure):
            parse_graphviz_plain("node A 1 1 1 1\n", _pair_spec())


class EngineSelectionTests(unittest.TestCase):
    def test_layered_requested_explicitly(self) -> None:
        with mock.patch("archdraw.layout.shutil.which", return_value="/usr/bin/dot"):
            engine = create_engine(_config(layoutEngine="layered"))
        self.assertIsInstance(engine, LayeredLayoutEngine)

    def test_auto_prefers_graphviz(self) -> None:
        with mock.patch("archdraw.layout.shutil.which", return_value="/usr/bin/dot"):
            engine = create_engine(_config(layoutEngine="auto", layoutTimeout=2))
        self.assertIsInstance(engine, GraphvizLayoutEngine)
        self.assertEqual(engine.dot_path, "/usr/bin/dot")
        self.assertEqual(engine.timeout, 2.0)

    def test_auto_falls_back_without_dot(self) -> None:
        with mock.patch("archdraw.layout.shutil.which", return_value=None):
            engine = create_engine(_config(layoutEngine="auto"))
        self.assertIsInstance(engine, LayeredLayoutEngine)

    def test_graphviz_required_but_missing(self) -> None:
        with mock.patch("archdraw.layout.shutil.which", return_value=None):
            with self.assertRaises(LayoutFailure):
                create_engine(_config(layoutEngine="graphviz"))

    def test_unrunnable_dot_is_layout_failure(self) -> None:
        engine = GraphvizLayoutEngine(dot_path="/nonexistent/bin/dot")
        with self.assertRaises(LayoutFailure):
            engine.compute_layout(_pair_spec("e1"))


class LayoutTests(unittest.TestCase):
    def _laid_out(self, model: DiagramModel, **overrides):
        config = _config(**overrides)
        size_nodes(model, config, FixedMeasurer())
        return layout(model, config)

    def test_two_nodes_left_to_right(self) -> None:
        model = two_node_model()
        result = self._laid_out(model)
        self.assertEqual(result.node_boxes["A"], BoundingBox(0, 0, 80, 80))
        self.assertEqual(result.node_boxes["B"], BoundingBox(130, 0, 210, 80))
        route = result.edge_routes["A_to_B"]
        self.assertEqual(route.points, ((80.0, 40.0), (105.0, 40.0), (130.0, 40.0)))
        self.assertEqual(route.start, (80.0, 40.0))
        self.assertEqual(route.end, (130.0, 40.0))
        self.assertEqual((model.get_node("B").x, model.get_node("B").y), (130.0, 0.0))

    def test_top_to_bottom(self) -> None:
        model = two_node_model()
        result = self._laid_out(model, direction="TB")
        a, b = result.node_boxes["A"], result.node_boxes["B"]
        self.assertEqual(a.x1, b.x1)
        self.assertGreaterEqual(b.y1, a.y2 + 50)

    def test_cycles_are_laid_out_without_overlap(self) -> None:
        model = DiagramModel()
        for node_id in "ABCD":
            model.add_node(node_id)
        model.add_edge("ab", "A", "right", "B", "left")
        model.add_edge("bc", "B", "right", "C", "left")
        model.add_edge("ca", "C", "down", "A", "up")
        model.add_edge("ad", "A", "right", "D", "left")
        result = self._laid_out(model)
        boxes = list(result.node_boxes.values())
        for idx, first in enumerate(boxes):
            for second in boxes[idx + 1 :]:
                overlap = first.x1 < second.x2 and second.x1 < first.x2 and first.y1 < second.y2 and second.y1 < first.y2
                self.assertFalse(overlap, (first, second))
        self.assertEqual(set(result.edge_routes), {"ab", "bc", "ca", "ad"})

    def test_outside_node_between_group_members_stays_outside(self) -> None:
        model = DiagramModel()
        model.add_group("g", title="Group")
        model.add_node("a", parent="g")
        model.add_node("x")
        model.add_node("c", parent="g")
        model.add_edge("ax", "a", "right", "x", "left")
        model.add_edge("xc", "x", "right", "c", "left")
        result = self._laid_out(model)
        padded = result.padded_group_box("g")
        x_box = result.node_boxes["x"]
        overlap = padded.x1 < x_box.x2 and x_box.x1 < padded.x2 and padded.y1 < x_box.y2 and x_box.y1 < padded.y2
        self.assertFalse(overlap, (padded, x_box))
        self.assertTrue(padded.contains(result.node_boxes["a"], strict=True))
        self.assertTrue(padded.contains(result.node_boxes["c"], strict=True))

    def test_sibling_groups_get_separate_bands(self) -> None:
        model = DiagramModel()
        model.add_group("left")
        model.add_group("right")
        model.add_group("inner", parent="right")
        model.add_node("a", parent="left")
        model.add_node("b", parent="inner")
        model.add_node("c", parent="left")
        model.add_edge("ab", "a", "right", "b", "left")
        model.add_edge("bc", "b", "right", "c", "left")
        result = self._laid_out(model)
        left = result.padded_group_box("left")
        right = result.padded_group_box("right")
        self.assertTrue(left.y2 <= right.y1 or right.y2 <= left.y1, (left, right))
        self.assertTrue(right.contains(result.padded_group_box("inner"), strict=True))

    def test_long_chain_does_not_exhaust_recursion(self) -> None:
        model = DiagramModel()
        count = 1200
        for idx in range(count):
            model.add_node(f"n{idx}")
        for idx in range(count - 1):
            model.add_edge(f"e{idx}", f"n{idx}", "right", f"n{idx + 1}", "left")
        model.add_edge("back", f"n{count - 1}", "down", "n0", "up")
        result = self._laid_out(model)
        self.assertEqual(len(result.node_boxes), count)
        self.assertEqual(len(result.edge_routes), count)
        self.assertLess(result.node_boxes["n0"].x1, result.node_boxes[f"n{count - 1}"].x1)

    def test_layout_freezes_topology(self) -> None:
        model = two_node_model()
        self._laid_out(model)
        with self.assertRaises(ModelFrozen):
            model.add_node("C")

    def test_self_loop_gets_no_route(self) -> None:
        model = two_node_model()
        model.add_edge("loop", "A", "up", "A", "down")
        engine = FakeEngine()
        config = _config()
        size_nodes(model, config, FixedMeasurer())
        result = layout(model, config, engine)
        self.assertEqual([edge.edge_id for edge in engine.calls[0].edges], ["A_to_B"])
        self.assertNotIn("loop", result.edge_routes)

    def test_unplaced_node_is_fatal(self) -> None:
        model = two_node_model()
        config = _config()
        size_nodes(model, config, FixedMeasurer())
        with self.assertRaises(LayoutFailure):
            layout(model, config, FakeEngine(drop_nodes=["B"]))

    def test_empty_group_gets_icon_sized_box(self) -> None:
        model = DiagramModel()
        model.add_group("empty", title="Nothing here")
        model.add_node("A")
        result = self._laid_out(model)
        self.assertNotIn("__archdraw_group_empty", result.node_boxes)
        padded = result.padded_group_box("empty")
        self.assertEqual((padded.width, padded.height), (80.0, 80.0))
        self.assertFalse(padded.contains(result.node_boxes["A"]))

    def test_group_box_strictly_contains_children(self) -> None:
        model = DiagramModel()
        model.add_group("outer")
        model.add_group("inner", parent="outer")
        model.add_node("A", parent="inner")
        model.add_node("B", parent="outer")
        model.add_node("C")
        model.add_edge("ab", "A", "right", "B", "left")
        model.add_edge("bc", "B", "right", "C", "left")
        result = self._laid_out(model)
        outer = result.padded_group_box("outer")
        inner = result.padded_group_box("inner")
        self.assertTrue(inner.contains(result.node_boxes["A"], strict=True))
        self.assertTrue(outer.contains(inner, strict=True))
        self.assertTrue(outer.contains(result.node_boxes["B"], strict=True))
        self.assertFalse(outer.contains(result.node_boxes["C"]))


@unittest.skipIf(shutil.which("dot") is None, "Graphviz dot not installed")
class GraphvizEngineTests(unittest.TestCase):
    def test_graphviz_layout_places_every_node(self) -> None:
        model = DiagramModel()
        model.add_group("g")
        model.add_node("A", parent="g")
        model.add_node("B")
        model.add_edge("ab", "A", "right", "B", "left")
        config = _config(layoutEngine="graphviz")
        size_nodes(model, config, FixedMeasurer())
        result = layout(model, config)
        self.assertEqual(set(result.node_boxes), {"A", "B"})
        self.assertGreaterEqual(len(result.edge_routes["ab"].points), 2)
        self.assertTrue(result.padded_group_box("g").contains(result.node_boxes["A"], strict=True))


if __name__ == "__main__":
    unittest.main()
