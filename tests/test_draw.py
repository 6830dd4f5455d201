from __future__ import annotations

import unittest

from _support import BASE_OPTIONS, FakeEngine, FixedMeasurer, two_node_model

from archdraw.archdraw import render_diagram
from archdraw.draw import default_service_path
from archdraw.icons import IconRegistry, default_icons
from archdraw.model import DiagramModel
from archdraw.sink import SVG_NS, DrawingSink, fmt, points_to_path_d

NS = {"svg": SVG_NS}


def _render(model: DiagramModel, **kwargs):
    options = dict(BASE_OPTIONS)
    options.update(kwargs.pop("options", {}))
    kwargs.setdefault("measurer", FixedMeasurer())
    return render_diagram(model, options, **kwargs)


class TwoServiceScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = two_node_model()
        self.measurer = FixedMeasurer()
        self.result = _render(self.model, measurer=self.measurer)

    def test_untitled_services_are_not_measured(self) -> None:
        self.assertEqual(self.measurer.calls, [])
        self.assertEqual(self.result.layout.node_boxes["A"].width, 80.0)
        self.assertEqual(self.result.layout.node_boxes["B"].height, 80.0)

    def test_edge_path_follows_route(self) -> None:
        edge = self.result.registry["A_to_B"]
        self.assertEqual(edge.get("d"), "M 80,40 L 105,40 L 130,40")
        self.assertEqual(edge.get("class"), "edge")

    def test_registry_covers_every_drawn_entity(self) -> None:
        self.assertEqual(set(self.result.registry), {"A", "B", "A_to_B"})
        self.assertIs(self.model.get_element_for_id("A"), self.result.registry["A"])
        self.assertEqual(self.result.skipped_edges, [])
        self.assertEqual(self.result.warnings, [])

    def test_default_shape_size_written_back(self) -> None:
        node = self.model.get_node("A")
        self.assertEqual((node.width, node.height), (90.0, 85.0))
        body = self.result.registry["B"].find("svg:g/svg:path", NS)
        self.assertEqual(body.get("d"), default_service_path(80))
        self.assertEqual(self.result.registry["B"].get("transform"), "translate(130, 0)")


class ServiceDrawingTests(unittest.TestCase):
    def test_unknown_icon_falls_back_with_warning(self) -> None:
        model = DiagramModel()
        model.add_node("svc", icon="nonexistent")
        result = _render(model)
        self.assertEqual(result.warnings, ['unknown icon "nonexistent" for service "svc"'])
        path = result.registry["svc"].find(".//svg:path", NS)
        self.assertEqual(path.get("d"), default_service_path(80))

    def test_custom_icon_is_called_and_measured(self) -> None:
        calls = []

        def draw_half(sink: DrawingSink, size: float):
            calls.append((sink, size))
            return sink.rect(None, 0, 0, size, size / 2, attrs={"class": "half"})

        icons = IconRegistry({"half": draw_half})
        model = DiagramModel()
        model.add_node("svc", icon="half")
        result = _render(model, icons=icons)
        self.assertEqual(len(calls), 1)
        self.assertIs(calls[0][0], result.sink)
        self.assertEqual(calls[0][1], 80.0)
        node = model.get_node("svc")
        self.assertEqual((node.width, node.height), (80.0, 40.0))
        self.assertIsNotNone(result.registry["svc"].find(".//svg:rect[@class='half']", NS))

    def test_builtin_icons_fit_icon_square(self) -> None:
        registry = default_icons()
        for name in registry.names():
            with self.subTest(icon=name):
                sink = DrawingSink()
                element = registry.get(name)(sink, 64.0)
                box = sink.bounding_box(element)
                self.assertEqual((box.x1, box.y1, box.x2, box.y2), (0.0, 0.0, 64.0, 64.0))

    def test_service_label_is_centered_below_icon(self) -> None:
        model = DiagramModel()
        model.add_node("db", title="Orders", icon="database")
        result = _render(model)
        label = result.registry["db"].find("svg:g[@class='architecture-service-label']", NS)
        self.assertEqual(label.get("transform"), "translate(40, 80)")
        text = label.find("svg:text", NS)
        self.assertEqual(text.get("text-anchor"), "middle")
        self.assertEqual([t.text for t in text.findall("svg:tspan", NS)], ["Orders"])
        node = model.get_node("db")
        self.assertEqual((node.width, node.height), (80.0, 100.0))


class EdgeAndGroupDrawingTests(unittest.TestCase):
    def test_single_point_route_is_skipped(self) -> None:
        model = two_node_model()
        result = _render(model, engine=FakeEngine(routes={"A_to_B": [(3.0, 4.0)]}))
        self.assertEqual(result.skipped_edges, ["A_to_B"])
        self.assertNotIn("A_to_B", result.registry)
        self.assertNotIn("A_to_B", model.elements)

    def test_self_loop_is_skipped(self) -> None:
        model = two_node_model()
        model.add_edge("loop", "B", "up", "B", "down")
        result = _render(model)
        self.assertEqual(result.skipped_edges, ["loop"])

    def test_group_rect_matches_padded_box(self) -> None:
        model = DiagramModel()
        model.add_group("api", title="API")
        model.add_node("A", parent="api")
        model.add_node("B", parent="api")
        model.add_edge("ab", "A", "right", "B", "left")
        result = _render(model)
        padded = result.layout.padded_group_box("api")
        group = result.registry["api"]
        rect = group.find("svg:rect", NS)
        self.assertEqual(rect.get("class"), "node-bkg")
        self.assertEqual(
            (rect.get("x"), rect.get("y"), rect.get("width"), rect.get("height")),
            (fmt(padded.x1), fmt(padded.y1), fmt(padded.width), fmt(padded.height)),
        )
        label = group.find("svg:g[@class='architecture-group-label']", NS)
        self.assertEqual(label.get("transform"), f"translate({fmt(padded.x1 + 4)}, {fmt(padded.y1 + 2)})")
        self.assertEqual(label.find("svg:text", NS).get("text-anchor"), "start")

    def test_layers_follow_draw_order(self) -> None:
        for order in ("edges-groups-nodes", "nodes-groups-edges"):
            with self.subTest(order=order):
                result = _render(two_node_model(), options={"drawOrder": order})
                layers = [child.get("class") for child in result.sink.root]
                expected = {
                    "edges": "architecture-edges",
                    "groups": "architecture-groups",
                    "nodes": "architecture-services",
                }
                self.assertEqual(layers, [expected[name] for name in order.split("-")])


class SinkTests(unittest.TestCase):
    def test_bounding_box_accumulates_translations(self) -> None:
        sink = DrawingSink()
        outer = sink.group(sink.root, x=10, y=20)
        inner = sink.group(outer, x=5, y=5)
        sink.rect(inner, 0, 0, 10, 10)
        sink.rect(outer, -10, 0, 1, 1)
        box = sink.bounding_box(outer)
        self.assertEqual((box.x1, box.y1, box.x2, box.y2), (-10.0, 0.0, 15.0, 15.0))
        root_box = sink.bounding_box(sink.root)
        self.assertEqual((root_box.x1, root_box.y1, root_box.x2, root_box.y2), (0.0, 20.0, 25.0, 35.0))

    def test_register_rejects_duplicates(self) -> None:
        sink = DrawingSink()
        element = sink.group(sink.root)
        sink.register("a", element)
        with self.assertRaises(ValueError):
            sink.register("a", element)

    def test_path_formatting(self) -> None:
        self.assertEqual(points_to_path_d([(0.0, 0.5), (10.25, 3.0)]), "M 0,0.5 L 10.25,3")
        self.assertEqual(fmt(1.0 / 3.0), "0.333")


if __name__ == "__main__":
    unittest.main()
