"""Turns a laid-out diagram into a drawing tree."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import RenderConfig
from .icons import IconRegistry
from .layout import LayoutResult
from .measure import TextConstraints, TextMeasurer, default_measurer
from .model import BoundingBox, DiagramModel, Edge, EntityKind, Group, Node
from .sink import DrawingSink, fmt

LOGGER = logging.getLogger(__name__)

# offset of a group label from the padded top-left corner
GROUP_LABEL_OFFSET = (4.0, 2.0)
# corner radius of the default service shape
SERVICE_CORNER = 5.0

LAYER_CLASSES = {
    "edges": "architecture-edges",
    "groups": "architecture-groups",
    "nodes": "architecture-services",
}


@dataclass
class DrawReport:
    warnings: List[str] = field(default_factory=list)
    skipped_edges: List[str] = field(default_factory=list)


def default_service_path(icon_size: float) -> str:
    s = fmt(icon_size)
    return f"M0 {s} v{fmt(-icon_size)} q0,-5 5,-5 h{s} q5,0 5,5 v{s} H0 Z"


class DrawEngine:
    """Draws edges, groups and services of one laid-out diagram.

    Layers are created in ``config.draw_order``; since SVG paints in document
    order, the first layer ends up at the back.
    """

    def __init__(
        self,
        config: RenderConfig,
        icons: IconRegistry,
        measurer: Optional[TextMeasurer] = None,
    ) -> None:
        self.config = config
        self.icons = icons
        self.measurer = measurer or default_measurer()

    def draw(self, model: DiagramModel, layout: LayoutResult, sink: DrawingSink) -> DrawReport:
        report = DrawReport()
        layers: Dict[str, ET.Element] = {}
        for name in self.config.layer_order:
            layers[name] = sink.group(sink.root, attrs={"class": LAYER_CLASSES[name]})

        for entity in model.iter_entities():
            if entity.kind is EntityKind.GROUP:
                self.draw_group(model, entity, layout, sink, layers["groups"])
            elif entity.kind is EntityKind.NODE:
                self.draw_service(model, entity, layout, sink, layers["nodes"], report)
            else:
                raise TypeError(f"unsupported entity kind {entity.kind!r}")

        for edge in model.iter_edges():
            self.draw_edge(model, edge, layout, sink, layers["edges"], report)
        return report

    def draw_edge(
        self,
        model: DiagramModel,
        edge: Edge,
        layout: LayoutResult,
        sink: DrawingSink,
        layer: ET.Element,
        report: DrawReport,
    ) -> Optional[ET.Element]:
        route = layout.edge_routes.get(edge.id)
        if route is None or len(route.points) < 2:
            LOGGER.debug("edge %s has no routed geometry; skipped", edge.id)
            report.skipped_edges.append(edge.id)
            return None
        LOGGER.debug("draw edge %s: %s -> %s", edge.id, edge.source, edge.target)
        element = sink.polyline(layer, route.points, attrs={"id": edge.id, "class": "edge"})
        self._register(model, sink, edge.id, element)
        return element

    def draw_group(
        self,
        model: DiagramModel,
        group: Group,
        layout: LayoutResult,
        sink: DrawingSink,
        layer: ET.Element,
    ) -> ET.Element:
        box = layout.padded_group_box(group.id)
        LOGGER.debug(
            "draw group %s: pos=(%.1f, %.1f), dim=(%.1f, %.1f)",
            group.id,
            box.x1,
            box.y1,
            box.width,
            box.height,
        )
        element = sink.group(layer, attrs={"id": group.id, "class": "architecture-group"})
        sink.rect(element, box.x1, box.y1, box.width, box.height, attrs={"class": "node-bkg"})
        if group.title:
            dx, dy = GROUP_LABEL_OFFSET
            block = self.measurer.layout_text(
                group.title, self._label_constraints(max(box.width - 2 * dx, 1.0))
            )
            label = sink.group(
                element,
                x=box.x1 + dx,
                y=box.y1 + dy,
                attrs={"class": "architecture-group-label"},
            )
            sink.text(label, block, anchor="start")
        self._register(model, sink, group.id, element)
        return element

    def draw_service(
        self,
        model: DiagramModel,
        node: Node,
        layout: LayoutResult,
        sink: DrawingSink,
        layer: ET.Element,
        report: DrawReport,
    ) -> ET.Element:
        icon_size = self.config.icon_size
        footprint = layout.node_boxes[node.id]
        offset_x = (footprint.width - icon_size) / 2.0
        element = sink.group(
            layer,
            x=footprint.x1 + offset_x,
            y=footprint.y1,
            attrs={"id": node.id, "class": "architecture-service"},
        )

        if node.title:
            block = self.measurer.layout_text(node.title, self._label_constraints(self.config.label_width))
            label = sink.group(
                element,
                x=icon_size / 2.0,
                y=icon_size,
                attrs={"class": "architecture-service-label"},
            )
            sink.text(label, block, anchor="middle")

        body = sink.group(element, attrs={"class": "architecture-service-body"})
        draw_icon = self.icons.get(node.icon) if node.icon else None
        if node.icon and draw_icon is None:
            message = f'unknown icon "{node.icon}" for service "{node.id}"'
            LOGGER.debug("%s; drawing default shape", message)
            report.warnings.append(message)
        if draw_icon is not None:
            sink.append(body, draw_icon(sink, icon_size))
        else:
            sink.path(
                body,
                default_service_path(icon_size),
                BoundingBox(0.0, -SERVICE_CORNER, icon_size + 2 * SERVICE_CORNER, icon_size),
                attrs={"class": "node-bkg"},
            )

        rendered = sink.bounding_box(element)
        if rendered is not None:
            model.set_size(node.id, rendered.width, rendered.height)
        LOGGER.debug("draw service %s", node.id)
        self._register(model, sink, node.id, element)
        return element

    def _label_constraints(self, max_width: float) -> TextConstraints:
        return TextConstraints(
            font_size=self.config.font_size,
            font_family=self.config.font_family,
            font_path=self.config.font_path,
            max_width=max_width,
        )

    @staticmethod
    def _register(model: DiagramModel, sink: DrawingSink, entity_id: str, element: ET.Element) -> None:
        sink.register(entity_id, element)
        model.set_element_for_id(entity_id, element)


__all__ = ["DrawEngine", "DrawReport", "default_service_path", "LAYER_CLASSES"]
