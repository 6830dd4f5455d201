"""Append-only SVG canvas that remembers the extent of everything drawn."""
from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from copy import deepcopy
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .measure import TextBlock
from .model import BoundingBox, Point

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)

Attrs = Optional[Dict[str, str]]


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


class DrawingSink:
    """Creates drawing primitives and tracks an id -> subtree registry.

    Every primitive records its bounds in local coordinates and every group
    records its translation, so the extent of any assembled subtree can be
    read back without rasterizing.
    """

    def __init__(self) -> None:
        self.root = ET.Element(_q("svg"))
        self._bounds: Dict[ET.Element, BoundingBox] = {}
        self._offsets: Dict[ET.Element, Point] = {}
        self._registry: Dict[str, ET.Element] = {}

    def group(
        self,
        parent: Optional[ET.Element] = None,
        *,
        x: float = 0.0,
        y: float = 0.0,
        attrs: Attrs = None,
    ) -> ET.Element:
        g_attrs = dict(attrs or {})
        if x or y:
            g_attrs["transform"] = f"translate({fmt(x)}, {fmt(y)})"
        element = ET.Element(_q("g"), g_attrs)
        self._offsets[element] = (x, y)
        return self._attach(parent, element)

    def rect(
        self,
        parent: Optional[ET.Element],
        x: float,
        y: float,
        width: float,
        height: float,
        *,
        attrs: Attrs = None,
    ) -> ET.Element:
        rect_attrs = {
            "x": fmt(x),
            "y": fmt(y),
            "width": fmt(width),
            "height": fmt(height),
        }
        rect_attrs.update(attrs or {})
        element = ET.Element(_q("rect"), rect_attrs)
        self._bounds[element] = BoundingBox.from_size(x, y, width, height)
        return self._attach(parent, element)

    def path(
        self,
        parent: Optional[ET.Element],
        d: str,
        bounds: BoundingBox,
        *,
        attrs: Attrs = None,
    ) -> ET.Element:
        path_attrs = {"d": d}
        path_attrs.update(attrs or {})
        element = ET.Element(_q("path"), path_attrs)
        self._bounds[element] = bounds
        return self._attach(parent, element)

    def polyline(
        self,
        parent: Optional[ET.Element],
        points: Iterable[Point],
        *,
        attrs: Attrs = None,
    ) -> ET.Element:
        pts = list(points)
        if not pts:
            raise ValueError("polyline requires at least one point")
        bounds = BoundingBox(
            min(x for x, _ in pts),
            min(y for _, y in pts),
            max(x for x, _ in pts),
            max(y for _, y in pts),
        )
        return self.path(parent, points_to_path_d(pts), bounds, attrs=attrs)

    def text(
        self,
        parent: Optional[ET.Element],
        block: TextBlock,
        *,
        x: float = 0.0,
        y: float = 0.0,
        anchor: str = "start",
        attrs: Attrs = None,
    ) -> ET.Element:
        """Append a multi-line label whose top edge sits at ``y``."""
        text_attrs = {
            "x": fmt(x),
            "y": fmt(y + block.ascent),
            "text-anchor": anchor,
        }
        text_attrs.update(attrs or {})
        element = ET.Element(_q("text"), text_attrs)
        for idx, line in enumerate(block.lines):
            tspan = ET.SubElement(
                element,
                _q("tspan"),
                {"x": fmt(x), "dy": "0" if idx == 0 else fmt(block.line_height)},
            )
            tspan.text = line
        if anchor == "middle":
            left = x - block.width / 2.0
        elif anchor == "end":
            left = x - block.width
        else:
            left = x
        self._bounds[element] = BoundingBox.from_size(left, y, block.width, block.height)
        return self._attach(parent, element)

    def append(self, parent: ET.Element, element: ET.Element) -> ET.Element:
        """Attach a detached subtree built by this sink."""
        parent.append(element)
        return element

    def bounding_box(self, element: ET.Element) -> Optional[BoundingBox]:
        """Extent of ``element`` in its own coordinate system."""
        if element in self._bounds:
            return self._bounds[element]
        bbox: Optional[BoundingBox] = None
        for child in element:
            child_box = self.bounding_box(child)
            if child_box is None:
                continue
            dx, dy = self._offsets.get(child, (0.0, 0.0))
            bbox = child_box.translate(dx, dy).union(bbox)
        return bbox

    def register(self, entity_id: str, element: ET.Element) -> None:
        if entity_id in self._registry:
            raise ValueError(f'drawing for "{entity_id}" is already registered')
        self._registry[entity_id] = element

    @property
    def registry(self) -> Mapping[str, ET.Element]:
        return MappingProxyType(self._registry)

    def to_svg(
        self,
        *,
        padding: float = 0.0,
        background: Optional[str] = "#fff",
        stylesheet: Optional[str] = None,
        attrs: Attrs = None,
    ) -> str:
        svg_root = deepcopy(self.root)
        for key, value in (attrs or {}).items():
            svg_root.set(key, value)
        bbox = self.bounding_box(self.root) or BoundingBox(0.0, 0.0, 0.0, 0.0)
        bbox = bbox.expand(padding)
        svg_root.set(
            "viewBox",
            f"{fmt(bbox.x1)} {fmt(bbox.y1)} {fmt(bbox.width)} {fmt(bbox.height)}",
        )
        svg_root.set("width", fmt(max(bbox.width, 0.0)))
        svg_root.set("height", fmt(max(bbox.height, 0.0)))
        prefix: List[ET.Element] = []
        if stylesheet:
            style = ET.Element(_q("style"))
            style.text = stylesheet
            prefix.append(style)
        if background and background.lower() not in {"none", "transparent"}:
            prefix.append(
                ET.Element(
                    _q("rect"),
                    {
                        "x": fmt(bbox.x1),
                        "y": fmt(bbox.y1),
                        "width": fmt(bbox.width),
                        "height": fmt(bbox.height),
                        "fill": background,
                    },
                )
            )
        for idx, element in enumerate(prefix):
            svg_root.insert(idx, element)
        return _pretty_xml(svg_root)

    def _attach(self, parent: Optional[ET.Element], element: ET.Element) -> ET.Element:
        if parent is not None:
            parent.append(element)
        return element


def points_to_path_d(points: List[Point]) -> str:
    if not points:
        return ""
    parts = [f"M {fmt(points[0][0])},{fmt(points[0][1])}"]
    for x, y in points[1:]:
        parts.append(f"L {fmt(x)},{fmt(y)}")
    return " ".join(parts)


def _pretty_xml(element: ET.Element) -> str:
    ET.indent(element, space="  ")
    return ET.tostring(element, encoding="unicode")


def fmt(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")


__all__ = ["DrawingSink", "SVG_NS", "points_to_path_d", "fmt"]
