"""Icon name -> drawing procedure table."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Callable, Dict, List, Mapping, Optional

from .model import BoundingBox
from .sink import DrawingSink, fmt

DrawProc = Callable[[DrawingSink, float], ET.Element]


class IconRegistry:
    """Pluggable icon table consulted by the draw engine.

    Registration has to happen before any render that references the icon;
    the registry must not change while a render is running.
    """

    def __init__(self, icons: Optional[Mapping[str, DrawProc]] = None) -> None:
        self._icons: Dict[str, DrawProc] = {}
        for name, proc in (icons or {}).items():
            self.register(name, proc)

    def register(self, name: str, proc: DrawProc) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"icon name must be a non-empty string (got {name!r})")
        if not callable(proc):
            raise TypeError(f'icon "{name}" must be registered with a callable')
        self._icons[name.strip()] = proc

    def get(self, name: str) -> Optional[DrawProc]:
        return self._icons.get(name)

    def names(self) -> List[str]:
        return sorted(self._icons)

    def __contains__(self, name: object) -> bool:
        return name in self._icons

    def __len__(self) -> int:
        return len(self._icons)


def _icon_group(sink: DrawingSink, name: str, size: float) -> ET.Element:
    g = sink.group(attrs={"class": f"architecture-icon icon-{name}"})
    sink.rect(g, 0, 0, size, size, attrs={"class": "icon-bkg", "rx": fmt(size / 16.0)})
    return g


def _circle(sink: DrawingSink, parent: ET.Element, cx: float, cy: float, r: float, cls: str) -> ET.Element:
    d = (
        f"M {fmt(cx - r)},{fmt(cy)} "
        f"a {fmt(r)},{fmt(r)} 0 1,0 {fmt(2 * r)},0 "
        f"a {fmt(r)},{fmt(r)} 0 1,0 {fmt(-2 * r)},0 Z"
    )
    return sink.path(parent, d, BoundingBox(cx - r, cy - r, cx + r, cy + r), attrs={"class": cls})


def draw_blank(sink: DrawingSink, size: float) -> ET.Element:
    g = sink.group(attrs={"class": "architecture-icon icon-blank"})
    sink.rect(g, 0, 0, size, size, attrs={"fill": "none", "stroke": "none"})
    return g


def draw_unknown(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "unknown", size)
    s = size / 80.0
    d = (
        f"M {fmt(30 * s)},{fmt(30 * s)} "
        f"q 0,{fmt(-12 * s)} {fmt(10 * s)},{fmt(-12 * s)} "
        f"q {fmt(10 * s)},0 {fmt(10 * s)},{fmt(10 * s)} "
        f"q 0,{fmt(8 * s)} {fmt(-10 * s)},{fmt(12 * s)} "
        f"v {fmt(10 * s)}"
    )
    sink.path(g, d, BoundingBox(30 * s, 18 * s, 50 * s, 50 * s), attrs={"class": "icon-stroke", "fill": "none"})
    _circle(sink, g, 40 * s, 60 * s, 3 * s, "icon-fill")
    return g


def draw_database(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "database", size)
    s = size / 80.0
    left, right, top, bottom, ry = 20 * s, 60 * s, 20 * s, 60 * s, 6 * s
    rx = (right - left) / 2.0
    body = (
        f"M {fmt(left)},{fmt(top)} "
        f"v {fmt(bottom - top)} "
        f"a {fmt(rx)},{fmt(ry)} 0 0,0 {fmt(right - left)},0 "
        f"v {fmt(top - bottom)} "
        f"a {fmt(rx)},{fmt(ry)} 0 0,0 {fmt(left - right)},0 Z"
    )
    sink.path(g, body, BoundingBox(left, top - ry, right, bottom + ry), attrs={"class": "icon-fill"})
    for level in (top, (top + bottom) / 2.0):
        rim = (
            f"M {fmt(left)},{fmt(level)} "
            f"a {fmt(rx)},{fmt(ry)} 0 0,0 {fmt(right - left)},0"
        )
        sink.path(g, rim, BoundingBox(left, level, right, level + ry), attrs={"class": "icon-stroke", "fill": "none"})
    return g


def draw_server(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "server", size)
    s = size / 80.0
    for idx in range(3):
        y = (17 + idx * 16) * s
        sink.rect(g, 18 * s, y, 44 * s, 13 * s, attrs={"class": "icon-fill", "rx": fmt(2 * s)})
        _circle(sink, g, 54 * s, y + 6.5 * s, 2 * s, "icon-light")
    return g


def draw_disk(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "disk", size)
    s = size / 80.0
    sink.rect(g, 20 * s, 15 * s, 40 * s, 50 * s, attrs={"class": "icon-fill", "rx": fmt(3 * s)})
    _circle(sink, g, 40 * s, 38 * s, 12 * s, "icon-light")
    _circle(sink, g, 40 * s, 38 * s, 3 * s, "icon-fill")
    return g


def draw_internet(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "internet", size)
    s = size / 80.0
    cx, cy, r = 40 * s, 40 * s, 22 * s
    _circle(sink, g, cx, cy, r, "icon-fill")
    meridian = (
        f"M {fmt(cx)},{fmt(cy - r)} "
        f"a {fmt(r / 2.5)},{fmt(r)} 0 1,0 0,{fmt(2 * r)} "
        f"a {fmt(r / 2.5)},{fmt(r)} 0 1,0 0,{fmt(-2 * r)}"
    )
    sink.path(g, meridian, BoundingBox(cx - r / 2.5, cy - r, cx + r / 2.5, cy + r), attrs={"class": "icon-stroke", "fill": "none"})
    equator = f"M {fmt(cx - r)},{fmt(cy)} H {fmt(cx + r)}"
    sink.path(g, equator, BoundingBox(cx - r, cy, cx + r, cy), attrs={"class": "icon-stroke"})
    return g


def draw_cloud(sink: DrawingSink, size: float) -> ET.Element:
    g = _icon_group(sink, "cloud", size)
    s = size / 80.0
    d = (
        f"M {fmt(22 * s)},{fmt(52 * s)} "
        f"a {fmt(9 * s)},{fmt(9 * s)} 0 0,1 {fmt(2 * s)},{fmt(-18 * s)} "
        f"a {fmt(13 * s)},{fmt(13 * s)} 0 0,1 {fmt(24 * s)},{fmt(-6 * s)} "
        f"a {fmt(10 * s)},{fmt(10 * s)} 0 0,1 {fmt(12 * s)},{fmt(24 * s)} Z"
    )
    sink.path(g, d, BoundingBox(13 * s, 20 * s, 66 * s, 52 * s), attrs={"class": "icon-fill"})
    return g


BUILTIN_ICONS: Dict[str, DrawProc] = {
    "blank": draw_blank,
    "cloud": draw_cloud,
    "database": draw_database,
    "disk": draw_disk,
    "internet": draw_internet,
    "server": draw_server,
    "unknown": draw_unknown,
}


def default_icons() -> IconRegistry:
    return IconRegistry(BUILTIN_ICONS)


__all__ = ["DrawProc", "IconRegistry", "BUILTIN_ICONS", "default_icons"]
