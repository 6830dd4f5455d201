"""Render configuration built from a flat option mapping."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigInvalid, ConfigMissing

DIRECTIONS = ("TB", "BT", "LR", "RL")
LAYOUT_ENGINES = ("auto", "graphviz", "layered")
EDGE_ROUTINGS = ("polyline", "ortho", "spline", "line")
DRAW_ORDERS = ("edges-groups-nodes", "nodes-groups-edges")


@dataclass(frozen=True)
class RenderConfig:
    icon_size: float
    label_width_factor: float = 1.5
    font_size: float = 16.0
    font_family: str = "sans-serif"
    font_path: Optional[str] = None
    padding: float = 40.0
    node_gap: float = 30.0
    rank_gap: float = 50.0
    direction: str = "LR"
    layout_engine: str = "auto"
    edge_routing: str = "polyline"
    draw_order: str = "edges-groups-nodes"
    layout_timeout: float = 5.0
    background: str = "#fff"

    @property
    def half_icon_size(self) -> float:
        return self.icon_size / 2.0

    @property
    def label_width(self) -> float:
        return self.icon_size * self.label_width_factor

    @property
    def layer_order(self) -> Tuple[str, str, str]:
        first, second, third = self.draw_order.split("-")
        return first, second, third

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "RenderConfig":
        if "iconSize" not in options or options["iconSize"] is None:
            raise ConfigMissing("iconSize")
        values: Dict[str, Any] = {
            "icon_size": _positive(options, "iconSize"),
        }
        for key, (field_name, parse) in _OPTIONAL_FIELDS.items():
            if options.get(key) is None:
                continue
            values[field_name] = parse(options, key)
        return cls(**values)


def _number(options: Mapping[str, Any], key: str) -> float:
    raw = options[key]
    if isinstance(raw, bool):
        raise ConfigInvalid(f'option "{key}" must be numeric (got {raw!r})')
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigInvalid(f'option "{key}" must be numeric (got {raw!r})') from exc
    if not math.isfinite(value):
        raise ConfigInvalid(f'option "{key}" must be a finite number (got {raw!r})')
    return value


def _positive(options: Mapping[str, Any], key: str) -> float:
    value = _number(options, key)
    if value <= 0:
        raise ConfigInvalid(f'option "{key}" must be > 0 (got {options[key]!r})')
    return value


def _nonnegative(options: Mapping[str, Any], key: str) -> float:
    value = _number(options, key)
    if value < 0:
        raise ConfigInvalid(f'option "{key}" must be >= 0 (got {options[key]!r})')
    return value


def _text(options: Mapping[str, Any], key: str) -> str:
    raw = options[key]
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigInvalid(f'option "{key}" must be a non-empty string (got {raw!r})')
    return raw.strip()


def _choice(choices: Tuple[str, ...], *, upper: bool = False) -> Callable[[Mapping[str, Any], str], str]:
    def _parse(options: Mapping[str, Any], key: str) -> str:
        value = _text(options, key)
        value = value.upper() if upper else value.lower()
        if value not in choices:
            raise ConfigInvalid(
                f'option "{key}" has invalid value {options[key]!r} (expected one of: {", ".join(choices)})'
            )
        return value

    return _parse


_OPTIONAL_FIELDS: Dict[str, Tuple[str, Callable[[Mapping[str, Any], str], Any]]] = {
    "labelWidthFactor": ("label_width_factor", _positive),
    "fontSize": ("font_size", _positive),
    "fontFamily": ("font_family", _text),
    "fontPath": ("font_path", _text),
    "padding": ("padding", _nonnegative),
    "nodeGap": ("node_gap", _nonnegative),
    "rankGap": ("rank_gap", _nonnegative),
    "direction": ("direction", _choice(DIRECTIONS, upper=True)),
    "layoutEngine": ("layout_engine", _choice(LAYOUT_ENGINES)),
    "edgeRouting": ("edge_routing", _choice(EDGE_ROUTINGS)),
    "drawOrder": ("draw_order", _choice(DRAW_ORDERS)),
    "layoutTimeout": ("layout_timeout", _positive),
    "background": ("background", _text),
}


__all__ = ["RenderConfig", "DIRECTIONS", "LAYOUT_ENGINES", "EDGE_ROUTINGS", "DRAW_ORDERS"]
