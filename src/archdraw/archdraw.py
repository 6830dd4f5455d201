"""Diagram document -> laid-out SVG pipeline."""
from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import RenderConfig
from .draw import DrawEngine
from .errors import ArchdrawError, DocumentError
from .icons import IconRegistry, default_icons
from .layout import LayoutEngine, LayoutResult, layout, size_nodes
from .measure import TextMeasurer
from .model import DiagramModel
from .resources import load_stylesheet
from .sink import DrawingSink

ConfigLike = Union[RenderConfig, Mapping[str, Any]]

SVG_ROOT_ATTRS = {
    "class": "architecture",
    "role": "graphics-document document",
    "aria-roledescription": "architecture",
}


@dataclass
class RenderResult:
    model: DiagramModel
    layout: LayoutResult
    sink: DrawingSink
    config: RenderConfig
    warnings: List[str] = field(default_factory=list)
    skipped_edges: List[str] = field(default_factory=list)

    @property
    def registry(self) -> Mapping[str, ET.Element]:
        return self.sink.registry

    def to_svg(self) -> str:
        return self.sink.to_svg(
            padding=self.config.padding,
            background=self.config.background,
            stylesheet=load_stylesheet(),
            attrs=SVG_ROOT_ATTRS,
        )


def coerce_config(config: ConfigLike) -> RenderConfig:
    if isinstance(config, RenderConfig):
        return config
    return RenderConfig.from_mapping(config)


def render_diagram(
    model: DiagramModel,
    config: ConfigLike,
    *,
    icons: Optional[IconRegistry] = None,
    engine: Optional[LayoutEngine] = None,
    measurer: Optional[TextMeasurer] = None,
) -> RenderResult:
    """Size, lay out and draw ``model``.

    Model, configuration and layout errors propagate unchanged; nothing is
    drawn unless layout succeeded for the whole diagram.
    """
    render_config = coerce_config(config)
    icons = icons if icons is not None else default_icons()
    size_nodes(model, render_config, measurer)
    layout_result = layout(model, render_config, engine)
    sink = DrawingSink()
    report = DrawEngine(render_config, icons, measurer).draw(model, layout_result, sink)
    return RenderResult(
        model=model,
        layout=layout_result,
        sink=sink,
        config=render_config,
        warnings=report.warnings,
        skipped_edges=report.skipped_edges,
    )


def parse_document(source: str) -> Dict[str, Any]:
    try:
        document = json.loads(source)
    except json.JSONDecodeError as exc:
        raise DocumentError(
            f"Failed to parse diagram document at line {exc.lineno}, column {exc.colno}: {exc.msg}"
        ) from exc
    if not isinstance(document, dict):
        raise DocumentError("diagram document must be a JSON object")
    return document


def load_model(document: Mapping[str, Any]) -> DiagramModel:
    """Build a model from parser output: groups, then services, then edges."""
    model = DiagramModel()
    for entry in _entries(document, "groups"):
        model.add_group(
            _required(entry, "id", "groups"),
            title=_optional(entry, "title", "groups"),
            parent=_optional(entry, "in", "groups"),
        )
    for entry in _entries(document, "services"):
        model.add_node(
            _required(entry, "id", "services"),
            title=_optional(entry, "title", "services"),
            icon=_optional(entry, "icon", "services"),
            parent=_optional(entry, "in", "services"),
        )
    for idx, entry in enumerate(_entries(document, "edges")):
        source = _required(entry, "source", "edges")
        target = _required(entry, "target", "edges")
        edge_id = _optional(entry, "id", "edges") or f"L_{source}_{target}_{idx}"
        try:
            model.add_edge(
                edge_id,
                source,
                entry.get("sourceDir", "right"),
                target,
                entry.get("targetDir", "left"),
            )
        except ArchdrawError:
            raise
        except ValueError as exc:
            raise DocumentError(f'edge "{edge_id}": {exc}') from exc
    return model


def archdraw(
    source: str,
    options: Optional[Mapping[str, Any]] = None,
    *,
    defaults: Optional[Mapping[str, Any]] = None,
    icons: Optional[IconRegistry] = None,
    engine: Optional[LayoutEngine] = None,
) -> str:
    """Compile a JSON diagram document to SVG text.

    Options are merged as ``defaults``, then the document's own ``config``
    object, then ``options``.
    """
    document = parse_document(source)
    merged: Dict[str, Any] = dict(defaults or {})
    embedded = document.get("config")
    if embedded is None:
        embedded = {}
    if not isinstance(embedded, dict):
        raise DocumentError('"config" must be a JSON object')
    merged.update(embedded)
    merged.update(options or {})
    model = load_model(document)
    result = render_diagram(model, merged, icons=icons, engine=engine)
    return result.to_svg()


def _entries(document: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    raw = document.get(key) or []
    if not isinstance(raw, list):
        raise DocumentError(f'"{key}" must be a JSON array')
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise DocumentError(f'"{key}[{idx}]" must be a JSON object')
    return raw


def _required(entry: Mapping[str, Any], attr: str, section: str) -> str:
    value = _optional(entry, attr, section)
    if not value:
        raise DocumentError(f'{section} entry requires non-empty "{attr}"')
    return value


def _optional(entry: Mapping[str, Any], attr: str, section: str) -> Optional[str]:
    value = entry.get(attr)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentError(f'{section} entry attribute "{attr}" must be a string (got {value!r})')
    return value.strip() or None


__all__ = [
    "RenderResult",
    "render_diagram",
    "load_model",
    "parse_document",
    "archdraw",
    "coerce_config",
]
