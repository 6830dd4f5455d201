"""Public API for archdraw."""
from .archdraw import RenderResult, archdraw, load_model, render_diagram
from .config import RenderConfig
from .errors import (
    ArchdrawError,
    ConfigInvalid,
    ConfigMissing,
    DocumentError,
    DuplicateId,
    LayoutFailure,
    ModelFrozen,
    UnknownEntity,
)
from .icons import IconRegistry, default_icons
from .layout import GraphvizLayoutEngine, LayeredLayoutEngine, LayoutEngine, LayoutResult, layout
from .measure import TextConstraints, measure
from .model import BoundingBox, DiagramModel, Direction, EntityKind
from .sink import DrawingSink

__all__ = [
    "archdraw",
    "render_diagram",
    "load_model",
    "RenderResult",
    "RenderConfig",
    "DiagramModel",
    "Direction",
    "EntityKind",
    "BoundingBox",
    "layout",
    "LayoutResult",
    "LayoutEngine",
    "GraphvizLayoutEngine",
    "LayeredLayoutEngine",
    "DrawingSink",
    "IconRegistry",
    "default_icons",
    "measure",
    "TextConstraints",
    "ArchdrawError",
    "UnknownEntity",
    "DuplicateId",
    "ModelFrozen",
    "LayoutFailure",
    "ConfigMissing",
    "ConfigInvalid",
    "DocumentError",
]
