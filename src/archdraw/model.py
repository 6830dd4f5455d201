"""In-memory diagram model: services, groups and directional edges."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import DuplicateId, ModelFrozen, UnknownEntity

Point = Tuple[float, float]


@dataclass(frozen=True)
class BoundingBox:
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_size(cls, x: float, y: float, width: float, height: float) -> "BoundingBox":
        return cls(x, y, x + width, y + height)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> Point:
        return (self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0

    def expand(self, amount: float) -> "BoundingBox":
        return BoundingBox(self.x1 - amount, self.y1 - amount, self.x2 + amount, self.y2 + amount)

    def translate(self, dx: float, dy: float) -> "BoundingBox":
        return BoundingBox(self.x1 + dx, self.y1 + dy, self.x2 + dx, self.y2 + dy)

    def union(self, other: Optional["BoundingBox"]) -> "BoundingBox":
        if other is None:
            return self
        return BoundingBox(
            min(self.x1, other.x1),
            min(self.y1, other.y1),
            max(self.x2, other.x2),
            max(self.y2, other.y2),
        )

    def contains(self, other: "BoundingBox", *, strict: bool = False) -> bool:
        if strict:
            return (
                self.x1 < other.x1
                and self.y1 < other.y1
                and self.x2 > other.x2
                and self.y2 > other.y2
            )
        return (
            self.x1 <= other.x1
            and self.y1 <= other.y1
            and self.x2 >= other.x2
            and self.y2 >= other.y2
        )


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def parse(cls, value: Union[str, "Direction"]) -> "Direction":
        if isinstance(value, Direction):
            return value
        key = str(value).strip().lower()
        if key in _DIRECTION_ALIASES:
            return _DIRECTION_ALIASES[key]
        raise ValueError(f"invalid direction {value!r} (expected up, down, left or right)")

    @property
    def compass(self) -> str:
        return _COMPASS[self]

    @property
    def horizontal(self) -> bool:
        return self in (Direction.LEFT, Direction.RIGHT)


_DIRECTION_ALIASES = {
    "up": Direction.UP,
    "t": Direction.UP,
    "top": Direction.UP,
    "down": Direction.DOWN,
    "b": Direction.DOWN,
    "bottom": Direction.DOWN,
    "left": Direction.LEFT,
    "l": Direction.LEFT,
    "right": Direction.RIGHT,
    "r": Direction.RIGHT,
}

_COMPASS = {
    Direction.UP: "n",
    Direction.DOWN: "s",
    Direction.LEFT: "w",
    Direction.RIGHT: "e",
}


class EntityKind(str, Enum):
    NODE = "node"
    GROUP = "group"


@dataclass
class Node:
    id: str
    title: Optional[str] = None
    icon: Optional[str] = None
    parent: Optional[str] = None
    width: float = 0.0
    height: float = 0.0
    x: float = 0.0
    y: float = 0.0
    kind: EntityKind = field(default=EntityKind.NODE, init=False)

    @property
    def box(self) -> BoundingBox:
        return BoundingBox.from_size(self.x, self.y, self.width, self.height)


@dataclass
class Group:
    id: str
    title: Optional[str] = None
    parent: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    kind: EntityKind = field(default=EntityKind.GROUP, init=False)


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    source_dir: Direction
    target: str
    target_dir: Direction

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


Entity = Union[Node, Group]


class DiagramModel:
    """Append-only registry of the entities of one diagram.

    Nodes, groups and edges share a single id namespace because every drawn
    entity is later looked up by id in the element side table.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, Node] = {}
        self._groups: Dict[str, Group] = {}
        self._edges: Dict[str, Edge] = {}
        self._entities: List[Entity] = []
        self._children: Dict[str, List[Entity]] = {}
        self._elements: Dict[str, Any] = {}
        self._frozen = False

    # construction

    def add_node(
        self,
        node_id: str,
        title: Optional[str] = None,
        icon: Optional[str] = None,
        parent: Optional[str] = None,
    ) -> Node:
        self._check_new_id(node_id)
        if parent is not None:
            self.get_group(parent)
        node = Node(id=node_id, title=title, icon=icon, parent=parent)
        self._nodes[node_id] = node
        self._attach(node)
        return node

    def add_group(
        self,
        group_id: str,
        title: Optional[str] = None,
        parent: Optional[str] = None,
    ) -> Group:
        self._check_new_id(group_id)
        if parent is not None:
            self.get_group(parent)
        group = Group(id=group_id, title=title, parent=parent)
        self._groups[group_id] = group
        self._children[group_id] = []
        self._attach(group)
        return group

    def add_edge(
        self,
        edge_id: str,
        source: str,
        source_dir: Union[str, Direction],
        target: str,
        target_dir: Union[str, Direction],
    ) -> Edge:
        self._check_new_id(edge_id)
        for endpoint in (source, target):
            if endpoint not in self._nodes:
                raise UnknownEntity(
                    endpoint, f'edge "{edge_id}" references unknown node id "{endpoint}"'
                )
        edge = Edge(
            id=edge_id,
            source=source,
            source_dir=Direction.parse(source_dir),
            target=target,
            target_dir=Direction.parse(target_dir),
        )
        self._edges[edge_id] = edge
        return edge

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # computed geometry

    def set_size(self, node_id: str, width: float, height: float) -> None:
        if width < 0 or height < 0:
            raise ValueError(f'size of "{node_id}" must be non-negative (got {width}x{height})')
        node = self.get_node(node_id)
        node.width = float(width)
        node.height = float(height)

    def set_position(self, entity_id: str, x: float, y: float) -> None:
        entity = self.get_entity(entity_id)
        entity.x = float(x)
        entity.y = float(y)

    def get_bounding_box(self, group_id: str, padding: float = 0.0) -> BoundingBox:
        group = self.get_group(group_id)
        bbox: Optional[BoundingBox] = None
        for child in self._children[group_id]:
            if child.kind is EntityKind.NODE:
                child_box = child.box
            else:
                child_box = self.get_bounding_box(child.id, padding).expand(padding)
            bbox = child_box.union(bbox)
        if bbox is None:
            return BoundingBox(group.x, group.y, group.x, group.y)
        return bbox

    # lookup

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownEntity(node_id, f'unknown node id "{node_id}"') from None

    def get_group(self, group_id: str) -> Group:
        try:
            return self._groups[group_id]
        except KeyError:
            raise UnknownEntity(group_id, f'unknown group id "{group_id}"') from None

    def get_edge(self, edge_id: str) -> Edge:
        try:
            return self._edges[edge_id]
        except KeyError:
            raise UnknownEntity(edge_id, f'unknown edge id "{edge_id}"') from None

    def get_entity(self, entity_id: str) -> Entity:
        if entity_id in self._nodes:
            return self._nodes[entity_id]
        if entity_id in self._groups:
            return self._groups[entity_id]
        raise UnknownEntity(entity_id)

    def children(self, group_id: str) -> List[Entity]:
        self.get_group(group_id)
        return list(self._children[group_id])

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._nodes or entity_id in self._groups or entity_id in self._edges

    # traversal, insertion ordered

    def iter_nodes(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def iter_groups(self) -> Iterator[Group]:
        return iter(list(self._groups.values()))

    def iter_edges(self) -> Iterator[Edge]:
        return iter(list(self._edges.values()))

    def iter_entities(self) -> Iterator[Entity]:
        return iter(list(self._entities))

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def group_count(self) -> int:
        return len(self._groups)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    # id -> drawing handle side table

    def set_element_for_id(self, entity_id: str, element: Any) -> None:
        if entity_id not in self:
            raise UnknownEntity(entity_id)
        self._elements[entity_id] = element

    def get_element_for_id(self, entity_id: str) -> Any:
        try:
            return self._elements[entity_id]
        except KeyError:
            raise UnknownEntity(entity_id, f'no drawing registered for "{entity_id}"') from None

    @property
    def elements(self) -> Mapping[str, Any]:
        return MappingProxyType(self._elements)

    def _check_new_id(self, entity_id: str) -> None:
        if self._frozen:
            raise ModelFrozen(f'cannot add "{entity_id}": diagram topology is frozen after layout')
        if not isinstance(entity_id, str) or not entity_id.strip():
            raise ValueError(f"entity id must be a non-empty string (got {entity_id!r})")
        if entity_id in self:
            raise DuplicateId(entity_id)

    def _attach(self, entity: Entity) -> None:
        self._entities.append(entity)
        if entity.parent is not None:
            self._children[entity.parent].append(entity)


__all__ = [
    "BoundingBox",
    "Direction",
    "EntityKind",
    "Node",
    "Group",
    "Edge",
    "DiagramModel",
    "Point",
]
