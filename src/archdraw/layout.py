"""Bridge between the diagram model and graph layout engines."""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .config import RenderConfig
from .errors import LayoutFailure
from .measure import TextConstraints, TextMeasurer, default_measurer
from .model import BoundingBox, DiagramModel, Direction, Point

LOGGER = logging.getLogger(__name__)

PX_PER_INCH = 96.0
PLACEHOLDER_PREFIX = "__archdraw_group_"


@dataclass
class GraphNodeSpec:
    node_id: str
    width: float
    height: float
    parent: Optional[str] = None
    placeholder: bool = False


@dataclass
class GraphEdgeSpec:
    edge_id: str
    source: str
    source_dir: Direction
    target: str
    target_dir: Direction


@dataclass
class GraphClusterSpec:
    group_id: str
    parent: Optional[str] = None


@dataclass
class GraphSpec:
    """Engine-facing description of one diagram."""

    nodes: List[GraphNodeSpec] = field(default_factory=list)
    edges: List[GraphEdgeSpec] = field(default_factory=list)
    clusters: List[GraphClusterSpec] = field(default_factory=list)
    direction: str = "LR"
    node_gap: float = 30.0
    rank_gap: float = 50.0
    cluster_margin: float = 0.0
    routing: str = "polyline"


@dataclass
class EngineLayout:
    node_positions: Dict[str, Point]
    edge_points: Dict[str, List[Point]]


@dataclass(frozen=True)
class EdgeRoute:
    edge_id: str
    points: Tuple[Point, ...]

    @property
    def start(self) -> Point:
        return self.points[0]

    @property
    def end(self) -> Point:
        return self.points[-1]

    @property
    def midpoints(self) -> Tuple[Point, ...]:
        return self.points[1:-1]


@dataclass
class LayoutResult:
    node_boxes: Dict[str, BoundingBox]
    group_boxes: Dict[str, BoundingBox]
    edge_routes: Dict[str, EdgeRoute]
    group_padding: float

    def padded_group_box(self, group_id: str) -> BoundingBox:
        return self.group_boxes[group_id].expand(self.group_padding)


class LayoutEngine(ABC):
    """Assigns top-left positions to nodes and through-points to edges."""

    name = "abstract"

    @abstractmethod
    def compute_layout(self, spec: GraphSpec) -> EngineLayout:
        raise NotImplementedError


def size_nodes(
    model: DiagramModel, config: RenderConfig, measurer: Optional[TextMeasurer] = None
) -> None:
    """Give every node its pre-layout footprint.

    Untitled nodes get the ``iconSize`` square without measuring anything;
    titled nodes grow to fit the label wrapped at the configured label width.
    """
    measurer = measurer or default_measurer()
    icon_size = config.icon_size
    constraints = TextConstraints(
        font_size=config.font_size,
        font_family=config.font_family,
        font_path=config.font_path,
        max_width=config.label_width,
    )
    for node in model.iter_nodes():
        width, height = icon_size, icon_size
        if node.title:
            label = measurer.measure(node.title, constraints)
            width = max(width, label.width)
            height += label.height
        model.set_size(node.id, width, height)
        LOGGER.debug("sized node %s to %.1fx%.1f", node.id, width, height)


def build_graph_spec(model: DiagramModel, config: RenderConfig) -> GraphSpec:
    taken: Set[str] = {node.id for node in model.iter_nodes()}
    taken.update(group.id for group in model.iter_groups())
    spec = GraphSpec(
        direction=config.direction,
        node_gap=config.node_gap,
        rank_gap=config.rank_gap,
        cluster_margin=config.half_icon_size + config.node_gap / 2.0,
        routing=config.edge_routing,
    )
    for group in model.iter_groups():
        spec.clusters.append(GraphClusterSpec(group_id=group.id, parent=group.parent))
    for node in model.iter_nodes():
        spec.nodes.append(
            GraphNodeSpec(
                node_id=node.id,
                width=max(node.width, config.icon_size),
                height=max(node.height, config.icon_size),
                parent=node.parent,
            )
        )
    for group in model.iter_groups():
        if model.children(group.id):
            continue
        spec.nodes.append(
            GraphNodeSpec(
                node_id=_reserve_unique_id(taken, PLACEHOLDER_PREFIX + group.id),
                width=config.icon_size,
                height=config.icon_size,
                parent=group.id,
                placeholder=True,
            )
        )
    for edge in model.iter_edges():
        if edge.is_self_loop:
            LOGGER.debug("edge %s connects %s to itself; no route requested", edge.id, edge.source)
            continue
        spec.edges.append(
            GraphEdgeSpec(
                edge_id=edge.id,
                source=edge.source,
                source_dir=edge.source_dir,
                target=edge.target,
                target_dir=edge.target_dir,
            )
        )
    return spec


def create_engine(config: RenderConfig) -> LayoutEngine:
    if config.layout_engine == "layered":
        return LayeredLayoutEngine()
    dot_path = shutil.which("dot")
    if dot_path:
        return GraphvizLayoutEngine(dot_path=dot_path, timeout=config.layout_timeout)
    if config.layout_engine == "graphviz":
        raise LayoutFailure('layoutEngine="graphviz" requires Graphviz ("dot" executable not found)')
    return LayeredLayoutEngine()


def layout(
    model: DiagramModel, config: RenderConfig, engine: Optional[LayoutEngine] = None
) -> LayoutResult:
    """Freeze ``model``, run the layout engine and write positions back."""
    model.freeze()
    spec = build_graph_spec(model, config)
    cluster_ids = {cluster.group_id for cluster in spec.clusters}
    for node_spec in spec.nodes:
        if node_spec.parent is not None and node_spec.parent not in cluster_ids:
            raise LayoutFailure(
                f'node "{node_spec.node_id}" references unknown parent group "{node_spec.parent}"'
            )

    engine = engine or create_engine(config)
    LOGGER.debug(
        "running %s layout: %d nodes, %d edges, %d groups",
        engine.name,
        len(spec.nodes),
        len(spec.edges),
        len(spec.clusters),
    )
    computed = engine.compute_layout(spec)

    node_boxes: Dict[str, BoundingBox] = {}
    for node_spec in spec.nodes:
        position = computed.node_positions.get(node_spec.node_id)
        if position is None:
            raise LayoutFailure(f'layout engine could not place node "{node_spec.node_id}"')
        x, y = position
        box = BoundingBox.from_size(x, y, node_spec.width, node_spec.height)
        if node_spec.placeholder:
            cx, cy = box.center
            model.set_position(node_spec.parent, cx, cy)
            continue
        model.set_position(node_spec.node_id, x, y)
        node_boxes[node_spec.node_id] = box

    padding = config.half_icon_size
    group_boxes: Dict[str, BoundingBox] = {}
    for group in model.iter_groups():
        group_boxes[group.id] = model.get_bounding_box(group.id, padding)
        if model.children(group.id):
            model.set_position(group.id, group_boxes[group.id].x1, group_boxes[group.id].y1)

    edge_routes: Dict[str, EdgeRoute] = {}
    for edge_spec in spec.edges:
        points = computed.edge_points.get(edge_spec.edge_id)
        if not points:
            continue
        edge_routes[edge_spec.edge_id] = EdgeRoute(edge_id=edge_spec.edge_id, points=tuple(points))

    return LayoutResult(
        node_boxes=node_boxes,
        group_boxes=group_boxes,
        edge_routes=edge_routes,
        group_padding=padding,
    )


class GraphvizLayoutEngine(LayoutEngine):
    """Runs Graphviz ``dot`` and reads back its plain-text layout."""

    name = "graphviz"

    def __init__(self, dot_path: Optional[str] = None, *, timeout: float = 5.0) -> None:
        self.dot_path = dot_path
        self.timeout = timeout

    def compute_layout(self, spec: GraphSpec) -> EngineLayout:
        dot_path = self.dot_path or shutil.which("dot")
        if not dot_path:
            raise LayoutFailure('Graphviz "dot" executable not found')
        dot_text = build_graphviz_dot(spec)
        try:
            proc = subprocess.run(
                [dot_path, "-Kdot", "-Tplain"],
                input=dot_text,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise LayoutFailure(f"graph layout timed out after {self.timeout:g}s") from exc
        except OSError as exc:
            raise LayoutFailure(f"failed to execute Graphviz: {exc}") from exc
        if proc.returncode != 0:
            detail = (proc.stderr or "").strip()
            if len(detail) > 240:
                detail = detail[:240] + "..."
            raise LayoutFailure(f"Graphviz failed: {detail or 'unknown error'}")
        return parse_graphviz_plain(proc.stdout, spec)


def build_graphviz_dot(spec: GraphSpec) -> str:
    nodesep_in = max(0.02, spec.node_gap / PX_PER_INCH)
    ranksep_in = max(0.02, spec.rank_gap / PX_PER_INCH)
    cluster_margin_pt = spec.cluster_margin * 72.0 / PX_PER_INCH
    lines: List[str] = ["digraph G {"]
    lines.append(
        f'  graph [rankdir="{spec.direction}", splines="{spec.routing}", '
        f'nodesep="{nodesep_in:.4f}", ranksep="{ranksep_in:.4f}"];'
    )
    lines.append('  node [shape="box", fixedsize="true", margin="0", label=""];')

    members: Dict[Optional[str], List[GraphNodeSpec]] = {}
    for node in spec.nodes:
        members.setdefault(node.parent, []).append(node)
    subclusters: Dict[Optional[str], List[GraphClusterSpec]] = {}
    for cluster in spec.clusters:
        subclusters.setdefault(cluster.parent, []).append(cluster)

    def _emit(parent: Optional[str], indent: str) -> None:
        for node in members.get(parent, []):
            width_in = max(0.01, node.width / PX_PER_INCH)
            height_in = max(0.01, node.height / PX_PER_INCH)
            style = ', style="invis"' if node.placeholder else ""
            lines.append(
                f'{indent}{_dot_quote(node.node_id)} [width="{width_in:.4f}", height="{height_in:.4f}"{style}];'
            )
        for cluster in subclusters.get(parent, []):
            lines.append(f"{indent}subgraph {_dot_quote('cluster_' + cluster.group_id)} {{")
            lines.append(f'{indent}  graph [margin="{cluster_margin_pt:.2f}", label=""];')
            _emit(cluster.group_id, indent + "  ")
            lines.append(f"{indent}}}")

    _emit(None, "  ")
    for edge in spec.edges:
        tail = f"{_dot_quote(edge.source)}:{edge.source_dir.compass}"
        head = f"{_dot_quote(edge.target)}:{edge.target_dir.compass}"
        lines.append(f"  {tail} -> {head};")
    lines.append("}")
    return "\n".join(lines)


def _dot_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_graphviz_plain(plain_text: str, spec: GraphSpec) -> EngineLayout:
    lines = [ln.strip() for ln in plain_text.splitlines() if ln.strip()]
    if not lines or not lines[0].startswith("graph "):
        raise LayoutFailure("unexpected Graphviz plain output: missing graph header")
    header = shlex.split(lines[0])
    if len(header) < 4:
        raise LayoutFailure("unexpected Graphviz plain output: malformed graph header")
    try:
        graph_height_in = float(header[3])
    except ValueError as exc:
        raise LayoutFailure("unexpected Graphviz plain output: invalid graph dimensions") from exc

    pending: Dict[Tuple[str, str], Deque[str]] = {}
    for edge in spec.edges:
        pending.setdefault((edge.source, edge.target), deque()).append(edge.edge_id)

    centers: Dict[str, Tuple[float, float, float, float]] = {}
    edge_points: Dict[str, List[Point]] = {}
    for line in lines[1:]:
        if line == "stop":
            break
        parts = shlex.split(line)
        if not parts:
            continue
        kind = parts[0]
        if kind == "node":
            if len(parts) < 6:
                raise LayoutFailure("unexpected Graphviz plain output: malformed node line")
            try:
                centers[parts[1]] = (
                    float(parts[2]),
                    float(parts[3]),
                    float(parts[4]),
                    float(parts[5]),
                )
            except ValueError as exc:
                raise LayoutFailure(
                    f'unexpected Graphviz plain output: invalid numeric node data for "{parts[1]}"'
                ) from exc
        elif kind == "edge":
            if len(parts) < 4:
                raise LayoutFailure("unexpected Graphviz plain output: malformed edge line")
            try:
                count = int(parts[3])
                coords = [float(value) for value in parts[4 : 4 + 2 * count]]
            except ValueError as exc:
                raise LayoutFailure("unexpected Graphviz plain output: invalid edge point data") from exc
            if len(coords) < 2 * count:
                raise LayoutFailure("unexpected Graphviz plain output: truncated edge points")
            queue = pending.get((parts[1], parts[2]))
            if not queue:
                continue
            points: List[Point] = []
            for i in range(0, len(coords), 2):
                point = (coords[i] * PX_PER_INCH, (graph_height_in - coords[i + 1]) * PX_PER_INCH)
                if not points or points[-1] != point:
                    points.append(point)
            edge_points[queue.popleft()] = points

    positions: Dict[str, Point] = {}
    for node in spec.nodes:
        if node.node_id not in centers:
            raise LayoutFailure(f'Graphviz output missing node "{node.node_id}"')
        x_in, y_in, w_in, h_in = centers[node.node_id]
        cx = x_in * PX_PER_INCH
        cy = (graph_height_in - y_in) * PX_PER_INCH
        positions[node.node_id] = (cx - w_in * PX_PER_INCH / 2.0, cy - h_in * PX_PER_INCH / 2.0)

    return EngineLayout(node_positions=positions, edge_points=edge_points)


class LayeredLayoutEngine(LayoutEngine):
    """Dependency-free layered placement used when Graphviz is absent."""

    name = "layered"

    def compute_layout(self, spec: GraphSpec) -> EngineLayout:
        positions = _layered_positions(spec)
        size_by_id = {node.node_id: (node.width, node.height) for node in spec.nodes}
        edge_points: Dict[str, List[Point]] = {}
        for edge in spec.edges:
            source_box = BoundingBox.from_size(*positions[edge.source], *size_by_id[edge.source])
            target_box = BoundingBox.from_size(*positions[edge.target], *size_by_id[edge.target])
            edge_points[edge.edge_id] = _route_between(
                source_box, edge.source_dir, target_box, edge.target_dir
            )
        return EngineLayout(node_positions=positions, edge_points=edge_points)


def side_point(box: BoundingBox, direction: Direction) -> Point:
    cx, cy = box.center
    if direction is Direction.LEFT:
        return box.x1, cy
    if direction is Direction.RIGHT:
        return box.x2, cy
    if direction is Direction.UP:
        return cx, box.y1
    return cx, box.y2


def _route_between(
    source_box: BoundingBox,
    source_dir: Direction,
    target_box: BoundingBox,
    target_dir: Direction,
) -> List[Point]:
    start = side_point(source_box, source_dir)
    end = side_point(target_box, target_dir)
    if source_dir.horizontal and not target_dir.horizontal:
        mid = (end[0], start[1])
    elif not source_dir.horizontal and target_dir.horizontal:
        mid = (start[0], end[1])
    else:
        mid = ((start[0] + end[0]) / 2.0, (start[1] + end[1]) / 2.0)
    return [start, mid, end]


def _cluster_paths(spec: GraphSpec) -> Dict[str, Tuple[int, ...]]:
    parent_of = {cluster.group_id: cluster.parent for cluster in spec.clusters}
    index_of = {cluster.group_id: idx for idx, cluster in enumerate(spec.clusters)}
    paths: Dict[str, Tuple[int, ...]] = {}
    for node in spec.nodes:
        chain: List[int] = []
        current = node.parent
        while current is not None:
            chain.append(index_of[current])
            current = parent_of[current]
        paths[node.node_id] = tuple(reversed(chain))
    return paths


def _layered_positions(spec: GraphSpec) -> Dict[str, Point]:
    node_order = [node.node_id for node in spec.nodes]
    order_index = {node_id: idx for idx, node_id in enumerate(node_order)}
    size_by_id = {node.node_id: (node.width, node.height) for node in spec.nodes}
    parent_of_node = {node.node_id: node.parent for node in spec.nodes}
    paths = _cluster_paths(spec)
    edges: Sequence[GraphEdgeSpec] = spec.edges

    outgoing: Dict[str, List[int]] = {node_id: [] for node_id in node_order}
    for idx, edge in enumerate(edges):
        outgoing[edge.source].append(idx)

    # iterative DFS; long service chains must not hit the recursion limit
    reversed_edges: Set[int] = set()
    state: Dict[str, int] = {node_id: 0 for node_id in node_order}
    for root in node_order:
        if state[root] != 0:
            continue
        state[root] = 1
        stack: List[Tuple[str, Iterator[int]]] = [(root, iter(outgoing[root]))]
        while stack:
            node_id, pending = stack[-1]
            edge_idx = next(pending, None)
            if edge_idx is None:
                state[node_id] = 2
                stack.pop()
                continue
            target = edges[edge_idx].target
            if state[target] == 0:
                state[target] = 1
                stack.append((target, iter(outgoing[target])))
            elif state[target] == 1:
                reversed_edges.add(edge_idx)

    dag_edges: List[Tuple[str, str]] = []
    dag_outgoing: Dict[str, List[str]] = {node_id: [] for node_id in node_order}
    indegree: Dict[str, int] = {node_id: 0 for node_id in node_order}
    for idx, edge in enumerate(edges):
        if idx in reversed_edges:
            u, v = edge.target, edge.source
        else:
            u, v = edge.source, edge.target
        dag_edges.append((u, v))
        dag_outgoing[u].append(v)
        indegree[v] += 1

    queue: List[str] = [node_id for node_id in node_order if indegree[node_id] == 0]
    topo: List[str] = []
    cursor = 0
    while cursor < len(queue):
        u = queue[cursor]
        cursor += 1
        topo.append(u)
        for v in dag_outgoing[u]:
            indegree[v] -= 1
            if indegree[v] == 0:
                queue.append(v)
    if len(topo) != len(node_order):
        topo = node_order[:]

    rank: Dict[str, int] = {node_id: 0 for node_id in node_order}
    for u in topo:
        for v in dag_outgoing[u]:
            if rank[v] < rank[u] + 1:
                rank[v] = rank[u] + 1

    rank_to_nodes: Dict[int, List[str]] = {}
    for node_id in node_order:
        rank_to_nodes.setdefault(rank[node_id], []).append(node_id)

    max_rank = max(rank_to_nodes.keys(), default=0)
    rank_to_nodes[0] = sorted(
        rank_to_nodes.get(0, []), key=lambda node_id: (paths[node_id], order_index[node_id])
    )
    for r in range(1, max_rank + 1):
        current_nodes = rank_to_nodes.get(r, [])
        if not current_nodes:
            continue
        prev_order_pos: Dict[str, int] = {}
        for pr in range(0, r):
            for idx, node_id in enumerate(rank_to_nodes.get(pr, [])):
                prev_order_pos.setdefault(node_id, idx)
        incoming_positions: Dict[str, float] = {}
        for node_id in current_nodes:
            preds = [u for (u, v) in dag_edges if v == node_id and rank[u] < r]
            if not preds:
                incoming_positions[node_id] = float("inf")
                continue
            pred_positions = sorted(prev_order_pos.get(p, order_index[p]) for p in preds)
            mid = len(pred_positions) // 2
            if len(pred_positions) % 2 == 1:
                median = float(pred_positions[mid])
            else:
                median = 0.5 * (pred_positions[mid - 1] + pred_positions[mid])
            incoming_positions[node_id] = median
        rank_to_nodes[r] = sorted(
            current_nodes,
            key=lambda node_id: (paths[node_id], incoming_positions[node_id], order_index[node_id]),
        )

    horizontal_ranks = spec.direction in {"LR", "RL"}

    def _cross_size(node_id: str) -> float:
        width, height = size_by_id[node_id]
        return height if horizontal_ranks else width

    def _main_size(node_id: str) -> float:
        width, height = size_by_id[node_id]
        return width if horizontal_ranks else height

    # Each group owns one cross-axis band across all ranks: direct members
    # first, then subgroup bands, inside the cluster margin. Bands are disjoint.
    subgroups: Dict[Optional[str], List[str]] = {}
    for cluster in spec.clusters:
        subgroups.setdefault(cluster.parent, []).append(cluster.group_id)
    direct_members: Dict[Optional[str], Dict[int, List[str]]] = {}
    for r in range(0, max_rank + 1):
        for node_id in rank_to_nodes.get(r, []):
            direct_members.setdefault(parent_of_node[node_id], {}).setdefault(r, []).append(node_id)

    cross_offsets: Dict[str, float] = {}

    def _place_band(group_id: Optional[str], start: float) -> float:
        cursor = start if group_id is None else start + spec.cluster_margin
        by_rank = direct_members.get(group_id, {})
        region = 0.0
        for members in by_rank.values():
            offset = cursor
            for idx, node_id in enumerate(members):
                if idx > 0:
                    offset += spec.node_gap
                cross_offsets[node_id] = offset
                offset += _cross_size(node_id)
            region = max(region, offset - cursor)
        cursor += region
        for idx, child in enumerate(subgroups.get(group_id, [])):
            if by_rank or idx > 0:
                cursor += spec.node_gap
            cursor = _place_band(child, cursor)
        if group_id is not None:
            cursor += spec.cluster_margin
        return cursor

    _place_band(None, 0.0)

    main_size_by_rank = {
        r: max((_main_size(n) for n in rank_to_nodes.get(r, [])), default=0.0)
        for r in range(0, max_rank + 1)
    }
    depth_by_rank = {
        r: max((len(paths[n]) for n in rank_to_nodes.get(r, [])), default=0)
        for r in range(0, max_rank + 1)
    }
    rank_main_origin: Dict[int, float] = {}
    cursor_main = depth_by_rank.get(0, 0) * spec.cluster_margin
    for r in range(0, max_rank + 1):
        rank_main_origin[r] = cursor_main
        gap = spec.rank_gap
        if r < max_rank:
            gap += (depth_by_rank[r] + depth_by_rank[r + 1]) * spec.cluster_margin
        cursor_main += main_size_by_rank.get(r, 0.0) + gap

    positions: Dict[str, Point] = {}
    for r in range(0, max_rank + 1):
        for node_id in rank_to_nodes.get(r, []):
            width, height = size_by_id[node_id]
            cross = cross_offsets[node_id]
            main = rank_main_origin[r]
            if spec.direction == "TB":
                positions[node_id] = (cross, main)
            elif spec.direction == "BT":
                positions[node_id] = (cross, -(main + height))
            elif spec.direction == "LR":
                positions[node_id] = (main, cross)
            else:
                positions[node_id] = (-(main + width), cross)
    return positions


def _reserve_unique_id(existing: Set[str], base: str) -> str:
    if base not in existing:
        existing.add(base)
        return base
    idx = 1
    while True:
        candidate = f"{base}-{idx}"
        if candidate not in existing:
            existing.add(candidate)
            return candidate
        idx += 1


__all__ = [
    "GraphNodeSpec",
    "GraphEdgeSpec",
    "GraphClusterSpec",
    "GraphSpec",
    "EngineLayout",
    "EdgeRoute",
    "LayoutResult",
    "LayoutEngine",
    "GraphvizLayoutEngine",
    "LayeredLayoutEngine",
    "size_nodes",
    "build_graph_spec",
    "create_engine",
    "layout",
    "build_graphviz_dot",
    "parse_graphviz_plain",
    "side_point",
]
