"""
Force-directed placement for the curiosity map.

A Fruchterman-Reingold style simulation: every pair of nodes repels with
``k**2 / d`` and every edge pulls its endpoints together with ``d**2 / k``,
where ``k`` is the ideal edge length for the canvas. The simulation runs a
fixed number of passes and is fully deterministic for a given input order.
"""
import logging
import math
from typing import Protocol, Sequence

from wayfinder.models.layout import LayoutConfig, Position

logger = logging.getLogger(__name__)

MIN_DISTANCE = 1.0


class LayoutNode(Protocol):
    id: str


class LayoutEdge(Protocol):
    from_node: str
    to_node: str


def _initial_positions(node_ids: list[str], config: LayoutConfig) -> dict[str, list[float]]:
    count = len(node_ids)
    radius = max(config.min_radius, count * config.radius_per_node)
    positions: dict[str, list[float]] = {}
    for index, node_id in enumerate(node_ids):
        angle = 2 * math.pi * index / count
        positions[node_id] = [radius * math.cos(angle), radius * math.sin(angle)]
    return positions


def _repel(positions: dict[str, list[float]], node_ids: list[str], k: float, strength: float) -> None:
    k_squared = k * k
    for i in range(len(node_ids)):
        first = positions[node_ids[i]]
        for j in range(i + 1, len(node_ids)):
            second = positions[node_ids[j]]
            dx = first[0] - second[0]
            dy = first[1] - second[1]
            distance = max(math.hypot(dx, dy), MIN_DISTANCE)
            step = (k_squared / distance) * strength
            fx = dx / distance * step
            fy = dy / distance * step
            first[0] += fx
            first[1] += fy
            second[0] -= fx
            second[1] -= fy


def _attract(
    positions: dict[str, list[float]],
    edges: Sequence[LayoutEdge],
    k: float,
    strength: float,
    max_pull_fraction: float,
) -> int:
    skipped = 0
    for edge in edges:
        source = positions.get(edge.from_node)
        target = positions.get(edge.to_node)
        if source is None or target is None:
            skipped += 1
            continue
        dx = source[0] - target[0]
        dy = source[1] - target[1]
        distance = max(math.hypot(dx, dy), MIN_DISTANCE)
        step = min((distance * distance / k) * strength, distance * max_pull_fraction)
        fx = dx / distance * step
        fy = dy / distance * step
        source[0] -= fx
        source[1] -= fy
        target[0] += fx
        target[1] += fy
    return skipped


def compute_layout(
    nodes: Sequence[LayoutNode],
    edges: Sequence[LayoutEdge],
    config: LayoutConfig | None = None,
) -> dict[str, Position]:
    """
    Assign a 2-D position to every node.

    Nodes need an ``id``; edges need ``from_node`` and ``to_node`` ids. Edges
    pointing at unknown ids are ignored and self-loops have no effect. The
    result maps each node id to a Position in unbounded canvas units; callers
    are expected to scale and center it for display.
    """
    config = config or LayoutConfig()
    if not nodes:
        return {}

    node_ids = [str(node.id) for node in nodes]
    positions = _initial_positions(node_ids, config)
    k = math.sqrt(config.canvas_area / len(node_ids))

    skipped = 0
    for _ in range(config.iterations):
        _repel(positions, node_ids, k, config.repulsion_strength)
        skipped = _attract(positions, edges, k, config.attraction_strength, config.max_pull_fraction)

    if skipped:
        logger.debug("Layout ignored %d edge(s) with unknown endpoints.", skipped)

    return {node_id: Position(x=xy[0], y=xy[1]) for node_id, xy in positions.items()}


def count_skipped_edges(nodes: Sequence[LayoutNode], edges: Sequence[LayoutEdge]) -> int:
    """Number of edges compute_layout would ignore because an endpoint is missing."""
    known = {str(node.id) for node in nodes}
    return sum(1 for edge in edges if edge.from_node not in known or edge.to_node not in known)
