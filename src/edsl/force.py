"""
Force-directed layout engine.

Nodes repel each other, edges act as springs, and a weak gravity keeps the
drawing (and each container's members) together. Directed cycles are no
problem here, which makes this the engine to use for cyclic graphs.

The simulation is seeded: the same graph, seed and iteration count always
give the same positions.
"""

import logging
import math
import random
from typing import Dict, List, Tuple

from .config import LayoutContext
from .errors import ConfigurationError
from .igr import IntermediateGraph
from .positioning import PositionCalculator

logger = logging.getLogger(__name__)

DEFAULT_REPULSION = 500000.0
DEFAULT_ATTRACTION = 0.1
DEFAULT_GRAVITY = 0.02
CONTAINER_PULL = 5.0
MIN_DISTANCE = 0.01
INITIAL_JITTER = 10.0


class ForceEngine:
    """
    Spring-electrical layout with linear cooling.

    Options (``context.options``):
        ideal_length: Rest length of edge springs (default: layer spacing).
        repulsion: Strength of the inverse-square repulsion.
        attraction: Spring constant.
        gravity: Pull towards the origin and towards container centroids.
        initial_temperature: Largest per-step displacement at the start.
    """

    name = "force"

    def supports(self, graph: IntermediateGraph) -> bool:
        return True

    def _options(self, context: LayoutContext) -> Dict[str, float]:
        values = {
            "ideal_length": context.option("ideal_length", context.layer_spacing),
            "repulsion": context.option("repulsion", DEFAULT_REPULSION),
            "attraction": context.option("attraction", DEFAULT_ATTRACTION),
            "gravity": context.option("gravity", DEFAULT_GRAVITY),
            "initial_temperature": context.option(
                "initial_temperature", context.layer_spacing
            ),
        }
        for key, value in values.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"Force option '{key}' must be a number")
            if value < 0 or (value == 0 and key != "gravity"):
                raise ConfigurationError(
                    f"Force option '{key}' must be positive, got {value}"
                )
        return {key: float(value) for key, value in values.items()}

    def layout(self, graph: IntermediateGraph, context: LayoutContext) -> None:
        """
        Run the simulation and route edges as straight lines.

        Args:
            graph: Graph to lay out in place.
            context: Iteration budget, seed and engine options.

        Raises:
            ConfigurationError: If the iteration budget is zero for a
                non-empty graph or an option is invalid.
        """
        node_ids = list(graph.nodes)
        if not node_ids:
            return
        if context.iterations <= 0:
            raise ConfigurationError(
                "The 'force' layout needs at least one iteration"
            )
        options = self._options(context)

        positions = self._initial_positions(node_ids, context.seed)
        springs = [
            (edge.source, edge.target)
            for edge in graph.edges.values()
            if edge.source != edge.target
        ]
        groups = {
            cid: graph.descendants(cid) for cid in graph.containers
        }
        memberships: Dict[str, List[str]] = {nid: [] for nid in node_ids}
        for cid, members in groups.items():
            for nid in members:
                memberships[nid].append(cid)

        for step in range(context.iterations):
            temperature = options["initial_temperature"] * (
                1 - step / context.iterations
            )
            forces = self._compute_forces(
                node_ids, positions, springs, groups, memberships, options
            )
            for nid in node_ids:
                fx, fy = forces[nid]
                magnitude = math.hypot(fx, fy)
                if magnitude > temperature and magnitude > 0:
                    fx *= temperature / magnitude
                    fy *= temperature / magnitude
                x, y = positions[nid]
                positions[nid] = (x + fx, y + fy)

        for nid, (x, y) in positions.items():
            graph.nodes[nid].x = x
            graph.nodes[nid].y = y

        calculator = PositionCalculator(padding=context.container_padding)
        calculator.route_edges(graph)
        calculator.compute_container_bounds(graph)

        logger.debug(
            "force: %d iterations over %d nodes (seed %d)",
            context.iterations,
            len(node_ids),
            context.seed,
        )

    def _initial_positions(
        self, node_ids: List[str], seed: int
    ) -> Dict[str, Tuple[float, float]]:
        """Nodes evenly spaced on a circle, rotated and jittered by the seed."""
        rng = random.Random(seed)
        count = len(node_ids)
        radius = math.sqrt(count) * 100.0
        rotation = rng.uniform(0, 2 * math.pi)

        positions = {}
        for index, nid in enumerate(node_ids):
            angle = rotation + 2 * math.pi * index / count
            positions[nid] = (
                radius * math.cos(angle) + rng.uniform(-INITIAL_JITTER, INITIAL_JITTER),
                radius * math.sin(angle) + rng.uniform(-INITIAL_JITTER, INITIAL_JITTER),
            )
        return positions

    def _compute_forces(
        self,
        node_ids: List[str],
        positions: Dict[str, Tuple[float, float]],
        springs: List[Tuple[str, str]],
        groups: Dict[str, List[str]],
        memberships: Dict[str, List[str]],
        options: Dict[str, float],
    ) -> Dict[str, Tuple[float, float]]:
        forces = {nid: [0.0, 0.0] for nid in node_ids}

        # Repulsion between every pair
        for i, a in enumerate(node_ids):
            ax, ay = positions[a]
            for b in node_ids[i + 1 :]:
                bx, by = positions[b]
                dx, dy = ax - bx, ay - by
                distance = math.hypot(dx, dy)
                if distance < MIN_DISTANCE:
                    # Coincident nodes: push apart along x in list order
                    dx, dy, distance = MIN_DISTANCE, 0.0, MIN_DISTANCE
                push = options["repulsion"] / (distance * distance)
                fx, fy = push * dx / distance, push * dy / distance
                forces[a][0] += fx
                forces[a][1] += fy
                forces[b][0] -= fx
                forces[b][1] -= fy

        # Springs along edges
        for source, target in springs:
            sx, sy = positions[source]
            tx, ty = positions[target]
            dx, dy = tx - sx, ty - sy
            distance = max(math.hypot(dx, dy), MIN_DISTANCE)
            pull = options["attraction"] * (distance - options["ideal_length"])
            fx, fy = pull * dx / distance, pull * dy / distance
            forces[source][0] += fx
            forces[source][1] += fy
            forces[target][0] -= fx
            forces[target][1] -= fy

        # Gravity towards the origin and towards container centroids
        gravity = options["gravity"]
        centroids = {}
        for cid, members in groups.items():
            xs = [positions[m][0] for m in members]
            ys = [positions[m][1] for m in members]
            centroids[cid] = (sum(xs) / len(xs), sum(ys) / len(ys))

        for nid in node_ids:
            x, y = positions[nid]
            forces[nid][0] -= gravity * x
            forces[nid][1] -= gravity * y
            for cid in memberships[nid]:
                cx, cy = centroids[cid]
                forces[nid][0] -= gravity * CONTAINER_PULL * (x - cx)
                forces[nid][1] -= gravity * CONTAINER_PULL * (y - cy)

        return {nid: (f[0], f[1]) for nid, f in forces.items()}
