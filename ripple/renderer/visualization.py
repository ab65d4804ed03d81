from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Iterable

from ripple.core.cascade import (
    CascadeEngine, CascadeNetwork, EffectRelationship, RelationshipType,
)
from ripple.core.consequence import (
    CascadingEffect, Consequence, ConsequenceType, DurationType, ImpactLevel, parse_enum,
)
from ripple.core.errors import UnresolvedParentError
from ripple.core.pool import NodePool
from ripple.seed import SeedManager


logger = logging.getLogger(__name__)

PRIMARY_RADIUS = 150
SECONDARY_RADIUS = 100
ANIMATION_DURATION_MS = 2000
KEYFRAME_STEP_MS = 2000
MIN_TOTAL_DURATION_MS = 15000
TRAVEL_MS_PER_DISTANCE = 1000
DEFAULT_CONNECTION_PROBABILITY = 0.8

ROOT_TITLE = "Player Action"
ROOT_COLOR = "#4CAF50"
SECONDARY_TITLE = "Secondary Effect"

CONSEQUENCE_TITLES: dict[ConsequenceType, str] = {
    ConsequenceType.RELATIONSHIP: "Relationship Change",
    ConsequenceType.ENVIRONMENT: "Environmental Effect",
    ConsequenceType.CHARACTER: "Character Impact",
    ConsequenceType.WORLD_STATE: "World Change",
    ConsequenceType.ECONOMIC: "Economic Impact",
    ConsequenceType.SOCIAL: "Social Effect",
    ConsequenceType.COMBAT: "Combat Outcome",
    ConsequenceType.EXPLORATION: "Discovery",
    ConsequenceType.OTHER: "Unknown Effect",
}

CONSEQUENCE_COLORS: dict[ConsequenceType, str] = {
    ConsequenceType.RELATIONSHIP: "#2196F3",
    ConsequenceType.ENVIRONMENT: "#4CAF50",
    ConsequenceType.CHARACTER: "#9C27B0",
    ConsequenceType.WORLD_STATE: "#FF9800",
    ConsequenceType.ECONOMIC: "#F44336",
    ConsequenceType.SOCIAL: "#00BCD4",
    ConsequenceType.COMBAT: "#FF5722",
    ConsequenceType.EXPLORATION: "#795548",
    ConsequenceType.OTHER: "#607D8B",
}

# (color, dash pattern)
CONNECTION_STYLES: dict[RelationshipType, tuple[str, str]] = {
    RelationshipType.DIRECT: ("#4CAF50", "solid"),
    RelationshipType.INDIRECT: ("#2196F3", "dashed"),
    RelationshipType.AMPLIFYING: ("#FF9800", "solid"),
    RelationshipType.MITIGATING: ("#F44336", "dotted"),
}
FALLBACK_CONNECTION_STYLE = ("#607D8B", "solid")

REGION_COORDINATES: dict[str, tuple[float, float]] = {
    "village": (0, 0),
    "forest": (5, 3),
    "mountain": (-3, 7),
    "river": (4, -2),
    "castle": (-2, 1),
    "market": (2, -1),
    "town": (3, 2),
}

# complementary system pairs, checked in order; first match wins
OPPORTUNITY_RULES: tuple[dict, ...] = (
    {
        "systems": ("economic", "social"),
        "title": "Market Social Event",
        "description": "Economic and social changes create opportunity for community gathering",
        "required_conditions": ("Economic stability", "Social harmony"),
        "potential_outcomes": ("Increased prosperity", "Improved relationships"),
    },
    {
        "systems": ("environment", "exploration"),
        "title": "Hidden Discovery",
        "description": "Environmental changes reveal new areas to explore",
        "required_conditions": ("Environmental change", "Curiosity"),
        "potential_outcomes": ("New locations", "Rare resources"),
    },
)


@dataclass
class NodePosition:
    x: float = 0.0
    y: float = 0.0
    layer: int = 0


@dataclass
class NodeMetadata:
    title: str = ""
    description: str = ""
    severity: ImpactLevel = ImpactLevel.MINOR
    confidence: float = 0.0
    affected_systems: list[str] = field(default_factory=list)
    affected_regions: list[str] = field(default_factory=list)
    duration: DurationType = DurationType.TEMPORARY
    magnitude: int = 0


@dataclass
class VisualProperties:
    color: str = ""
    size: float = 0.0
    opacity: float = 0.0
    pulse_speed: float = 0.0


@dataclass
class ButterflyEffectNode:
    id: str = ""
    type: str = ""
    position: NodePosition = field(default_factory=NodePosition)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)
    visual_properties: VisualProperties = field(default_factory=VisualProperties)

    def reset(self) -> None:
        self.id = ""
        self.type = ""
        self.position = NodePosition()
        self.metadata = NodeMetadata()
        self.visual_properties = VisualProperties()

    def to_dict(self) -> dict:
        m, v = self.metadata, self.visual_properties
        return {
            "id": self.id,
            "type": self.type,
            "position": {"x": self.position.x, "y": self.position.y,
                         "layer": self.position.layer},
            "metadata": {
                "title": m.title,
                "description": m.description,
                "severity": m.severity.value,
                "confidence": m.confidence,
                "affectedSystems": list(m.affected_systems),
                "affectedRegions": list(m.affected_regions),
                "duration": m.duration.value,
                "magnitude": m.magnitude,
            },
            "visualProperties": {
                "color": v.color,
                "size": v.size,
                "opacity": v.opacity,
                "pulseSpeed": v.pulse_speed,
            },
        }


@dataclass
class ConnectionStyle:
    color: str = ""
    thickness: int = 1
    dash_pattern: str = "solid"
    animation_type: str = "curved"


@dataclass
class TemporalWindow:
    start_time: float = 0.0
    end_time: float = 0.0
    animation_duration: float = ANIMATION_DURATION_MS


@dataclass
class EffectConnection:
    id: str = ""
    source_node_id: str = ""
    target_node_id: str = ""
    relationship_type: RelationshipType = RelationshipType.DIRECT
    strength: float = 0.0
    delay: float = 0.0
    probability: float = 0.0
    style: ConnectionStyle = field(default_factory=ConnectionStyle)
    temporal: TemporalWindow = field(default_factory=TemporalWindow)

    def reset(self) -> None:
        self.id = ""
        self.source_node_id = ""
        self.target_node_id = ""
        self.relationship_type = RelationshipType.DIRECT
        self.strength = 0.0
        self.delay = 0.0
        self.probability = 0.0
        self.style = ConnectionStyle()
        self.temporal = TemporalWindow()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sourceNodeId": self.source_node_id,
            "targetNodeId": self.target_node_id,
            "relationshipType": self.relationship_type.value,
            "strength": self.strength,
            "delay": self.delay,
            "probability": self.probability,
            "visualProperties": {
                "color": self.style.color,
                "thickness": self.style.thickness,
                "dashPattern": self.style.dash_pattern,
                "animationType": self.style.animation_type,
            },
            "temporalData": {
                "startTime": self.temporal.start_time,
                "endTime": self.temporal.end_time,
                "animationDuration": self.temporal.animation_duration,
            },
        }


@dataclass(frozen=True)
class KeyFrame:
    time: int
    active_nodes: tuple[str, ...]
    active_connections: tuple[str, ...]


@dataclass(frozen=True)
class TemporalProgression:
    total_duration: float
    key_frames: tuple[KeyFrame, ...]

    def to_dict(self) -> dict:
        return {
            "totalDuration": self.total_duration,
            "keyFrames": [
                {"time": kf.time, "activeNodes": list(kf.active_nodes),
                 "activeConnections": list(kf.active_connections)}
                for kf in self.key_frames
            ],
        }


@dataclass(frozen=True)
class CrossRegionEffect:
    node_id: str
    source_region: str
    target_region: str
    distance: float
    travel_time: float

    def to_dict(self) -> dict:
        return {
            "nodeId": self.node_id,
            "sourceRegion": self.source_region,
            "targetRegion": self.target_region,
            "distance": self.distance,
            "travelTime": self.travel_time,
        }


@dataclass(frozen=True)
class EmergentOpportunity:
    id: str
    title: str
    description: str
    required_conditions: tuple[str, ...]
    potential_outcomes: tuple[str, ...]
    related_nodes: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "requiredConditions": list(self.required_conditions),
            "potentialOutcomes": list(self.potential_outcomes),
            "relatedNodes": list(self.related_nodes),
        }


@dataclass
class VisualizationMetadata:
    total_nodes: int = 0
    total_connections: int = 0
    max_cascade_depth: int = 0
    processing_time_ms: float = 0.0
    dropped_effects: int = 0


@dataclass
class CascadeVisualizationData:
    root_node: ButterflyEffectNode
    nodes: list[ButterflyEffectNode]
    connections: list[EffectConnection]
    temporal_progression: TemporalProgression
    cross_region_effects: list[CrossRegionEffect]
    emergent_opportunities: list[EmergentOpportunity]
    metadata: VisualizationMetadata

    def to_dict(self) -> dict:
        return {
            "rootNode": self.root_node.to_dict(),
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "temporalProgression": self.temporal_progression.to_dict(),
            "crossRegionEffects": [e.to_dict() for e in self.cross_region_effects],
            "emergentOpportunities": [o.to_dict() for o in self.emergent_opportunities],
            "metadata": {
                "totalNodes": self.metadata.total_nodes,
                "totalConnections": self.metadata.total_connections,
                "maxCascadeDepth": self.metadata.max_cascade_depth,
                "processingTimeMs": self.metadata.processing_time_ms,
                "droppedEffects": self.metadata.dropped_effects,
            },
        }


def region_distance(source: str, target: str) -> float:
    """Euclidean distance on the region map; unknown regions sit at the origin."""
    x1, y1 = REGION_COORDINATES.get(source, (0, 0))
    x2, y2 = REGION_COORDINATES.get(target, (0, 0))
    return math.hypot(x2 - x1, y2 - y1)


def _resolve_parent(by_id: dict[str, ButterflyEffectNode],
                    effect: CascadingEffect) -> ButterflyEffectNode:
    parent = by_id.get(effect.parent_consequence_id)
    if parent is None:
        raise UnresolvedParentError(effect.id, effect.parent_consequence_id)
    return parent


def _consequence_color(consequence_type: ConsequenceType | None) -> str:
    return CONSEQUENCE_COLORS.get(consequence_type, CONSEQUENCE_COLORS[ConsequenceType.OTHER])


class VisualizationBuilder:

    def __init__(self, engine: CascadeEngine | None = None,
                 node_pool: NodePool[ButterflyEffectNode] | None = None,
                 connection_pool: NodePool[EffectConnection] | None = None,
                 seed_mgr: SeedManager | None = None):
        self.engine = engine or CascadeEngine()
        self.node_pool = node_pool
        self.connection_pool = connection_pool
        self.seed_mgr = seed_mgr

    def render(self, action_id: str, action_description: str,
               consequences: Iterable[Consequence | dict] = (),
               network: CascadeNetwork | None = None,
               seed_mgr: SeedManager | None = None) -> CascadeVisualizationData:
        rng = seed_mgr or self.seed_mgr or self.engine.seed_mgr or SeedManager()
        start = time.perf_counter()
        if network is None:
            network = self.engine.expand(consequences, seed_mgr=rng)
        logger.info("Rendering visualization for action %s: %d primaries, %d effects",
                    action_id, len(network.primary_consequences),
                    len(network.cascading_effects))

        root = self._root_node(action_id, action_description)
        nodes = [root]
        dropped = self._add_consequence_nodes(network, nodes)
        connections, skipped = self._connections(network, nodes, rng)
        dropped += skipped

        data = CascadeVisualizationData(
            root_node=root,
            nodes=nodes,
            connections=connections,
            temporal_progression=self._temporal_progression(nodes, connections),
            cross_region_effects=self._cross_region_effects(nodes),
            emergent_opportunities=self._emergent_opportunities(nodes, rng),
            metadata=VisualizationMetadata(
                total_nodes=len(nodes),
                total_connections=len(connections),
                max_cascade_depth=max(n.position.layer for n in nodes),
                dropped_effects=dropped,
            ),
        )
        data.metadata.processing_time_ms = (time.perf_counter() - start) * 1000.0

        if self.node_pool is not None:
            logger.debug("Node pool reuse rate: %.1f%%", self.node_pool.stats()["reuseRate"])
        logger.info("Visualization ready: %d nodes, %d connections, %d dropped, %.1f ms",
                    data.metadata.total_nodes, data.metadata.total_connections,
                    dropped, data.metadata.processing_time_ms)
        return data

    def recycle(self, data: CascadeVisualizationData) -> None:
        """Hand a rendered result's nodes and connections back to the pools.
        The result must not be used afterwards."""
        if self.node_pool is not None:
            for node in data.nodes:
                self.node_pool.release(node)
        if self.connection_pool is not None:
            for connection in data.connections:
                self.connection_pool.release(connection)

    def _new_node(self) -> ButterflyEffectNode:
        return self.node_pool.acquire() if self.node_pool is not None else ButterflyEffectNode()

    def _new_connection(self) -> EffectConnection:
        return self.connection_pool.acquire() if self.connection_pool is not None else EffectConnection()

    def _root_node(self, action_id: str, action_description: str) -> ButterflyEffectNode:
        node = self._new_node()
        node.id = action_id
        node.type = "action"
        node.position = NodePosition(0.0, 0.0, 0)
        node.metadata = NodeMetadata(
            title=ROOT_TITLE,
            description=action_description,
            severity=ImpactLevel.MINOR,
            confidence=1.0,
            duration=DurationType.TEMPORARY,
            magnitude=1,
        )
        node.visual_properties = VisualProperties(
            color=ROOT_COLOR, size=20, opacity=1.0, pulse_speed=2.0)
        return node

    def _add_consequence_nodes(self, network: CascadeNetwork,
                               nodes: list[ButterflyEffectNode]) -> int:
        by_id = {n.id: n for n in nodes}

        primaries = network.primary_consequences
        for i, consequence in enumerate(primaries):
            angle = 2 * math.pi * i / len(primaries)
            node = self._primary_node(consequence, NodePosition(
                round(PRIMARY_RADIUS * math.cos(angle), 2),
                round(PRIMARY_RADIUS * math.sin(angle), 2),
                1,
            ))
            nodes.append(node)
            by_id[node.id] = node

        sibling_counts: dict[str, int] = {}
        for effect in network.cascading_effects:
            sibling_counts[effect.parent_consequence_id] = \
                sibling_counts.get(effect.parent_consequence_id, 0) + 1

        dropped = 0
        sibling_index: dict[str, int] = {}
        for effect in network.cascading_effects:
            try:
                parent = _resolve_parent(by_id, effect)
            except UnresolvedParentError as exc:
                logger.warning("Dropping effect: %s", exc)
                dropped += 1
                continue

            k = sibling_index.get(parent.id, 0)
            sibling_index[parent.id] = k + 1
            angle = 2 * math.pi * k / sibling_counts[parent.id]
            node = self._secondary_node(effect, NodePosition(
                round(parent.position.x + SECONDARY_RADIUS * math.cos(angle), 2),
                round(parent.position.y + SECONDARY_RADIUS * math.sin(angle), 2),
                2,
            ))
            nodes.append(node)
            by_id[node.id] = node
        return dropped

    def _primary_node(self, consequence: Consequence,
                      position: NodePosition) -> ButterflyEffectNode:
        consequence_type, impact = self.engine.classifier.resolve(consequence)
        node = self._new_node()
        node.id = consequence.id
        node.type = "consequence"
        node.position = position
        node.metadata = NodeMetadata(
            title=CONSEQUENCE_TITLES[consequence_type],
            description=consequence.description,
            severity=impact.level,
            confidence=consequence.confidence,
            affected_systems=[consequence_type.value],
            affected_regions=list(impact.affected_locations),
            duration=impact.duration,
            magnitude=impact.magnitude,
        )
        node.visual_properties = VisualProperties(
            color=_consequence_color(consequence_type),
            size=max(10, 3 * impact.magnitude),
            opacity=max(0.3, consequence.confidence),
            pulse_speed=3.0 if impact.magnitude > 7 else 1.5,
        )
        return node

    def _secondary_node(self, effect: CascadingEffect,
                        position: NodePosition) -> ButterflyEffectNode:
        impact = effect.impact
        first_system = impact.affected_systems[0] if impact.affected_systems else None
        node = self._new_node()
        node.id = effect.id
        node.type = "cascading_effect"
        node.position = position
        node.metadata = NodeMetadata(
            title=SECONDARY_TITLE,
            description=effect.description,
            severity=impact.level,
            confidence=effect.probability,
            affected_systems=list(impact.affected_systems),
            affected_regions=list(impact.affected_locations),
            duration=impact.duration,
            magnitude=impact.magnitude,
        )
        node.visual_properties = VisualProperties(
            color=_consequence_color(parse_enum(ConsequenceType, first_system)),
            size=max(8, 2 * impact.magnitude),
            opacity=max(0.2, effect.probability),
            pulse_speed=1.0,
        )
        return node

    def _connections(self, network: CascadeNetwork, nodes: list[ButterflyEffectNode],
                     rng: SeedManager) -> tuple[list[EffectConnection], int]:
        rendered = {n.id for n in nodes}
        probabilities = {e.id: e.probability for e in network.cascading_effects}

        connections: list[EffectConnection] = []
        skipped = 0
        for rel in network.relationships:
            if rel.parent_id not in rendered or rel.child_id not in rendered:
                logger.warning("Skipping connection %s -> %s: endpoint not rendered",
                               rel.parent_id, rel.child_id)
                skipped += 1
                continue
            connections.append(self._connection(
                rel, probabilities.get(rel.child_id, DEFAULT_CONNECTION_PROBABILITY), rng))
        return connections, skipped

    def _connection(self, rel: EffectRelationship, probability: float,
                    rng: SeedManager) -> EffectConnection:
        color, dash = CONNECTION_STYLES.get(rel.relationship_type, FALLBACK_CONNECTION_STYLE)
        connection = self._new_connection()
        connection.id = rng.uuid()
        connection.source_node_id = rel.parent_id
        connection.target_node_id = rel.child_id
        connection.relationship_type = rel.relationship_type
        connection.strength = rel.strength
        connection.delay = rel.delay
        connection.probability = probability
        connection.style = ConnectionStyle(
            color=color,
            thickness=max(1, math.floor(5 * rel.strength)),
            dash_pattern=dash,
            animation_type="curved",
        )
        connection.temporal = TemporalWindow(
            start_time=rel.delay,
            end_time=rel.delay + ANIMATION_DURATION_MS,
            animation_duration=ANIMATION_DURATION_MS,
        )
        return connection

    def _temporal_progression(self, nodes: list[ButterflyEffectNode],
                              connections: list[EffectConnection]) -> TemporalProgression:
        total = max([c.temporal.end_time for c in connections] + [MIN_TOTAL_DURATION_MS])
        node_ids = tuple(n.id for n in nodes)
        key_frames = tuple(
            KeyFrame(
                time=t,
                active_nodes=node_ids,
                active_connections=tuple(
                    c.id for c in connections
                    if c.temporal.start_time <= t <= c.temporal.end_time),
            )
            for t in range(0, math.floor(total) + 1, KEYFRAME_STEP_MS)
        )
        return TemporalProgression(total_duration=total, key_frames=key_frames)

    def _cross_region_effects(self, nodes: list[ButterflyEffectNode]) -> list[CrossRegionEffect]:
        effects = []
        for node in nodes:
            regions = node.metadata.affected_regions
            if len(regions) < 2:
                continue
            source = regions[0]
            for target in regions[1:]:
                distance = region_distance(source, target)
                effects.append(CrossRegionEffect(
                    node_id=node.id,
                    source_region=source,
                    target_region=target,
                    distance=distance,
                    travel_time=distance * TRAVEL_MS_PER_DISTANCE,
                ))
        return effects

    def _emergent_opportunities(self, nodes: list[ButterflyEffectNode],
                                rng: SeedManager) -> list[EmergentOpportunity]:
        opportunities = []
        for i, first in enumerate(nodes):
            for second in nodes[i + 1:]:
                rule = _matching_rule(first.metadata.affected_systems,
                                      second.metadata.affected_systems)
                if rule is None:
                    continue
                opportunities.append(EmergentOpportunity(
                    id=rng.uuid(),
                    title=rule["title"],
                    description=rule["description"],
                    required_conditions=rule["required_conditions"],
                    potential_outcomes=rule["potential_outcomes"],
                    related_nodes=(first.id, second.id),
                ))
        return opportunities


def _matching_rule(systems_a: list[str], systems_b: list[str]) -> dict | None:
    for rule in OPPORTUNITY_RULES:
        left, right = rule["systems"]
        if (left in systems_a and right in systems_b) or \
                (right in systems_a and left in systems_b):
            return rule
    return None
