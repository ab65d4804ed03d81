from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import networkx as nx

from ripple.core.classifier import EffectTypeClassifier
from ripple.core.consequence import (
    CascadingEffect, Consequence, ConsequenceImpact, ConsequenceType,
    step_down_duration, step_down_level,
)
from ripple.core.descriptions import DescriptionGenerator, TemplateDescriptionGenerator
from ripple.core.errors import ConfigurationError
from ripple.core.world_systems import WorldSystem, WorldSystemGraph, default_world_graph
from ripple.seed import SeedManager


logger = logging.getLogger(__name__)

# timing, in milliseconds
BASE_DELAY_MS = 2000
LEVEL_DELAY_MS = 1000
DELAY_JITTER_MS = 3000
INDIRECT_DELAY_JITTER_MS = 5000

# only edges heavier than this spawn effects
SIGNIFICANT_INFLUENCE = 0.3

MAX_BASE_PROBABILITY = 0.8
BASE_PROBABILITY_FACTOR = 0.6
MIN_PROBABILITY = 0.1
MAGNITUDE_LEVEL_DECAY = 0.5

INDIRECT_PROBABILITY_FACTOR = 0.4
INDIRECT_STRENGTH_FACTOR = 0.5
INDIRECT_MAGNITUDE_REDUCTION = 2


class RelationshipType(Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"
    AMPLIFYING = "amplifying"
    MITIGATING = "mitigating"


@dataclass(frozen=True)
class CascadeOptions:
    max_levels: int = 3
    max_effects_per_level: int = 4
    probability_threshold: float = 0.3
    include_indirect: bool = True

    def __post_init__(self) -> None:
        if self.max_levels < 1:
            raise ConfigurationError(f"max_levels must be >= 1, got {self.max_levels}")
        if self.max_effects_per_level < 0:
            raise ConfigurationError(
                f"max_effects_per_level must be >= 0, got {self.max_effects_per_level}")
        if not 0.0 <= self.probability_threshold <= 1.0:
            raise ConfigurationError(
                f"probability_threshold must be within [0, 1], got {self.probability_threshold}")

    def to_dict(self) -> dict:
        return {
            "maxLevels": self.max_levels,
            "maxEffectsPerLevel": self.max_effects_per_level,
            "probabilityThreshold": self.probability_threshold,
            "includeIndirect": self.include_indirect,
        }


@dataclass(frozen=True)
class EffectRelationship:
    parent_id: str
    child_id: str
    relationship_type: RelationshipType
    strength: float
    delay: float

    def to_dict(self) -> dict:
        return {
            "parentId": self.parent_id,
            "childId": self.child_id,
            "relationshipType": self.relationship_type.value,
            "strength": self.strength,
            "delay": self.delay,
        }


@dataclass
class NetworkMetadata:
    total_effects: int = 0
    max_depth: int = 0
    processing_time_ms: float = 0.0


@dataclass
class CascadeNetwork:
    primary_consequences: list[Consequence] = field(default_factory=list)
    cascading_effects: list[CascadingEffect] = field(default_factory=list)
    relationships: list[EffectRelationship] = field(default_factory=list)
    metadata: NetworkMetadata = field(default_factory=NetworkMetadata)

    def get_effect(self, effect_id: str) -> CascadingEffect | None:
        for effect in self.cascading_effects:
            if effect.id == effect_id:
                return effect
        return None

    def as_digraph(self) -> nx.DiGraph:
        """Relationship forest as a graph: primaries and effects are nodes
        carrying their record under "data", edges carry the relationship."""
        graph = nx.DiGraph()
        for consequence in self.primary_consequences:
            graph.add_node(consequence.id, data=consequence, kind="primary")
        for effect in self.cascading_effects:
            graph.add_node(effect.id, data=effect, kind="effect")
        for rel in self.relationships:
            graph.add_edge(rel.parent_id, rel.child_id, data=rel)
        return graph

    def to_dict(self) -> dict:
        return {
            "primaryConsequences": [c.to_dict() for c in self.primary_consequences],
            "cascadingEffects": [e.to_dict() for e in self.cascading_effects],
            "relationships": [r.to_dict() for r in self.relationships],
            "metadata": {
                "totalEffects": self.metadata.total_effects,
                "maxDepth": self.metadata.max_depth,
                "processingTimeMs": self.metadata.processing_time_ms,
            },
        }


def _coerce_consequences(items: Iterable, seed_mgr: SeedManager) -> list[Consequence]:
    consequences = []
    for item in items:
        if isinstance(item, Consequence):
            consequences.append(item)
        elif isinstance(item, dict):
            try:
                consequences.append(Consequence.from_dict(item, seed_mgr))
            except Exception:
                logger.warning("Ignoring malformed consequence %r", item.get("id"),
                               exc_info=True)
        else:
            logger.warning("Ignoring consequence of unsupported shape: %r", item)
    return consequences


class CascadeEngine:
    """Level-synchronous expansion of primary consequences into a
    network of cascading effects over the world-system graph."""

    def __init__(self, world: WorldSystemGraph | None = None,
                 classifier: EffectTypeClassifier | None = None,
                 describer: DescriptionGenerator | None = None,
                 seed_mgr: SeedManager | None = None):
        self.world = world or default_world_graph()
        self.classifier = classifier or EffectTypeClassifier()
        self.describer = describer or TemplateDescriptionGenerator(self.world)
        self.seed_mgr = seed_mgr

    def expand(self, consequences: Iterable[Consequence | dict],
               options: CascadeOptions | None = None,
               seed_mgr: SeedManager | None = None) -> CascadeNetwork:
        if options is None:
            options = CascadeOptions()
        elif not isinstance(options, CascadeOptions):
            raise ConfigurationError(f"expected CascadeOptions, got {type(options).__name__}")

        rng = seed_mgr or self.seed_mgr or SeedManager()
        start = time.perf_counter()
        primaries = _coerce_consequences(consequences, rng)
        logger.info("Starting cascade expansion: %d primary consequences, options=%s",
                    len(primaries), options.to_dict())

        try:
            network = self._expand(primaries, options, rng)
        except Exception:
            logger.exception("Cascade expansion failed; returning an empty network")
            network = CascadeNetwork(primary_consequences=primaries)

        network.metadata.processing_time_ms = (time.perf_counter() - start) * 1000.0
        logger.info("Cascade expansion finished: %d effects, depth %d, %.1f ms",
                    network.metadata.total_effects, network.metadata.max_depth,
                    network.metadata.processing_time_ms)
        return network

    def _expand(self, primaries: list[Consequence], options: CascadeOptions,
                rng: SeedManager) -> CascadeNetwork:
        network = CascadeNetwork(primary_consequences=list(primaries))
        frontier: list[Consequence | CascadingEffect] = list(primaries)
        level = 1

        while level <= options.max_levels and frontier:
            logger.debug("Processing cascade level %d (%d parents)", level, len(frontier))
            next_frontier: list[CascadingEffect] = []
            level_effects: list[CascadingEffect] = []
            level_edges: list[EffectRelationship] = []

            for parent in frontier:
                try:
                    direct, indirect, edges = self._expand_parent(parent, level, options, rng)
                except Exception:
                    logger.warning("Skipping parent %s at level %d", parent.id, level,
                                   exc_info=True)
                    continue
                next_frontier.extend(direct)
                level_effects.extend(direct)
                level_effects.extend(indirect)
                level_edges.extend(edges)

            if not level_effects:
                break

            network.cascading_effects.extend(level_effects)
            network.relationships.extend(level_edges)
            network.metadata.max_depth = level
            frontier = next_frontier
            level += 1

        network.metadata.total_effects = len(network.cascading_effects)
        return network

    def _expand_parent(self, parent: Consequence | CascadingEffect, level: int,
                       options: CascadeOptions, rng: SeedManager
                       ) -> tuple[list[CascadingEffect], list[CascadingEffect],
                                  list[EffectRelationship]]:
        parent_type, parent_impact = self.classifier.resolve(parent)

        candidates: list[CascadingEffect] = []
        for system in self.world.systems_influenced_by(parent_type, parent_impact):
            for target_id, weight in self.world.neighbors(system.id):
                if weight <= SIGNIFICANT_INFLUENCE:
                    continue
                effect = self._direct_effect(parent.id, system.id, target_id, weight,
                                             parent_type, parent_impact, level, rng)
                if effect is not None:
                    candidates.append(effect)

        kept = [e for e in candidates if e.probability >= options.probability_threshold]
        kept.sort(key=lambda e: e.probability, reverse=True)
        kept = kept[:options.max_effects_per_level]

        edges = [
            EffectRelationship(parent.id, effect.id, RelationshipType.DIRECT,
                               effect.probability, effect.delay)
            for effect in kept
        ]

        indirect: list[CascadingEffect] = []
        if options.include_indirect and level < options.max_levels:
            # exactly one hop; indirect effects never join the frontier
            for direct in kept:
                for system in self.world.connected_systems(direct.impact.affected_systems):
                    effect = self._indirect_effect(parent.id, direct, system, rng)
                    indirect.append(effect)
                    edges.append(EffectRelationship(
                        parent.id, effect.id, RelationshipType.INDIRECT,
                        direct.probability * INDIRECT_STRENGTH_FACTOR, effect.delay,
                    ))

        return kept, indirect, edges

    def _direct_effect(self, parent_id: str, source_id: str, target_id: str,
                       weight: float, parent_type: ConsequenceType,
                       parent_impact: ConsequenceImpact, level: int,
                       rng: SeedManager) -> CascadingEffect | None:
        probability = min(MAX_BASE_PROBABILITY, weight * BASE_PROBABILITY_FACTOR) / level
        if probability < MIN_PROBABILITY:
            return None

        delay = BASE_DELAY_MS + level * LEVEL_DELAY_MS + rng.random() * DELAY_JITTER_MS
        magnitude = max(1, math.floor(
            parent_impact.magnitude * weight / (1 + level * MAGNITUDE_LEVEL_DECAY)))
        impact = ConsequenceImpact(
            level=step_down_level(parent_impact.level),
            affected_systems=(target_id,),
            magnitude=magnitude,
            duration=step_down_duration(parent_impact.duration),
        )
        description = self.describer.describe_direct(
            source_id, target_id, impact, parent_type, rng)

        return CascadingEffect(
            id=rng.uuid(),
            parent_consequence_id=parent_id,
            description=description,
            delay=delay,
            probability=probability,
            impact=impact,
        )

    def _indirect_effect(self, parent_id: str, direct: CascadingEffect,
                         system: WorldSystem, rng: SeedManager) -> CascadingEffect:
        impact = ConsequenceImpact(
            level=step_down_level(direct.impact.level),
            affected_systems=(system.id,),
            magnitude=max(1, direct.impact.magnitude - INDIRECT_MAGNITUDE_REDUCTION),
            duration=step_down_duration(direct.impact.duration),
        )
        return CascadingEffect(
            id=rng.uuid(),
            parent_consequence_id=parent_id,
            description=self.describer.describe_indirect(direct, system, rng),
            delay=direct.delay + rng.random() * INDIRECT_DELAY_JITTER_MS,
            probability=direct.probability * INDIRECT_PROBABILITY_FACTOR,
            impact=impact,
        )
