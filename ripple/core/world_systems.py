from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

import networkx as nx

from ripple.core.consequence import ConsequenceImpact, ConsequenceType, clamp


@dataclass(frozen=True)
class WorldSystem:
    id: str
    name: str
    influence_factors: tuple[tuple[str, float], ...] = ()
    # systems reached by indirect effects; independent of influence weights
    connected: tuple[str, ...] = ()


# influence factors between abstract systems; targets without a definition
# (family, trade, political...) are still valid effect targets
SYSTEM_DEFINITIONS: tuple[WorldSystem, ...] = (
    WorldSystem("social", "Social System", (
        ("relationship", 0.8), ("character", 0.9), ("economic", 0.6),
        ("political", 0.7), ("environment", 0.2),
    ), ("relationship", "character", "economic", "political")),
    WorldSystem("environment", "Environment System", (
        ("nature", 0.9), ("weather", 0.7), ("location", 0.8),
        ("resources", 0.6), ("social", 0.3),
    ), ("nature", "weather", "location", "resources")),
    WorldSystem("economic", "Economic System", (
        ("trade", 0.8), ("market", 0.7), ("resources", 0.6),
        ("social", 0.5), ("political", 0.4),
    ), ("trade", "market", "resources", "social")),
    WorldSystem("world_state", "World State System", (
        ("social", 0.4), ("economic", 0.3), ("environment", 0.3),
        ("political", 0.4), ("character", 0.5),
    ), ("social", "economic", "environment", "political")),
    WorldSystem("relationship", "Relationship System", (
        ("social", 0.9), ("character", 0.8), ("family", 0.7), ("economic", 0.3),
    ), ("social", "character", "family")),
    WorldSystem("character", "Character System", (
        ("social", 0.8), ("relationship", 0.8), ("economic", 0.4), ("political", 0.3),
    ), ("social", "relationship", "economic")),
    WorldSystem("combat", "Combat System", (
        ("character", 0.9), ("relationship", 0.7), ("social", 0.6), ("economic", 0.4),
    ), ("character", "relationship", "social", "economic")),
    WorldSystem("exploration", "Exploration System", (
        ("world_state", 0.6), ("environment", 0.5), ("economic", 0.4), ("social", 0.3),
    ), ("world_state", "environment", "economic")),
)


# systems a consequence type reaches regardless of its declared impact;
# ids with no definition resolve to nothing
TYPE_RELATED_SYSTEMS: dict[ConsequenceType, tuple[str, ...]] = {
    ConsequenceType.RELATIONSHIP: ("social", "character"),
    ConsequenceType.ENVIRONMENT: ("nature", "weather", "location"),
    ConsequenceType.CHARACTER: ("social", "relationship"),
    ConsequenceType.WORLD_STATE: ("social", "economic", "environment"),
    ConsequenceType.ECONOMIC: ("social", "trade", "market"),
    ConsequenceType.COMBAT: ("character", "relationship", "social"),
    ConsequenceType.EXPLORATION: ("world_state", "environment", "economic"),
    ConsequenceType.SOCIAL: ("character", "relationship", "community"),
    ConsequenceType.OTHER: ("world_state", "general"),
}


class WorldSystemGraph:
    """Directed weighted influence graph between world systems.
    Frozen after construction; safe to share between threads."""

    def __init__(self, systems: Iterable[WorldSystem]):
        systems = tuple(systems)
        graph = nx.DiGraph()
        for system in systems:
            graph.add_node(system.id, system=system)
        for system in systems:
            for target_id, weight in system.influence_factors:
                graph.add_edge(system.id, target_id, weight=clamp(float(weight), 0.0, 1.0))
        self._graph = nx.freeze(graph)

    def get(self, system_id: str) -> WorldSystem | None:
        if system_id not in self._graph:
            return None
        return self._graph.nodes[system_id].get("system")

    def name_of(self, system_id: str) -> str:
        system = self.get(system_id)
        return system.name if system else system_id

    def systems(self) -> list[WorldSystem]:
        return [data["system"] for _, data in self._graph.nodes(data=True)
                if "system" in data]

    def neighbors(self, system_id: str) -> list[tuple[str, float]]:
        if self.get(system_id) is None:
            return []
        return [(target, self._graph.edges[system_id, target]["weight"])
                for target in self._graph.successors(system_id)]

    def systems_influenced_by(self, consequence_type: ConsequenceType | None,
                              impact: ConsequenceImpact) -> list[WorldSystem]:
        ids = list(impact.affected_systems)
        if consequence_type is not None:
            ids.extend(TYPE_RELATED_SYSTEMS.get(consequence_type, ()))

        found: list[WorldSystem] = []
        for system_id in ids:
            system = self.get(system_id)
            if system is not None and system not in found:
                found.append(system)
        return found

    def connected_systems(self, system_ids: Iterable[str]) -> list[WorldSystem]:
        """Defined systems listed as connected to the given ids (one hop)."""
        connected: list[WorldSystem] = []
        processed: set[str] = set()
        for system_id in system_ids:
            if system_id in processed:
                continue
            processed.add(system_id)
            source = self.get(system_id)
            if source is None:
                continue
            for target_id in source.connected:
                target = self.get(target_id)
                if target is not None:
                    connected.append(target)
        return connected

    def to_networkx(self) -> nx.DiGraph:
        return self._graph


@lru_cache(maxsize=1)
def default_world_graph() -> WorldSystemGraph:
    return WorldSystemGraph(SYSTEM_DEFINITIONS)
