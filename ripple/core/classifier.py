from __future__ import annotations

import logging

from ripple.core.consequence import (
    CascadingEffect, Consequence, ConsequenceImpact, ConsequenceType,
    DurationType, ImpactLevel, DEFAULT_MAGNITUDE, parse_enum,
)
from ripple.core.errors import InputShapeError


logger = logging.getLogger(__name__)

# scanned in order, first hit wins
TYPE_KEYWORDS: tuple[tuple[ConsequenceType, tuple[str, ...]], ...] = (
    (ConsequenceType.RELATIONSHIP, ("relationship", "friend", "enemy")),
    (ConsequenceType.ENVIRONMENT, ("environment", "weather", "forest")),
    (ConsequenceType.CHARACTER, ("character", "person", "npc")),
    (ConsequenceType.ECONOMIC, ("economy", "trade", "market")),
    (ConsequenceType.COMBAT, ("combat", "fight", "battle")),
    (ConsequenceType.EXPLORATION, ("discover", "explore", "find")),
)

SEVERITY_KEYWORDS: tuple[tuple[ImpactLevel, int, tuple[str, ...]], ...] = (
    (ImpactLevel.CRITICAL, 9, ("critical", "severe", "massive")),
    (ImpactLevel.SIGNIFICANT, 7, ("significant", "major", "dramatic")),
    (ImpactLevel.MINOR, 2, ("minor", "small", "slight")),
)

# place and people words that pull extra systems into an inferred impact
SYSTEM_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("economic", ("village", "town")),
    ("environment", ("forest", "nature")),
    ("social", ("character", "people")),
)

DEFAULT_TYPE = ConsequenceType.WORLD_STATE


def _first_hit(text: str, keywords: tuple[str, ...]) -> bool:
    return any(word in text for word in keywords)


class EffectTypeClassifier:
    """Keyword fallback for consequences that arrive without metadata.
    Heuristic only: ties go to whichever table row comes first."""

    def infer_type(self, text: str, strict: bool = False) -> ConsequenceType:
        lowered = (text or "").lower()
        for consequence_type, keywords in TYPE_KEYWORDS:
            if _first_hit(lowered, keywords):
                return consequence_type
        if strict:
            raise InputShapeError(f"no type keyword in {text!r}")
        return DEFAULT_TYPE

    def infer_impact(self, text: str, strict: bool = False) -> ConsequenceImpact:
        lowered = (text or "").lower()

        level, magnitude = ImpactLevel.MODERATE, DEFAULT_MAGNITUDE
        matched = False
        for candidate, candidate_magnitude, keywords in SEVERITY_KEYWORDS:
            if _first_hit(lowered, keywords):
                level, magnitude = candidate, candidate_magnitude
                matched = True
                break
        if strict and not matched:
            raise InputShapeError(f"no severity keyword in {text!r}")

        systems = ["world_state"]
        for system_id, keywords in SYSTEM_KEYWORDS:
            if _first_hit(lowered, keywords):
                systems.append(system_id)

        return ConsequenceImpact(
            level=level,
            affected_systems=tuple(systems),
            magnitude=magnitude,
            duration=DurationType.SHORT_TERM,
        )

    def resolve(self, node: Consequence | CascadingEffect
                ) -> tuple[ConsequenceType, ConsequenceImpact]:
        """(type, impact) for a frontier node, inferring whatever is missing."""
        if isinstance(node, CascadingEffect):
            impact = node.impact
            consequence_type = _type_from_systems(impact.affected_systems)
        else:
            impact = node.impact
            consequence_type = node.type

        if consequence_type is None:
            try:
                consequence_type = self.infer_type(node.description, strict=True)
            except InputShapeError as exc:
                logger.warning("Falling back to %s for %s: %s",
                               DEFAULT_TYPE.value, node.id, exc)
                consequence_type = DEFAULT_TYPE

        if impact is None:
            try:
                impact = self.infer_impact(node.description, strict=True)
            except InputShapeError as exc:
                logger.warning("Falling back to moderate impact for %s: %s", node.id, exc)
                impact = self.infer_impact(node.description)

        return consequence_type, impact


def _type_from_systems(system_ids: tuple[str, ...]) -> ConsequenceType | None:
    for system_id in system_ids:
        consequence_type = parse_enum(ConsequenceType, system_id)
        if consequence_type is not None:
            return consequence_type
    return None
