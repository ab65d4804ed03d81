from __future__ import annotations

from typing import Protocol

from ripple.core.consequence import CascadingEffect, ConsequenceImpact, ConsequenceType, ImpactLevel
from ripple.core.world_systems import WorldSystem, WorldSystemGraph
from ripple.seed import SeedManager


IMPACT_ADVERBS: dict[ImpactLevel, tuple[str, ...]] = {
    ImpactLevel.MINOR: ("slightly", "a little", "marginally"),
    ImpactLevel.MODERATE: ("moderately", "notably", "significantly"),
    ImpactLevel.MAJOR: ("strongly", "heavily", "intensely"),
    ImpactLevel.SIGNIFICANT: ("very", "extremely", "highly"),
    ImpactLevel.CRITICAL: ("critically", "severely", "dramatically"),
}

DIRECT_TEMPLATES: tuple[str, ...] = (
    "{adverb} affects the {target} system",
    "The {source} {adverb} influences the {target}",
    "Creates {adverb} changes in the {target}",
    "The {target} responds {adverb} to these changes",
)

INDIRECT_TEMPLATES: tuple[str, ...] = (
    "Indirectly affects the {system} through system connections",
    "The {system} experiences secondary effects",
    "System interconnections influence the {system}",
    "Ripple effects reach the {system} system",
)


class DescriptionGenerator(Protocol):

    def describe_direct(self, source_id: str, target_id: str,
                        impact: ConsequenceImpact,
                        parent_type: ConsequenceType,
                        seed_mgr: SeedManager) -> str: ...

    def describe_indirect(self, direct: CascadingEffect,
                          system: WorldSystem,
                          seed_mgr: SeedManager) -> str: ...


class TemplateDescriptionGenerator:
    """Canned phrasing. Swap for another generator without touching
    the expansion logic."""

    def __init__(self, world: WorldSystemGraph):
        self._world = world

    def describe_direct(self, source_id: str, target_id: str,
                        impact: ConsequenceImpact,
                        parent_type: ConsequenceType,
                        seed_mgr: SeedManager) -> str:
        adverbs = IMPACT_ADVERBS.get(impact.level, IMPACT_ADVERBS[ImpactLevel.MODERATE])
        adverb = seed_mgr.choice(adverbs)
        template = seed_mgr.choice(DIRECT_TEMPLATES)
        text = template.format(
            adverb=adverb,
            source=self._world.name_of(source_id),
            target=self._world.name_of(target_id),
        )
        return text[0].upper() + text[1:]

    def describe_indirect(self, direct: CascadingEffect,
                          system: WorldSystem,
                          seed_mgr: SeedManager) -> str:
        return seed_mgr.choice(INDIRECT_TEMPLATES).format(system=system.name)
