from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ripple.seed import SeedManager


class ConsequenceType(Enum):
    RELATIONSHIP = "relationship"
    ENVIRONMENT = "environment"
    CHARACTER = "character"
    WORLD_STATE = "world_state"
    ECONOMIC = "economic"
    SOCIAL = "social"
    COMBAT = "combat"
    EXPLORATION = "exploration"
    OTHER = "other"


# definition order is severity order
class ImpactLevel(Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SIGNIFICANT = "significant"
    CRITICAL = "critical"


class DurationType(Enum):
    TEMPORARY = "temporary"
    SHORT_TERM = "short_term"
    MEDIUM_TERM = "medium_term"
    LONG_TERM = "long_term"
    PERMANENT = "permanent"


MIN_MAGNITUDE = 1
MAX_MAGNITUDE = 10
DEFAULT_MAGNITUDE = 5


def step_down_level(level: ImpactLevel, steps: int = 1) -> ImpactLevel:
    order = list(ImpactLevel)
    return order[max(0, order.index(level) - steps)]


def step_down_duration(duration: DurationType, steps: int = 1) -> DurationType:
    order = list(DurationType)
    return order[max(0, order.index(duration) - steps)]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_magnitude(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MAGNITUDE
    if math.isnan(number):
        return DEFAULT_MAGNITUDE
    if math.isinf(number):
        return MAX_MAGNITUDE if number > 0 else MIN_MAGNITUDE
    return int(clamp(round(number), MIN_MAGNITUDE, MAX_MAGNITUDE))


def clamp_unit(value: Any, default: float = 1.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return clamp(number, 0.0, 1.0)


def parse_enum(enum_cls: type[Enum], value: Any) -> Enum | None:
    """Lenient enum lookup by member, value or name. Unknown -> None."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    for member in enum_cls:
        if member.value == key or member.name.lower() == key:
            return member
    return None


def _ordered_unique(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, Enum)):
        values = [values]
    elif not isinstance(values, (list, tuple, set, frozenset)):
        return ()
    seen: list[str] = []
    for v in values:
        text = v.value if isinstance(v, Enum) else str(v)
        if text and text not in seen:
            seen.append(text)
    return tuple(seen)


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class ConsequenceImpact:
    level: ImpactLevel = ImpactLevel.MODERATE
    affected_systems: tuple[str, ...] = ()
    magnitude: int = DEFAULT_MAGNITUDE
    duration: DurationType = DurationType.SHORT_TERM
    affected_locations: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "magnitude", clamp_magnitude(self.magnitude))
        object.__setattr__(self, "affected_systems", _ordered_unique(self.affected_systems))
        object.__setattr__(self, "affected_locations", _ordered_unique(self.affected_locations))

    @classmethod
    def from_dict(cls, data: dict) -> ConsequenceImpact:
        level = parse_enum(ImpactLevel, data.get("level")) or ImpactLevel.MODERATE
        duration = parse_enum(DurationType, data.get("duration")) or DurationType.SHORT_TERM
        return cls(
            level=level,
            affected_systems=_pick(data, "affectedSystems", "affected_systems", default=()),
            magnitude=_pick(data, "magnitude", default=DEFAULT_MAGNITUDE),
            duration=duration,
            affected_locations=_pick(data, "affectedLocations", "affected_locations", default=()),
        )

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "affectedSystems": list(self.affected_systems),
            "magnitude": self.magnitude,
            "duration": self.duration.value,
            "affectedLocations": list(self.affected_locations),
        }


@dataclass(frozen=True)
class Consequence:
    """An immediate consequence of a player action, as supplied upstream.
    type and impact may be missing; the classifier fills them in."""
    id: str
    description: str = ""
    type: ConsequenceType | None = None
    impact: ConsequenceImpact | None = None
    confidence: float = 1.0
    action_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))

    @classmethod
    def from_dict(cls, data: dict,
                  seed_mgr: SeedManager | None = None) -> Consequence:
        raw_impact = data.get("impact")
        impact = ConsequenceImpact.from_dict(raw_impact) if isinstance(raw_impact, dict) else None
        consequence_id = data.get("id")
        if not consequence_id:
            consequence_id = seed_mgr.uuid() if seed_mgr else str(uuid.uuid4())
        return cls(
            id=str(consequence_id),
            description=str(data.get("description") or ""),
            type=parse_enum(ConsequenceType, data.get("type")),
            impact=impact,
            confidence=data.get("confidence", 1.0),
            action_id=str(_pick(data, "actionId", "action_id", default="")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actionId": self.action_id,
            "type": self.type.value if self.type else None,
            "description": self.description,
            "impact": self.impact.to_dict() if self.impact else None,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CascadingEffect:
    id: str
    parent_consequence_id: str
    description: str
    delay: float
    probability: float
    impact: ConsequenceImpact = field(default_factory=ConsequenceImpact)

    def __post_init__(self) -> None:
        object.__setattr__(self, "delay", max(0.0, float(self.delay)))
        object.__setattr__(self, "probability", clamp_unit(self.probability, default=0.0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parentConsequenceId": self.parent_consequence_id,
            "description": self.description,
            "delay": self.delay,
            "probability": self.probability,
            "impact": self.impact.to_dict(),
        }
