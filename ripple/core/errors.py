from __future__ import annotations


class CascadeError(Exception):
    pass


class ConfigurationError(CascadeError):
    """Invalid expansion options. Raised at call entry, never swallowed."""


class InputShapeError(CascadeError):
    """A consequence lacks type/impact metadata and no keyword matched.
    Callers fall back to WORLD_STATE / MODERATE."""


class UnresolvedParentError(CascadeError):
    def __init__(self, effect_id: str, parent_id: str):
        super().__init__(f"effect {effect_id} references unknown parent {parent_id}")
        self.effect_id = effect_id
        self.parent_id = parent_id
