from __future__ import annotations

import hashlib
import uuid

import numpy as np


class SeedManager:
    """All randomness in Ripple flows through this object.
    Given the same seed and the same sequence of calls, the output
    is identical. Without a seed, fresh entropy is drawn and recorded
    in base_seed so a run can still be replayed."""

    def __init__(self, seed: int | None = None):
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (2 ** 32))
        self._base_seed = seed
        self._rng = np.random.default_rng(seed)

    @property
    def base_seed(self) -> int:
        return self._base_seed

    def random(self) -> float:
        return float(self._rng.random())

    def choice(self, items: list | tuple):
        idx = int(self._rng.integers(0, len(items)))
        return items[idx]

    def uuid(self) -> str:
        """Version-4 shaped UUID drawn from the seeded stream."""
        return str(uuid.UUID(bytes=self._rng.bytes(16), version=4))

    def fork(self, branch_id: str) -> SeedManager:
        """Create a child seed manager for a specific branch.
        The child seed is derived from the parent seed and the branch
        identifier, so independent stages stay reproducible."""
        combined = f"{self._base_seed}:{branch_id}"
        child_seed = int(hashlib.sha256(combined.encode()).digest()[:4].hex(), 16)
        return SeedManager(seed=child_seed)
