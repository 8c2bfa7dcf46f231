"""Container configuration."""

import random
from dataclasses import dataclass, field
from typing import Optional

__all__ = ["ContainerConfig"]


@dataclass(frozen=True)
class ContainerConfig:
    """Settings owned by the root scope and shared with every child scope.

    Attributes:
        defer_acyclic_verification: Skip the cycle check on every registration and
            run it once, before the first invocation. Useful when registering many
            providers in a tight loop.
        rng: Source of randomness used to shuffle value groups. Substitute a seeded
            ``random.Random`` to make group ordering reproducible in tests.
    """

    defer_acyclic_verification: bool = False
    rng: Optional[random.Random] = field(default=None, compare=False)

    @staticmethod
    def seeded(seed: int, defer_acyclic_verification: bool = False) -> "ContainerConfig":
        return ContainerConfig(defer_acyclic_verification, random.Random(seed))

    def make_rng(self) -> random.Random:
        return self.rng if self.rng is not None else random.Random()
