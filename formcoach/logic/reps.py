from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RepPhase(str, Enum):
    UNARMED = "UNARMED"
    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True)
class RepCycle:
    """Discrete state of an up/down repetition counter.

    ``qualified`` carries a sub-condition (straight legs, visible legs) from the
    moment the bottom is reached until the rep is counted on the way back up.
    """

    phase: RepPhase = RepPhase.UNARMED
    count: int = 0
    qualified: bool = False
