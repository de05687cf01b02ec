"""
Progression policy: which step and level a user is examined on next.

Pure function of the current certification level.
"""
from typing import NamedTuple, Optional
from certexam.models.orm import CertificationLevel as L

class NextStep(NamedTuple):
    step: int
    level: L

# B1 and C1 have no entry and fall back to step 1 / A1,
# pending a product decision on those transitions.
_PROGRESSION = {
    L.A1: NextStep(1, L.A1),
    L.A2: NextStep(2, L.B1),
    L.B2: NextStep(3, L.C1),
}

_FALLBACK = NextStep(1, L.A1)

def decide_next_step(current_level: Optional[str]) -> Optional[NextStep]:
    """Return the next (step, level) or None when the user already holds C2."""
    if current_level is None:
        return _FALLBACK
    level = L(current_level)
    if level is L.C2:
        return None
    return _PROGRESSION.get(level, _FALLBACK)
