import pytest

from certexam.models.orm import CertificationLevel as L
from certexam.services.progression import decide_next_step

@pytest.mark.parametrize("current,step,level", [
    ("A1", 1, L.A1),
    (None, 1, L.A1),
    ("A2", 2, L.B1),
    ("B2", 3, L.C1),
    # no defined transition from B1 / C1; both restart at step 1
    ("B1", 1, L.A1),
    ("C1", 1, L.A1),
])
def test_next_step_table(current, step, level):
    nxt = decide_next_step(current)
    assert nxt.step == step
    assert nxt.level == level

def test_c2_is_blocked():
    assert decide_next_step("C2") is None

def test_unknown_level_is_rejected():
    with pytest.raises(ValueError):
        decide_next_step("Z9")
