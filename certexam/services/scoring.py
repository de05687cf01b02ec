"""
Scoring engine.

Everything here is deterministic and free of I/O: answers are compared
position by position against the answer key, the percentage decides the
pass flag, and the (step, score) pair decides the awarded level.
"""
from typing import NamedTuple, Optional, Sequence, List, Tuple
from certexam.models.orm import CertificationLevel as L

PASS_THRESHOLD = 25.0

# Bands are checked from the highest threshold down; first match wins.
# Steps 1 and 2 award the same level at 75 and 50.
AWARD_TABLE = {
    1: ((75.0, L.A2), (50.0, L.A2), (25.0, L.A1)),
    2: ((75.0, L.B2), (50.0, L.B2), (25.0, L.B1)),
    3: ((50.0, L.C2), (25.0, L.C1)),
}

class ScoreResult(NamedTuple):
    score: float
    passed: bool
    awarded: Optional[L]
    correct: int
    total: int

    @property
    def incorrect(self) -> int:
        return self.total - self.correct

def coerce_answer(value) -> Optional[int]:
    """Option index from a decoded JSON value. Integral floats count; booleans and anything else are no answer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None

def is_passing(score: float) -> bool:
    return score >= PASS_THRESHOLD

def award_certification(step: int, score: float) -> Optional[L]:
    bands: Tuple[Tuple[float, L], ...] = AWARD_TABLE.get(step, ())
    for threshold, level in bands:
        if score >= threshold:
            return level
    return None

def count_correct(answer_key: Sequence[int], answers: Sequence[Optional[int]]) -> int:
    # missing tail positions count as misses
    return sum(
        1 for i, correct in enumerate(answer_key)
        if i < len(answers) and answers[i] is not None and answers[i] == correct
    )

def score_answers(answer_key: Sequence[int], answers: Sequence[Optional[int]], step: int) -> ScoreResult:
    total = len(answer_key)
    correct = count_correct(answer_key, answers)
    score = (correct / total) * 100.0 if total else 0.0
    return ScoreResult(
        score=score,
        passed=is_passing(score),
        awarded=award_certification(step, score),
        correct=correct,
        total=total,
    )

def normalize_answers(answers: Sequence[Optional[int]], total: int) -> List[Optional[int]]:
    """Pad a short answer list with None so the stored list always matches the question count."""
    padded = list(answers[:total])
    padded.extend([None] * (total - len(padded)))
    return padded
