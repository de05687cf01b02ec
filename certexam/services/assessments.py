"""
Assessment lifecycle.

An assessment is created Open (no completion timestamp) and closed exactly
once by a successful submission. Closing goes through a conditional update
on ``completed_at IS NULL`` so concurrent submissions have a single winner.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Callable
from sqlalchemy.orm import Session
import logging

from certexam.core.config import Settings
from certexam.core.errors import BadRequest, NotFound, Unauthorized, Conflict, AlreadyMaxLevel
from certexam.models.orm import Assessment, utcnow
from certexam.repositories import UserRepository, AssessmentRepository
from certexam.services.progression import decide_next_step
from certexam.services.question_bank import QuestionBank, public_question
from certexam.services.scoring import coerce_answer, score_answers, normalize_answers

logger = logging.getLogger(__name__)

@dataclass
class StartedAssessment:
    assessment_id: str
    step: int
    level: str
    questions: List[Dict[str, Any]]
    time_limit: int

@dataclass
class SubmissionResult:
    score: float
    passed: bool
    awarded_certification: Optional[str]
    correct_answers: int
    total_questions: int
    time_taken: int

def summary(a: Assessment) -> Dict[str, Any]:
    return {
        "id": a.id,
        "step": a.step,
        "levelTested": a.level_tested,
        "score": a.score,
        "passed": a.passed,
        "awardedCertification": a.awarded_certification,
        "startedAt": a.started_at,
        "completedAt": a.completed_at,
        "timeTaken": a.time_taken,
    }

class AssessmentService:
    def __init__(self, db: Session, settings: Settings, bank: Optional[QuestionBank] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.settings = settings
        self.bank = bank or QuestionBank(db)
        self.clock = clock
        self.users = UserRepository(db)
        self.assessments = AssessmentRepository(db)

    def start(self, user_id: str) -> StartedAssessment:
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        nxt = decide_next_step(user.certification_level)
        if nxt is None:
            raise AlreadyMaxLevel()

        count = self.settings.QUESTIONS_PER_ASSESSMENT
        questions = self.bank.sample(nxt.level.value, count)
        assessment = self.assessments.create_open(
            user_id, nxt.step, nxt.level.value, [q.id for q in questions], self.clock()
        )
        self.db.commit()
        logger.info(f"Assessment {assessment.id} started for user {user_id}: step {nxt.step}, level {nxt.level.value}")
        return StartedAssessment(
            assessment_id=assessment.id,
            step=nxt.step,
            level=nxt.level.value,
            questions=[public_question(q) for q in questions],
            time_limit=len(questions) * self.settings.SECONDS_PER_QUESTION,
        )

    def submit(self, user_id: str, assessment_id: Optional[str], answers) -> SubmissionResult:
        if not assessment_id or answers is None or not isinstance(answers, list):
            raise BadRequest("Assessment ID and answers are required")
        answers = [coerce_answer(a) for a in answers]
        loaded = self.assessments.get_with_answer_key(assessment_id)
        if loaded is None:
            raise NotFound("Assessment not found")
        assessment, answer_key = loaded
        if assessment.user_id != user_id:
            raise Unauthorized("You are not allowed to submit this assessment")
        if assessment.completed_at is not None:
            raise Conflict("Assessment already submitted")
        if len(answers) > len(answer_key):
            raise BadRequest(f"Expected at most {len(answer_key)} answers, got {len(answers)}")

        result = score_answers(answer_key, answers, assessment.step)
        now = self.clock()
        time_taken = max(int((now - assessment.started_at).total_seconds()), 0)
        awarded = result.awarded.value if result.awarded else None

        closed = self.assessments.close_if_open(
            assessment_id,
            answers=normalize_answers(answers, len(answer_key)),
            score=result.score,
            passed=result.passed,
            awarded=awarded,
            completed_at=now,
            time_taken=time_taken,
        )
        if not closed:
            self.db.rollback()
            raise Conflict("Assessment already submitted")

        self.users.record_attempt(user_id, now)
        if awarded:
            self.users.promote(user_id, awarded)
        self.db.commit()
        logger.info(
            f"Assessment {assessment_id} submitted by {user_id}: score={result.score:.2f} "
            f"passed={result.passed} awarded={awarded}"
        )
        return SubmissionResult(
            score=result.score,
            passed=result.passed,
            awarded_certification=awarded,
            correct_answers=result.correct,
            total_questions=result.total,
            time_taken=time_taken,
        )

    def history(self, user_id: str) -> List[Dict[str, Any]]:
        return [summary(a) for a in self.assessments.history_for_user(user_id)]
