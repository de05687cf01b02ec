from typing import Optional, List, Dict, Any, Sequence, Tuple
from sqlalchemy.orm import Session
import logging
import random

from certexam.core.errors import BadRequest, NotFound, InsufficientQuestions
from certexam.models.orm import Question
from certexam.repositories import QuestionRepository

logger = logging.getLogger(__name__)

OPTION_COUNT = 4

def public_question(q: Question) -> Dict[str, Any]:
    """Client-facing view of a question; never carries the correct answer."""
    return {
        "id": q.id,
        "competency": q.competency,
        "level": q.level,
        "questionText": q.question_text,
        "options": list(q.options),
        "isActive": q.is_active,
    }

def admin_question(q: Question) -> Dict[str, Any]:
    return dict(
        public_question(q),
        correctAnswer=q.correct_answer,
        explanation=q.explanation,
        createdAt=q.created_at,
        updatedAt=q.updated_at,
    )

def _check_options(options: Optional[Sequence[str]], correct_answer: Optional[int]) -> None:
    if options is not None and len(options) != OPTION_COUNT:
        raise BadRequest("Exactly 4 options are required")
    if correct_answer is not None and not 0 <= correct_answer < OPTION_COUNT:
        raise BadRequest("Correct answer must be between 0 and 3")

class QuestionBank:
    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.repo = QuestionRepository(db)
        self.rng = rng or random.SystemRandom()

    def sample(self, level: str, count: int) -> List[Question]:
        """Uniform sample of ``count`` distinct active questions at ``level``."""
        ids = self.repo.active_ids_by_level(level)
        if len(ids) < count:
            logger.warning(f"Question pool too small for {level}: {len(ids)} < {count}")
            raise InsufficientQuestions(level, len(ids), count)
        chosen = self.rng.sample(ids, count)
        by_id = self.repo.get_many(chosen)
        return [by_id[qid] for qid in chosen]

    def create(self, *, competency: str, level: str, question_text: str, options: List[str],
               correct_answer: int, explanation: str) -> Question:
        _check_options(options, correct_answer)
        q = self.repo.add(Question(
            competency=competency, level=level, question_text=question_text,
            options=list(options), correct_answer=correct_answer, explanation=explanation,
            is_active=True,
        ))
        self.db.commit()
        logger.info(f"Question {q.id} created ({competency}/{level})")
        return q

    def list_active(self, competency: Optional[str], levels: Optional[List[str]],
                    page: int, page_size: int) -> Tuple[List[Question], int]:
        return self.repo.list_active(competency, levels, (page - 1) * page_size, page_size)

    def update(self, question_id: str, changes: Dict[str, Any]) -> Question:
        q = self.repo.get(question_id)
        if q is None:
            raise NotFound("Question not found")
        _check_options(changes.get("options"), changes.get("correct_answer"))
        for attr, value in changes.items():
            setattr(q, attr, list(value) if attr == "options" else value)
        self.db.commit()
        return q

    def toggle(self, question_id: str) -> Question:
        q = self.repo.get(question_id)
        if q is None:
            raise NotFound("Question not found")
        q.is_active = not q.is_active
        self.db.commit()
        logger.info(f"Question {q.id} active={q.is_active}")
        return q
