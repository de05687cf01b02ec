"""
Repository layer: the only code that issues queries against the store.

Each repository wraps a request-scoped ``Session``; callers own the
transaction and decide when to commit.
"""
from datetime import datetime
from typing import List, Optional, Tuple, Dict, Any, Sequence
from sqlalchemy import select, update, func, case
from sqlalchemy.orm import Session, selectinload

from certexam.models.orm import (
    User, Question, Assessment, AssessmentItem, Certificate, SystemLog,
)

class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(select(User).where(User.email == email.lower())).scalar_one_or_none()

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def list_page(self, offset: int, limit: int) -> Tuple[List[User], int]:
        total = self.db.execute(select(func.count(User.id))).scalar_one()
        rows = self.db.execute(
            select(User).order_by(User.created_at.desc()).offset(offset).limit(limit)
        ).scalars().all()
        return list(rows), total

    def count(self) -> int:
        return self.db.execute(select(func.count(User.id))).scalar_one()

    def count_assessed_since(self, since: datetime) -> int:
        return self.db.execute(
            select(func.count(User.id)).where(User.last_assessment_date >= since)
        ).scalar_one()

    def record_attempt(self, user_id: str, when: datetime) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(assessment_attempts=User.assessment_attempts + 1, last_assessment_date=when)
        )

    def promote(self, user_id: str, level: str) -> bool:
        """Raise the user's level to ``level`` only if it is strictly higher than the current one."""
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.certification_level < level)
            .values(certification_level=level)
        )
        return result.rowcount == 1

class QuestionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, question_id: str) -> Optional[Question]:
        return self.db.get(Question, question_id)

    def add(self, question: Question) -> Question:
        self.db.add(question)
        self.db.flush()
        return question

    def list_active(
        self,
        competency: Optional[str],
        levels: Optional[Sequence[str]],
        offset: int,
        limit: int,
    ) -> Tuple[List[Question], int]:
        conds = [Question.is_active.is_(True)]
        if competency:
            conds.append(Question.competency == competency)
        if levels:
            conds.append(Question.level.in_(list(levels)))
        total = self.db.execute(select(func.count(Question.id)).where(*conds)).scalar_one()
        rows = self.db.execute(
            select(Question).where(*conds).order_by(Question.created_at.desc(), Question.id).offset(offset).limit(limit)
        ).scalars().all()
        return list(rows), total

    def active_ids_by_level(self, level: str) -> List[str]:
        return list(self.db.execute(
            select(Question.id).where(Question.level == level, Question.is_active.is_(True)).order_by(Question.id)
        ).scalars().all())

    def get_many(self, ids: Sequence[str]) -> Dict[str, Question]:
        rows = self.db.execute(select(Question).where(Question.id.in_(list(ids)))).scalars().all()
        return {q.id: q for q in rows}

    def count(self) -> int:
        return self.db.execute(select(func.count(Question.id))).scalar_one()

    def stats_by_competency_level(self) -> List[Dict[str, Any]]:
        active = func.sum(case((Question.is_active.is_(True), 1), else_=0))
        rows = self.db.execute(
            select(Question.competency, Question.level, func.count(Question.id), active)
            .group_by(Question.competency, Question.level)
            .order_by(Question.competency, Question.level)
        ).all()
        return [
            {"competency": r[0], "level": r[1], "count": int(r[2]), "active": int(r[3] or 0)}
            for r in rows
        ]

class AssessmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_open(self, user_id: str, step: int, level: str, question_ids: Sequence[str], started_at: datetime) -> Assessment:
        assessment = Assessment(
            user_id=user_id, step=step, level_tested=level, answers=[],
            score=0.0, passed=False, started_at=started_at,
        )
        assessment.items = [AssessmentItem(question_id=qid, position=i) for i, qid in enumerate(question_ids)]
        self.db.add(assessment)
        self.db.flush()
        return assessment

    def get(self, assessment_id: str) -> Optional[Assessment]:
        return self.db.get(Assessment, assessment_id)

    def get_with_answer_key(self, assessment_id: str) -> Optional[Tuple[Assessment, List[int]]]:
        assessment = self.db.execute(
            select(Assessment)
            .where(Assessment.id == assessment_id)
            .options(selectinload(Assessment.items).selectinload(AssessmentItem.question))
        ).scalar_one_or_none()
        if assessment is None:
            return None
        return assessment, [item.question.correct_answer for item in assessment.items]

    def close_if_open(
        self,
        assessment_id: str,
        *,
        answers: List[Optional[int]],
        score: float,
        passed: bool,
        awarded: Optional[str],
        completed_at: datetime,
        time_taken: int,
    ) -> bool:
        """Compare-and-set Open -> Closed. Returns False when another submission already closed it."""
        result = self.db.execute(
            update(Assessment)
            .where(Assessment.id == assessment_id, Assessment.completed_at.is_(None))
            .values(
                answers=answers, score=score, passed=passed, awarded_certification=awarded,
                completed_at=completed_at, time_taken=time_taken,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def history_for_user(self, user_id: str) -> List[Assessment]:
        return list(self.db.execute(
            select(Assessment)
            .where(Assessment.user_id == user_id)
            .order_by(Assessment.completed_at.is_(None), Assessment.completed_at.desc(), Assessment.started_at.desc())
        ).scalars().all())

    def get_passed_for_user(self, assessment_id: str, user_id: str) -> Optional[Assessment]:
        return self.db.execute(
            select(Assessment).where(
                Assessment.id == assessment_id,
                Assessment.user_id == user_id,
                Assessment.passed.is_(True),
            )
        ).scalar_one_or_none()

    def count(self, passed_only: bool = False) -> int:
        stmt = select(func.count(Assessment.id))
        if passed_only:
            stmt = stmt.where(Assessment.passed.is_(True))
        return self.db.execute(stmt).scalar_one()

    def certification_stats(self) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(Assessment.awarded_certification, func.count(Assessment.id), func.avg(Assessment.score))
            .where(Assessment.passed.is_(True), Assessment.awarded_certification.is_not(None))
            .group_by(Assessment.awarded_certification)
            .order_by(Assessment.awarded_certification)
        ).all()
        return [
            {"level": r[0], "count": int(r[1]), "avgScore": round(float(r[2] or 0.0), 2)}
            for r in rows
        ]

class CertificateRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, certificate: Certificate) -> Certificate:
        self.db.add(certificate)
        self.db.flush()
        return certificate

    def get_by_assessment(self, assessment_id: str) -> Optional[Certificate]:
        return self.db.execute(
            select(Certificate).where(Certificate.assessment_id == assessment_id)
        ).scalar_one_or_none()

    def get_by_certificate_id(self, certificate_id: str) -> Optional[Certificate]:
        return self.db.execute(
            select(Certificate)
            .where(Certificate.certificate_id == certificate_id)
            .options(selectinload(Certificate.user), selectinload(Certificate.assessment))
        ).scalar_one_or_none()

    def certificate_id_exists(self, certificate_id: str) -> bool:
        return self.db.execute(
            select(func.count(Certificate.id)).where(Certificate.certificate_id == certificate_id)
        ).scalar_one() > 0

    def list_for_user(self, user_id: str) -> List[Certificate]:
        return list(self.db.execute(
            select(Certificate)
            .where(Certificate.user_id == user_id, Certificate.is_revoked.is_(False))
            .order_by(Certificate.issued_at.desc())
        ).scalars().all())

    def count(self) -> int:
        return self.db.execute(select(func.count(Certificate.id))).scalar_one()

class SystemLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, entry: SystemLog) -> SystemLog:
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_by_category(self, category: str, offset: int, limit: int) -> Tuple[List[SystemLog], int]:
        total = self.db.execute(
            select(func.count(SystemLog.id)).where(SystemLog.category == category)
        ).scalar_one()
        rows = self.db.execute(
            select(SystemLog)
            .where(SystemLog.category == category)
            .order_by(SystemLog.created_at.desc(), SystemLog.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), total
