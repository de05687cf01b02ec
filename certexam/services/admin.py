from datetime import timedelta
from typing import Dict, Any, List, Tuple, Optional
from sqlalchemy.orm import Session

from certexam.core.errors import NotFound
from certexam.models.orm import User, SystemLog, LogCategory, utcnow
from certexam.repositories import (
    UserRepository, QuestionRepository, AssessmentRepository,
    CertificateRepository, SystemLogRepository,
)

ACTIVE_WINDOW_DAYS = 30

class AdminService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.questions = QuestionRepository(db)
        self.assessments = AssessmentRepository(db)
        self.certificates = CertificateRepository(db)
        self.logs = SystemLogRepository(db)

    def system_stats(self) -> Dict[str, Any]:
        total = self.assessments.count()
        passed = self.assessments.count(passed_only=True)
        return {
            "totalUsers": self.users.count(),
            "activeUsers": self.users.count_assessed_since(utcnow() - timedelta(days=ACTIVE_WINDOW_DAYS)),
            "totalAssessments": total,
            "passedAssessments": passed,
            "passRate": (passed / total) * 100 if total else 0,
            "totalCertificates": self.certificates.count(),
            "totalQuestions": self.questions.count(),
        }

    def certification_stats(self) -> List[Dict[str, Any]]:
        return self.assessments.certification_stats()

    def question_bank_stats(self) -> List[Dict[str, Any]]:
        return self.questions.stats_by_competency_level()

    def users_page(self, page: int, page_size: int) -> Tuple[List[User], int]:
        return self.users.list_page((page - 1) * page_size, page_size)

    def get_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def update_user(self, user_id: str, changes: Dict[str, Optional[Any]]) -> User:
        user = self.get_user(user_id)
        for attr, value in changes.items():
            setattr(user, attr, value)
        self.db.commit()
        return user

    def security_logs(self, page: int, limit: int) -> Tuple[List[SystemLog], int]:
        return self.logs.list_by_category(LogCategory.SECURITY.value, (page - 1) * limit, limit)
