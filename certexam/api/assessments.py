from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional, Any
from sqlalchemy.orm import Session

from certexam.api.deps import get_settings, require_seb, ok
from certexam.core.auth import TokenData, get_current_user
from certexam.core.config import Settings
from certexam.core.database import get_db
from certexam.services.assessments import AssessmentService

router = APIRouter()

class SubmitAssessment(BaseModel):
    assessmentId: Optional[str] = None
    # left untyped; AssessmentService.submit validates and coerces the entries
    answers: Optional[Any] = None

def assessment_service(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> AssessmentService:
    return AssessmentService(db, settings)

@router.post("/start-assessment", dependencies=[Depends(require_seb)])
def start_assessment(user: TokenData = Depends(get_current_user),
                     svc: AssessmentService = Depends(assessment_service)):
    started = svc.start(user.id)
    return ok({
        "assessmentId": started.assessment_id,
        "step": started.step,
        "level": started.level,
        "questions": started.questions,
        "timeLimit": started.time_limit,
    })

@router.post("/submit-assessment", dependencies=[Depends(require_seb)])
def submit_assessment(payload: SubmitAssessment, user: TokenData = Depends(get_current_user),
                      svc: AssessmentService = Depends(assessment_service)):
    result = svc.submit(user.id, payload.assessmentId, payload.answers)
    return ok({
        "score": result.score,
        "passed": result.passed,
        "awardedCertification": result.awarded_certification,
        "correctAnswers": result.correct_answers,
        "totalQuestions": result.total_questions,
        "timeTaken": result.time_taken,
    })

@router.get("/history")
def history(user: TokenData = Depends(get_current_user), svc: AssessmentService = Depends(assessment_service)):
    items = svc.history(user.id)
    return ok(items, count=len(items))
