from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from typing import List, Optional
from sqlalchemy.orm import Session

from certexam.api.deps import ok
from certexam.core.auth import require_roles
from certexam.core.database import get_db
from certexam.models.orm import CertificationLevel, Competency
from certexam.services.question_bank import QuestionBank, public_question, admin_question

router = APIRouter(dependencies=[Depends(require_roles("admin"))])

class QuestionCreate(BaseModel):
    competency: Competency
    level: CertificationLevel
    questionText: str = Field(min_length=1, max_length=500)
    options: List[str]
    correctAnswer: int
    explanation: str = Field(min_length=1)

class QuestionUpdate(BaseModel):
    competency: Optional[Competency] = None
    level: Optional[CertificationLevel] = None
    questionText: Optional[str] = Field(default=None, min_length=1, max_length=500)
    options: Optional[List[str]] = None
    correctAnswer: Optional[int] = None
    explanation: Optional[str] = Field(default=None, min_length=1)

FIELD_MAP = {
    "competency": "competency",
    "level": "level",
    "questionText": "question_text",
    "options": "options",
    "correctAnswer": "correct_answer",
    "explanation": "explanation",
}

def bank(db: Session = Depends(get_db)) -> QuestionBank:
    return QuestionBank(db)

@router.post("/create", status_code=201)
def create_question(payload: QuestionCreate, qb: QuestionBank = Depends(bank)):
    q = qb.create(
        competency=payload.competency.value,
        level=payload.level.value,
        question_text=payload.questionText,
        options=payload.options,
        correct_answer=payload.correctAnswer,
        explanation=payload.explanation,
    )
    return ok(admin_question(q))

@router.get("/questions")
def list_questions(
    competency: Optional[str] = None,
    levels: Optional[str] = Query(default=None, description="comma separated levels"),
    page: int = Query(default=1, ge=1),
    pageSize: int = Query(default=10, ge=1, le=100),
    qb: QuestionBank = Depends(bank),
):
    level_list = [lv.strip() for lv in levels.split(",") if lv.strip()] if levels else None
    items, total = qb.list_active(competency, level_list, page, pageSize)
    return ok(items=[public_question(q) for q in items], total=total, page=page, pageSize=pageSize)

@router.put("/update-question/{question_id}")
def update_question(question_id: str, payload: QuestionUpdate, qb: QuestionBank = Depends(bank)):
    changes = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        changes[FIELD_MAP[key]] = value.value if hasattr(value, "value") else value
    q = qb.update(question_id, changes)
    return ok(admin_question(q))

@router.patch("/toggle-question-status/{question_id}")
def toggle_question_status(question_id: str, qb: QuestionBank = Depends(bank)):
    q = qb.toggle(question_id)
    return ok({"id": q.id, "isActive": q.is_active})
