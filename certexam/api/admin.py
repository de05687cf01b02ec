from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.orm import Session

from certexam.api.deps import get_settings, get_mailer, ok
from certexam.core.auth import require_roles
from certexam.core.config import Settings
from certexam.core.database import get_db
from certexam.models.orm import CertificationLevel, UserRole
from certexam.services.admin import AdminService
from certexam.services.certificates import CertificateService, certificate_view
from certexam.services.identity import profile
from certexam.services.mailer import Mailer

router = APIRouter(dependencies=[Depends(require_roles("admin"))])

class ManageUser(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    isEmailVerified: Optional[bool] = None
    certificationLevel: Optional[CertificationLevel] = None

USER_FIELDS = {
    "name": "name",
    "role": "role",
    "isEmailVerified": "is_email_verified",
    "certificationLevel": "certification_level",
}

def admin_service(db: Session = Depends(get_db)) -> AdminService:
    return AdminService(db)

def user_row(u):
    return dict(profile(u), createdAt=u.created_at, updatedAt=u.updated_at)

@router.get("/get-system-stats")
def get_system_stats(svc: AdminService = Depends(admin_service)):
    return ok(svc.system_stats())

@router.get("/get-certification-stats")
def get_certification_stats(svc: AdminService = Depends(admin_service)):
    return ok(svc.certification_stats())

@router.get("/get-all-users")
def get_all_users(page: int = Query(default=1, ge=1), pageSize: int = Query(default=20, ge=1, le=100),
                  svc: AdminService = Depends(admin_service)):
    users, total = svc.users_page(page, pageSize)
    return ok([user_row(u) for u in users], count=len(users), total=total, page=page, pageSize=pageSize)

@router.get("/get-user/{user_id}")
def get_user(user_id: str, svc: AdminService = Depends(admin_service)):
    return ok(user_row(svc.get_user(user_id)))

@router.patch("/manage-user/{user_id}")
def manage_user(user_id: str, payload: ManageUser, svc: AdminService = Depends(admin_service)):
    changes = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        changes[USER_FIELDS[key]] = value.value if hasattr(value, "value") else value
    return ok(user_row(svc.update_user(user_id, changes)), "User updated")

@router.get("/get-question-bank-stats")
def get_question_bank_stats(svc: AdminService = Depends(admin_service)):
    return ok(svc.question_bank_stats())

@router.get("/get-security-logs")
def get_security_logs(page: int = Query(default=1, ge=1), limit: int = Query(default=15, ge=1, le=100),
                      svc: AdminService = Depends(admin_service)):
    logs, total = svc.security_logs(page, limit)
    data = [
        {
            "id": log.id,
            "level": log.level,
            "category": log.category,
            "message": log.message,
            "metadata": log.details,
            "userId": log.user_id,
            "ipAddress": log.ip_address,
            "userAgent": log.user_agent,
            "createdAt": log.created_at,
        }
        for log in logs
    ]
    pages = (total + limit - 1) // limit
    return ok(data, pagination={"page": page, "limit": limit, "total": total, "pages": pages})

@router.patch("/certificates/{certificate_id}/revoke")
def revoke_certificate(certificate_id: str, db: Session = Depends(get_db),
                       settings: Settings = Depends(get_settings), mailer: Mailer = Depends(get_mailer)):
    certificate = CertificateService(db, settings, mailer).revoke(certificate_id)
    return ok(certificate_view(certificate), "Certificate revoked")
