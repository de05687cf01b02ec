from fastapi import Depends, Request
from typing import Any, Dict, Optional

from certexam.core.auth import TokenData, get_current_user
from certexam.core.config import Settings
from certexam.services.audit import AuditLog
from certexam.services.mailer import Mailer
from certexam.services.proctoring import Proctor

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_audit(request: Request) -> AuditLog:
    return AuditLog(request.app.state.session_factory)

def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer

def get_proctor(request: Request, user: TokenData = Depends(get_current_user),
                audit: AuditLog = Depends(get_audit)) -> Proctor:
    return Proctor(audit, user.id, request)

def require_seb(request: Request, proctor: Proctor = Depends(get_proctor),
                settings: Settings = Depends(get_settings)) -> None:
    """Safe Exam Browser gate for assessment routes, active when SEB_REQUIRED is set."""
    if settings.SEB_REQUIRED:
        proctor.verify_seb(settings, request.headers)

def ok(data: Any = None, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body

