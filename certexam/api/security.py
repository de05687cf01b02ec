from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

from certexam.api.deps import get_audit, get_proctor, ok
from certexam.core.auth import TokenData, get_current_user
from certexam.models.orm import LogLevel, LogCategory
from certexam.services.audit import AuditLog
from certexam.services.proctoring import Proctor

router = APIRouter()

class SecurityEvent(BaseModel):
    eventType: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=1000)
    metadata: Optional[Dict[str, Any]] = None

class ProcessList(BaseModel):
    processes: List[str] = []

class ScreenSharing(BaseModel):
    isSharing: bool = False
    screens: int = Field(default=1, ge=0)

class Webcam(BaseModel):
    hasWebcam: bool
    isActive: bool

@router.post("/check-environment")
def check_environment(user: TokenData = Depends(get_current_user)):
    # environment probing happens client side; the server only acknowledges
    return ok({"valid": True}, "Environment check passed")

@router.post("/log-event", status_code=201)
def log_event(payload: SecurityEvent, request: Request, user: TokenData = Depends(get_current_user),
              audit: AuditLog = Depends(get_audit)):
    audit.record(
        LogLevel.SECURITY, LogCategory.SECURITY, f"{payload.eventType}: {payload.message}",
        payload.metadata, user_id=user.id, request=request,
    )
    return ok(message="Security event logged")

@router.post("/check-processes")
def check_processes(payload: ProcessList, proctor: Proctor = Depends(get_proctor)):
    proctor.check_processes(payload.processes)
    return ok(message="No forbidden processes detected")

@router.post("/check-screen-sharing")
def check_screen_sharing(payload: ScreenSharing, proctor: Proctor = Depends(get_proctor)):
    proctor.check_screen_sharing(payload.isSharing, payload.screens)
    return ok(message="Screen sharing check passed")

@router.post("/verify-webcam")
def verify_webcam(payload: Webcam, proctor: Proctor = Depends(get_proctor)):
    proctor.check_webcam(payload.hasWebcam, payload.isActive)
    return ok(message="Webcam verified")
