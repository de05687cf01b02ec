from fastapi import APIRouter, Depends, Response
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from certexam.api.deps import get_settings, get_mailer, ok
from certexam.core.auth import TokenData, get_current_user
from certexam.core.config import Settings
from certexam.core.database import get_db
from certexam.services.certificates import CertificateService, certificate_view, attachment_name
from certexam.services.mailer import Mailer

router = APIRouter()

def certificate_service(db: Session = Depends(get_db), settings: Settings = Depends(get_settings),
                        mailer: Mailer = Depends(get_mailer)) -> CertificateService:
    return CertificateService(db, settings, mailer)

@router.post("/generate/{assessment_id}")
def generate_certificate(assessment_id: str, response: Response, user: TokenData = Depends(get_current_user),
                         svc: CertificateService = Depends(certificate_service)):
    issued = svc.generate(user.id, assessment_id)
    if not issued.created:
        return ok(certificate_view(issued.certificate), "Certificate already exists")
    response.status_code = 201
    message = "Certificate generated and sent successfully" if issued.email_sent \
        else "Certificate generated; email delivery failed"
    return ok(certificate_view(issued.certificate), message, emailSent=issued.email_sent)

@router.get("/my-certificates")
def my_certificates(user: TokenData = Depends(get_current_user),
                    svc: CertificateService = Depends(certificate_service)):
    items = [certificate_view(c) for c in svc.list_for_user(user.id)]
    return ok(items, count=len(items))

@router.get("/verify/{certificate_id}")
def verify_certificate(certificate_id: str, svc: CertificateService = Depends(certificate_service)):
    return ok(svc.verify(certificate_id))

@router.get("/{certificate_id}/download")
def download_certificate(certificate_id: str, user: TokenData = Depends(get_current_user),
                         svc: CertificateService = Depends(certificate_service)):
    certificate, path = svc.artifact_for_download(user.id, certificate_id)
    return FileResponse(path, media_type="application/pdf", filename=attachment_name(certificate))
