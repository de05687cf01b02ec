"""
Certificate issuance.

The certificate record is committed first; the PDF artifact and the email
are produced afterwards so that a failing disk or mail transport never
rolls back an issued certificate.
"""
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import List, Dict, Any, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging
import secrets

from certexam.core.config import Settings
from certexam.core.errors import BadRequest, NotFound, Conflict
from certexam.models.orm import Certificate, User, utcnow
from certexam.repositories import AssessmentRepository, CertificateRepository, UserRepository
from certexam.services.mailer import Mailer, Attachment
from certexam.services.pdf import CertificateContent, render_certificate_pdf

logger = logging.getLogger(__name__)

ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ID_LENGTH = 10
MAX_ID_ATTEMPTS = 5

def new_certificate_id(prefix: str) -> str:
    return f"{prefix}-" + "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))

def certificate_view(c: Certificate) -> Dict[str, Any]:
    return {
        "id": c.id,
        "certificateId": c.certificate_id,
        "userId": c.user_id,
        "assessmentId": c.assessment_id,
        "level": c.level,
        "issuedAt": c.issued_at,
        "expiresAt": c.expires_at,
        "downloadUrl": c.download_url,
        "isRevoked": c.is_revoked,
    }

def attachment_name(c: Certificate) -> str:
    return f"Certificate_{c.level}_{c.certificate_id}.pdf"

@dataclass
class Issued:
    certificate: Certificate
    created: bool
    email_sent: bool = False

class CertificateService:
    def __init__(self, db: Session, settings: Settings, mailer: Mailer):
        self.db = db
        self.settings = settings
        self.mailer = mailer
        self.assessments = AssessmentRepository(db)
        self.certificates = CertificateRepository(db)
        self.users = UserRepository(db)

    # ----- paths and urls -----

    @property
    def directory(self) -> Path:
        return Path(self.settings.CERTIFICATES_DIR)

    def download_url(self, certificate_id: str) -> str:
        return f"{self.settings.BASE_URL.rstrip('/')}{self.settings.API_V1_PREFIX}/certificates/{certificate_id}/download"

    def verify_url(self, certificate_id: str) -> str:
        return f"{self.settings.BASE_URL.rstrip('/')}/verify/{certificate_id}"

    def _allocate_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = new_certificate_id(self.settings.CERTIFICATE_ID_PREFIX)
            if not self.certificates.certificate_id_exists(candidate):
                return candidate
        raise Conflict("Could not allocate a unique certificate id")

    # ----- artifact -----

    def render(self, certificate: Certificate, user: User) -> bytes:
        return render_certificate_pdf(CertificateContent(
            holder_name=user.name,
            level=certificate.level,
            certificate_id=certificate.certificate_id,
            issued_at=certificate.issued_at,
            verify_url=self.verify_url(certificate.certificate_id),
            issuer=self.settings.APP_NAME,
        ))

    def write_artifact(self, certificate: Certificate, user: User) -> Tuple[Path, bytes]:
        pdf = self.render(certificate, user)
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{certificate.certificate_id}.pdf"
        path.write_bytes(pdf)
        return path, pdf

    # ----- operations -----

    def generate(self, user_id: str, assessment_id: str) -> Issued:
        assessment = self.assessments.get_passed_for_user(assessment_id, user_id)
        if assessment is None:
            raise NotFound("No passed assessment found")
        if not assessment.awarded_certification:
            raise BadRequest("No certification level awarded")

        existing = self.certificates.get_by_assessment(assessment_id)
        if existing is not None:
            return Issued(existing, created=False)

        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")

        issued_at = utcnow()
        certificate_id = self._allocate_id()
        certificate = Certificate(
            user_id=user_id,
            assessment_id=assessment_id,
            level=assessment.awarded_certification,
            certificate_id=certificate_id,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(days=self.settings.CERTIFICATE_VALIDITY_DAYS),
            download_url=self.download_url(certificate_id),
        )
        try:
            self.certificates.add(certificate)
            self.db.commit()
        except IntegrityError:
            # a concurrent request issued it first
            self.db.rollback()
            existing = self.certificates.get_by_assessment(assessment_id)
            if existing is None:
                raise
            return Issued(existing, created=False)
        logger.info(f"Certificate {certificate_id} issued to {user_id} for assessment {assessment_id}")

        pdf = None
        try:
            path, pdf = self.write_artifact(certificate, user)
            certificate.file_path = str(path)
            self.db.commit()
        except OSError:
            logger.exception(f"Could not write certificate artifact {certificate_id}")
            self.db.rollback()

        attachments = [Attachment(attachment_name(certificate), pdf, "application/pdf")] if pdf else []
        result = self.mailer.send(
            user.email,
            f"Your {certificate.level} Certification from {self.settings.APP_NAME}",
            "certificate",
            {
                "name": user.name,
                "level": certificate.level,
                "certificateId": certificate_id,
                "issueDate": f"{issued_at:%B} {issued_at.day}, {issued_at.year}",
                "expiryDate": f"{certificate.expires_at:%B} {certificate.expires_at.day}, {certificate.expires_at.year}",
                "downloadUrl": certificate.download_url,
                "verifyUrl": self.verify_url(certificate_id),
            },
            attachments,
        )
        return Issued(certificate, created=True, email_sent=result.success)

    def artifact_for_download(self, user_id: str, certificate_id: str) -> Tuple[Certificate, Path]:
        """Owner's non-revoked certificate and its file, regenerating the file if it went missing."""
        certificate = self.certificates.get_by_certificate_id(certificate_id)
        if certificate is None or certificate.is_revoked or certificate.user_id != user_id:
            raise NotFound("Certificate not found or revoked")
        path = Path(certificate.file_path) if certificate.file_path else None
        if path is None or not path.exists():
            logger.info(f"Regenerating missing artifact for {certificate_id}")
            path, _ = self.write_artifact(certificate, certificate.user)
            certificate.file_path = str(path)
            self.db.commit()
        return certificate, path

    def list_for_user(self, user_id: str) -> List[Certificate]:
        return self.certificates.list_for_user(user_id)

    def verify(self, certificate_id: str) -> Dict[str, Any]:
        certificate = self.certificates.get_by_certificate_id(certificate_id)
        if certificate is None or certificate.is_revoked:
            raise NotFound("Certificate not found or revoked")
        data = certificate_view(certificate)
        data["user"] = {"name": certificate.user.name, "email": certificate.user.email}
        data["assessment"] = {
            "score": certificate.assessment.score,
            "completedAt": certificate.assessment.completed_at,
        }
        return {"valid": True, "certificate": data, "verificationDate": utcnow()}

    def revoke(self, certificate_id: str) -> Certificate:
        certificate = self.certificates.get_by_certificate_id(certificate_id)
        if certificate is None:
            raise NotFound("Certificate not found")
        if certificate.is_revoked:
            raise Conflict("Certificate already revoked")
        certificate.is_revoked = True
        self.db.commit()
        logger.info(f"Certificate {certificate_id} revoked")
        return certificate
