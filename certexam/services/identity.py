from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Any
from sqlalchemy.orm import Session
import logging
import secrets

from certexam.core.auth import CredentialService, TokenService, digest_token
from certexam.core.config import Settings
from certexam.core.errors import BadRequest, Unauthorized, Forbidden, NotFound, Conflict, Gone
from certexam.models.orm import User, UserRole, utcnow
from certexam.repositories import UserRepository
from certexam.services.mailer import Mailer

logger = logging.getLogger(__name__)

def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))

def profile(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "isEmailVerified": user.is_email_verified,
        "certificationLevel": user.certification_level,
        "lastAssessmentDate": user.last_assessment_date,
        "assessmentAttempts": user.assessment_attempts,
    }

@dataclass
class SignedIn:
    user: User
    access_token: str
    refresh_token: str

class IdentityService:
    """Registration, email verification, sign-in and password recovery."""

    def __init__(self, db: Session, settings: Settings, mailer: Mailer):
        self.db = db
        self.settings = settings
        self.mailer = mailer
        self.users = UserRepository(db)
        self.credentials = CredentialService(settings.BCRYPT_ROUNDS)
        self.tokens = TokenService(settings)

    def _require(self, email: str) -> User:
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound("User not found")
        return user

    def _issue_otp(self, user: User, subject: str) -> None:
        user.otp = generate_otp()
        user.otp_expires_at = utcnow() + timedelta(minutes=self.settings.OTP_EXPIRE_MINUTES)
        self.db.commit()
        self.mailer.send(
            user.email, subject, "otp-verification",
            {"name": user.name, "otp": user.otp, "expiryMinutes": self.settings.OTP_EXPIRE_MINUTES},
        )

    def _otp_matches(self, user: User, otp: str) -> bool:
        # compare_digest only accepts ASCII str, so compare the encoded bytes
        return bool(user.otp) and secrets.compare_digest(user.otp.encode("utf-8"), otp.encode("utf-8"))

    def _check_otp(self, user: User, otp: str) -> bool:
        """True when the code matches and has not expired."""
        return self._otp_matches(user, otp) \
            and user.otp_expires_at is not None and user.otp_expires_at >= utcnow()

    def register(self, name: str, email: str, password: str) -> User:
        if self.users.get_by_email(email) is not None:
            raise Conflict("Email already registered")
        user = self.users.add(User(
            name=name.strip(),
            email=email.lower(),
            password_hash=self.credentials.hash(password),
            role=UserRole.STUDENT.value,
        ))
        logger.info(f"User {user.id} registered")
        self._issue_otp(user, "Verify Your Email")
        return user

    def verify_email(self, email: str, otp: str) -> User:
        user = self._require(email)
        if user.is_email_verified:
            raise Conflict("Email already verified")
        if not self._otp_matches(user, otp):
            raise Unauthorized("Invalid OTP")
        if user.otp_expires_at is None or user.otp_expires_at < utcnow():
            raise Gone("OTP has expired")
        user.is_email_verified = True
        user.otp = None
        user.otp_expires_at = None
        self.db.commit()
        return user

    def resend_otp(self, email: str) -> None:
        user = self._require(email)
        if user.is_email_verified:
            raise Conflict("Email already verified")
        self._issue_otp(user, "Verify Your Email")

    def sign_in(self, email: str, password: str) -> SignedIn:
        user = self._require(email)
        if not self.credentials.verify(password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        if not user.is_email_verified:
            raise Forbidden("Please verify your email first")
        access = self.tokens.issue_access(user)
        refresh = self.tokens.issue_refresh(user)
        user.refresh_token_hash = digest_token(refresh)
        self.db.commit()
        logger.info(f"User {user.id} signed in")
        return SignedIn(user, access, refresh)

    def refresh_access(self, refresh_token: str) -> str:
        if not refresh_token:
            raise Unauthorized("Refresh token required")
        payload = self.tokens.decode_refresh(refresh_token)
        user = self.users.get(payload.get("id", ""))
        if user is None or not user.refresh_token_hash \
                or not secrets.compare_digest(user.refresh_token_hash, digest_token(refresh_token)):
            raise Unauthorized("Invalid or expired refresh token")
        return self.tokens.issue_access(user)

    def get_profile(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def sign_out(self, user_id: str) -> None:
        user = self.users.get(user_id)
        if user is not None:
            user.refresh_token_hash = None
            self.db.commit()

    def forgot_password(self, email: str) -> None:
        user = self._require(email)
        self._issue_otp(user, "Reset Your Password")

    def reset_password(self, email: str, otp: str, new_password: str) -> None:
        user = self._require(email)
        if not self._check_otp(user, otp):
            raise BadRequest("Invalid or expired OTP")
        user.password_hash = self.credentials.hash(new_password)
        user.otp = None
        user.otp_expires_at = None
        user.refresh_token_hash = None
        self.db.commit()
        logger.info(f"Password reset for user {user.id}")
