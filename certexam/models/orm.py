from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer, String, Text, Boolean, Float, DateTime, ForeignKey, JSON,
    Index, UniqueConstraint,
)
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import enum
import uuid

def utcnow() -> datetime:
    # stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

def new_id() -> str:
    return uuid.uuid4().hex

class CertificationLevel(str, enum.Enum):
    """Ordered certification levels; the codes sort lexicographically in rank order."""
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STUDENT = "student"
    SUPERVISOR = "supervisor"

class LogLevel(str, enum.Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"
    SECURITY = "security"

class LogCategory(str, enum.Enum):
    AUTHENTICATION = "authentication"
    ASSESSMENT = "assessment"
    USER = "user"
    SYSTEM = "system"
    SECURITY = "security"
    EMAIL = "email"

class Competency(str, enum.Enum):
    DIGITAL_LITERACY = "Digital Literacy"
    PROGRAMMING = "Programming"
    NETWORKING = "Networking"
    DATABASES = "Databases"
    CYBERSECURITY = "Cybersecurity"
    CLOUD_COMPUTING = "Cloud Computing"

class Base(DeclarativeBase): pass

# ========== Identity ==========

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    certification_level: Mapped[str] = mapped_column(
        String(2), nullable=False, default=CertificationLevel.A1.value
    )
    assessment_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_assessment_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    refresh_token_hash: Mapped[Optional[str]] = mapped_column(String(64))
    otp: Mapped[Optional[str]] = mapped_column(String(6))
    otp_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

# ========== Question Bank ==========

class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_q_level_active", "level", "is_active"),
        Index("idx_q_competency", "competency"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    competency: Mapped[str] = mapped_column(String(50), nullable=False)
    level: Mapped[str] = mapped_column(String(2), nullable=False)
    question_text: Mapped[str] = mapped_column(String(500), nullable=False)
    options: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    correct_answer: Mapped[int] = mapped_column(Integer, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

# ========== Delivery ==========

class Assessment(Base):
    __tablename__ = "assessments"
    __table_args__ = (
        Index("idx_a_user", "user_id"),
        Index("idx_a_completed", "completed_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    step: Mapped[int] = mapped_column(Integer, nullable=False)
    level_tested: Mapped[str] = mapped_column(String(2), nullable=False)
    answers: Mapped[List[Optional[int]]] = mapped_column(JSON, default=list, nullable=False)
    score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    time_taken: Mapped[Optional[int]] = mapped_column(Integer)
    awarded_certification: Mapped[Optional[str]] = mapped_column(String(2))

    items: Mapped[List["AssessmentItem"]] = relationship(
        back_populates="assessment", cascade="all, delete-orphan", order_by="AssessmentItem.position"
    )

class AssessmentItem(Base):
    __tablename__ = "assessment_items"
    __table_args__ = (
        UniqueConstraint("assessment_id", "position", name="uq_assessment_item_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[str] = mapped_column(String(32), ForeignKey("questions.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    assessment: Mapped["Assessment"] = relationship(back_populates="items")
    question: Mapped["Question"] = relationship()

# ========== Certificates ==========

class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        Index("idx_c_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assessment_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("assessments.id"), unique=True, nullable=False
    )
    level: Mapped[str] = mapped_column(String(2), nullable=False)
    certificate_id: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    download_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(String(500))
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship()
    assessment: Mapped["Assessment"] = relationship()

# ========== Audit ==========

class SystemLog(Base):
    __tablename__ = "system_logs"
    __table_args__ = (
        Index("idx_sl_category", "category", "created_at"),
        Index("idx_sl_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    user_id: Mapped[Optional[str]] = mapped_column(String(32))
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
