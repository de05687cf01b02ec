"""
Proctoring gates.

These are boolean checks over client-reported facts. Each rejection is
written to the system log first and then raised as ``Forbidden``; a failed
log write is reported through the application logger and never replaces
the rejection.
"""
from typing import Optional, List, Dict, Any, Sequence
from fastapi import Request
import hashlib
import logging

from certexam.core.config import Settings
from certexam.core.errors import Forbidden
from certexam.models.orm import LogLevel, LogCategory
from certexam.services.audit import AuditLog

logger = logging.getLogger(__name__)

FORBIDDEN_PROCESSES = (
    "teamviewer", "anydesk", "vnc", "remote", "cmd", "powershell",
    "terminal", "regedit", "cheatengine", "wireshark", "fiddler",
)

SEB_CONFIG_HEADER = "x-safeexambrowser-configkeyhash"
SEB_EXAM_KEY_HEADER = "x-safeexambrowser-examkey"

def seb_config_hash(config_key: str) -> str:
    return hashlib.sha256(config_key.encode("utf-8")).hexdigest().upper()

def detect_forbidden(processes: Sequence[str]) -> List[str]:
    return [p for p in processes if any(f in p.lower() for f in FORBIDDEN_PROCESSES)]

class Proctor:
    def __init__(self, audit: AuditLog, user_id: Optional[str] = None, request: Optional[Request] = None):
        self.audit = audit
        self.user_id = user_id
        self.request = request

    def _reject(self, log_message: str, error: str, metadata: Optional[Dict[str, Any]] = None,
                category: LogCategory = LogCategory.ASSESSMENT) -> None:
        self.audit.record_safely(
            LogLevel.SECURITY, category, log_message, metadata,
            user_id=self.user_id, request=self.request,
        )
        logger.warning(f"Proctoring rejection for {self.user_id}: {log_message}")
        raise Forbidden(error)

    def check_processes(self, processes: Sequence[str]) -> None:
        detected = detect_forbidden(processes)
        if detected:
            self._reject(
                f"Forbidden processes detected: {', '.join(detected)}",
                f"Forbidden applications running: {', '.join(detected)}",
                {"processes": list(processes)},
            )

    def check_screen_sharing(self, is_sharing: bool, screens: int) -> None:
        if is_sharing and screens > 1:
            self._reject(
                "Screen sharing detected",
                "Screen sharing not allowed during assessment",
                {"isSharing": is_sharing, "screens": screens},
            )

    def check_webcam(self, has_webcam: bool, is_active: bool) -> None:
        if not has_webcam:
            self._reject("No webcam detected", "Webcam required for proctoring")
        if not is_active:
            self._reject("Webcam not active", "Webcam must remain active")

    def verify_seb(self, settings: Settings, headers) -> None:
        """Safe Exam Browser check over the request headers."""
        config_hash = headers.get(SEB_CONFIG_HEADER)
        exam_key = headers.get(SEB_EXAM_KEY_HEADER)
        user_agent = headers.get("user-agent") or ""
        meta = {"headers": {"sebConfig": config_hash, "examKey": exam_key, "userAgent": user_agent}}

        if not config_hash or "SEB" not in user_agent:
            self._reject("SEB verification failed - headers missing", "Safe Exam Browser required", meta)
        expected = seb_config_hash(settings.SEB_CONFIG_KEY.get_secret_value()) if settings.SEB_CONFIG_KEY else None
        if expected is None or config_hash != expected:
            self._reject("SEB verification failed - invalid config key", "Invalid SEB configuration", meta)
        if exam_key and exam_key not in settings.seb_allowed_keys():
            self._reject("SEB verification failed - invalid exam key", "Invalid exam key", meta)
