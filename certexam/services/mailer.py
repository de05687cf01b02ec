"""
Outbound email over SMTP.

Templates are small HTML builders keyed by name. ``Mailer.send`` never raises
for transport problems: the outcome is returned as an ``EmailResult`` and
recorded in the system log under the ``email`` category.
"""
from dataclasses import dataclass, field
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from html import escape
from typing import Optional, List, Dict, Any, Callable
import logging
import smtplib
import ssl

from certexam.core.config import Settings
from certexam.models.orm import LogLevel, LogCategory, utcnow
from certexam.services.audit import AuditLog

logger = logging.getLogger(__name__)

@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

@dataclass
class OutgoingEmail:
    to: List[str]
    subject: str
    html: str
    template: str
    attachments: List[Attachment] = field(default_factory=list)

def _layout(ctx: Dict[str, Any], body: str) -> str:
    logo = f'<img src="{escape(ctx["logoUrl"])}" alt="{escape(ctx["appName"])}" height="48">' if ctx.get("logoUrl") else ""
    return (
        '<!DOCTYPE html><html><body style="font-family:Arial,sans-serif;color:#1f2933">'
        f'<div style="max-width:600px;margin:0 auto;padding:24px">{logo}'
        f'<h2 style="color:#1a5276">{escape(ctx["appName"])}</h2>{body}'
        '<hr style="border:none;border-top:1px solid #e5e7eb">'
        f'<p style="font-size:12px;color:#6b7280">Questions? Contact {escape(ctx["supportEmail"])}.<br>'
        f'&copy; {ctx["currentYear"]} {escape(ctx["appName"])}</p></div></body></html>'
    )

def render_otp_verification(ctx: Dict[str, Any]) -> str:
    body = (
        f'<p>Hello {escape(str(ctx.get("name", "")))},</p>'
        '<p>Use the following one-time code to continue:</p>'
        f'<p style="font-size:28px;letter-spacing:6px;font-weight:bold">{escape(str(ctx["otp"]))}</p>'
        f'<p>This code expires in {int(ctx.get("expiryMinutes", 10))} minutes. '
        'If you did not request it, you can ignore this email.</p>'
    )
    return _layout(ctx, body)

def render_certificate(ctx: Dict[str, Any]) -> str:
    body = (
        f'<p>Congratulations {escape(str(ctx.get("name", "")))}!</p>'
        f'<p>You have been awarded the <strong>{escape(str(ctx["level"]))}</strong> digital competency certification.</p>'
        f'<p>Certificate ID: <code>{escape(str(ctx["certificateId"]))}</code><br>'
        f'Issued: {escape(str(ctx["issueDate"]))}<br>'
        f'Valid until: {escape(str(ctx["expiryDate"]))}</p>'
        f'<p>Your certificate is attached. You can also <a href="{escape(str(ctx["downloadUrl"]))}">download it</a> '
        f'or share the <a href="{escape(str(ctx["verifyUrl"]))}">verification link</a>.</p>'
    )
    return _layout(ctx, body)

TEMPLATES: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "otp-verification": render_otp_verification,
    "certificate": render_certificate,
}

class Mailer:
    def __init__(self, settings: Settings, audit: AuditLog):
        self.settings = settings
        self.audit = audit

    def render(self, template: str, data: Dict[str, Any]) -> str:
        renderer = TEMPLATES.get(template)
        if renderer is None:
            raise ValueError(f"Unknown email template: {template}")
        ctx = dict(
            data,
            appName=self.settings.APP_NAME,
            currentYear=utcnow().year,
            supportEmail=self.settings.SUPPORT_EMAIL,
            baseUrl=self.settings.BASE_URL,
            logoUrl=self.settings.LOGO_URL,
        )
        return renderer(ctx)

    def send(
        self,
        to,
        subject: str,
        template: str,
        data: Optional[Dict[str, Any]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> EmailResult:
        recipients = [to] if isinstance(to, str) else list(to or [])
        meta = {"subject": subject, "template": template}
        if not recipients or not subject or not template:
            return self._failed(recipients, meta, "Missing required email fields")
        try:
            html = self.render(template, data or {})
            message_id = self._deliver(OutgoingEmail(recipients, subject, html, template, list(attachments or [])))
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error(f"Email sending failed: {e}")
            return self._failed(recipients, meta, str(e))
        self.audit.record_safely(
            LogLevel.INFO, LogCategory.EMAIL, f"Email sent to {', '.join(recipients)}",
            dict(meta, messageId=message_id),
        )
        return EmailResult(success=True, message_id=message_id)

    def _failed(self, recipients: List[str], meta: Dict[str, Any], error: str) -> EmailResult:
        self.audit.record_safely(
            LogLevel.ERROR, LogCategory.EMAIL, f"Failed to send email to {', '.join(recipients)}",
            dict(meta, error=error),
        )
        return EmailResult(success=False, error=error)

    def _deliver(self, email: OutgoingEmail) -> str:
        s = self.settings
        if not s.smtp_enabled():
            raise ValueError("Email transport is not configured")
        sender = s.SMTP_FROM or s.SMTP_USER
        msg = MIMEMultipart("mixed")
        msg["Subject"] = email.subject
        msg["From"] = formataddr((s.APP_NAME, sender))
        msg["To"] = ", ".join(email.to)
        message_id = make_msgid()
        msg["Message-ID"] = message_id

        alt_part = MIMEMultipart("alternative")
        alt_part.attach(MIMEText(email.html, "html", "utf-8"))
        msg.attach(alt_part)

        for att in email.attachments:
            subtype = att.content_type.partition("/")[2]
            part = MIMEApplication(att.content, _subtype=subtype or "octet-stream")
            part.add_header("Content-Disposition", "attachment", filename=att.filename)
            msg.attach(part)

        password = s.SMTP_PASSWORD.get_secret_value()
        if s.SMTP_PORT == 465:
            ctx = ssl.create_default_context()
            with smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, context=ctx, timeout=s.SMTP_TIMEOUT) as server:
                server.login(s.SMTP_USER, password)
                server.sendmail(sender, email.to, msg.as_string())
        else:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT) as server:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.login(s.SMTP_USER, password)
                server.sendmail(sender, email.to, msg.as_string())
        logger.info(f"Email '{email.subject}' delivered to {len(email.to)} recipient(s)")
        return message_id
