"""
Project Notification Service
Sends emails for project lifecycle events.

Events that trigger notifications:
- Project created (QUOTE_GENERATED) -> owner confirmation + operator heads-up
- Project submitted (SUBMITTED)     -> operator
- Translation delivered (COMPLETED) -> owner "ready for download"

notify() never raises. A failed send is logged and reported in the result;
the lifecycle transition that triggered it still succeeds.
"""
import os
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from postmarker.core import PostmarkClient
from database import database
from models import MessageLog, EmailTemplateAlias, AuditAction
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "noreply@example.com")
OPERATOR_EMAIL = os.getenv("OPERATOR_EMAIL", "operations@example.com")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")


class ProjectNotificationEvent:
    PROJECT_CREATED = "project_created"
    PROJECT_SUBMITTED = "project_submitted"
    PROJECT_COMPLETED = "project_completed"


OWNER = "owner"
OPERATOR = "operator"

# event -> [(recipient, template, subject)]
EVENT_CONFIG = {
    ProjectNotificationEvent.PROJECT_CREATED: [
        (OWNER, EmailTemplateAlias.PROJECT_CREATED, "Your translation quote: {project_name}"),
        (OPERATOR, EmailTemplateAlias.PROJECT_CREATED_ADMIN, "New project created: {project_name}"),
    ],
    ProjectNotificationEvent.PROJECT_SUBMITTED: [
        (OPERATOR, EmailTemplateAlias.PROJECT_SUBMITTED_ADMIN, "Project submitted: {project_ref} {project_name}"),
    ],
    ProjectNotificationEvent.PROJECT_COMPLETED: [
        (OWNER, EmailTemplateAlias.PROJECT_COMPLETED, "Your translation is ready: {project_name}"),
    ],
}


@dataclass
class NotificationResult:
    success: bool
    error: Optional[str] = None
    message_ids: List[str] = field(default_factory=list)


def _format_breakdown(breakdown: List[Dict[str, Any]]) -> str:
    return "\n".join(f"  {item['language']}: ${item['cost']}" for item in breakdown or [])


def build_text_body(template_alias: EmailTemplateAlias, payload: Dict[str, Any]) -> str:
    name = payload.get("owner_name") or payload.get("owner_email") or "there"
    if template_alias == EmailTemplateAlias.PROJECT_CREATED:
        return (
            f"Hi {name},\n\n"
            f"Your project \"{payload.get('project_name')}\" has been created.\n\n"
            f"File: {payload.get('file_name')}\n"
            f"Word count: {payload.get('unit_count')}\n"
            f"Project type: {payload.get('project_type')}\n"
            f"Total: ${payload.get('total')}\n\n"
            f"Submit it from your dashboard when you are ready: {APP_URL}/dashboard\n"
        )
    if template_alias in (EmailTemplateAlias.PROJECT_CREATED_ADMIN, EmailTemplateAlias.PROJECT_SUBMITTED_ADMIN):
        return (
            f"Project {payload.get('project_ref')} \"{payload.get('project_name')}\"\n"
            f"Client: {name} <{payload.get('owner_email')}>\n"
            f"File: {payload.get('file_name')}\n"
            f"Word count: {payload.get('unit_count')}\n"
            f"Project type: {payload.get('project_type')}\n"
            f"Languages:\n{_format_breakdown(payload.get('breakdown'))}\n"
            f"Total: ${payload.get('total')}\n"
        )
    if template_alias == EmailTemplateAlias.PROJECT_COMPLETED:
        return (
            f"Hi {name},\n\n"
            f"The translation for \"{payload.get('project_name')}\" is ready for download.\n\n"
            f"Translated file: {payload.get('translated_file_name')}\n"
            f"Download it from your dashboard: {APP_URL}/dashboard\n"
        )
    return str(payload)


class NotificationService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    def _recipient(self, recipient: str, payload: Dict[str, Any]) -> Optional[str]:
        if recipient == OPERATOR:
            return OPERATOR_EMAIL
        return payload.get("owner_email")

    async def _send_one(
        self,
        event: str,
        recipient: str,
        template_alias: EmailTemplateAlias,
        subject: str,
        payload: Dict[str, Any],
    ) -> MessageLog:
        message_log = MessageLog(
            event=event,
            recipient=recipient,
            template_alias=template_alias,
            subject=subject,
            project_id=payload.get("project_id"),
        )

        try:
            text_body = build_text_body(template_alias, payload)
            if self.client:
                response = self.client.emails.send(
                    From=DEFAULT_SENDER,
                    To=recipient,
                    Subject=subject,
                    TextBody=text_body,
                    Tag=template_alias.value,
                )
                message_log.postmark_message_id = response["MessageID"]
                logger.info(f"Email sent to {recipient}: {response['MessageID']}")
            else:
                # Dev mode - just log
                logger.info(f"[DEV MODE] Email logged (not sent) to {recipient}: {subject}")
            message_log.status = "sent"
            message_log.sent_at = datetime.now(timezone.utc)
        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            logger.error(f"Failed to send {template_alias.value} email to {recipient}: {e}")

        try:
            db = database.get_db()
            await db.message_logs.insert_one(message_log.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Failed to store message log for {recipient}: {e}")

        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            resource_type="project",
            resource_id=payload.get("project_id"),
            metadata={
                "event": event,
                "template": template_alias.value,
                "recipient": recipient,
                "status": message_log.status,
            },
        )
        return message_log

    async def notify(self, event: str, payload: Dict[str, Any]) -> NotificationResult:
        """Send every email configured for an event. Never raises."""
        try:
            config = EVENT_CONFIG.get(event)
            if not config:
                return NotificationResult(success=False, error=f"Unknown notification event: {event}")

            errors = []
            message_ids = []
            for recipient_kind, template_alias, subject_format in config:
                recipient = self._recipient(recipient_kind, payload)
                if not recipient:
                    errors.append(f"No {recipient_kind} email for {event}")
                    continue
                subject = subject_format.format(
                    project_name=payload.get("project_name", ""),
                    project_ref=payload.get("project_ref", ""),
                )
                log = await self._send_one(event, recipient, template_alias, subject, payload)
                message_ids.append(log.message_id)
                if log.status != "sent":
                    errors.append(log.error_message or f"Send to {recipient} failed")

            if errors:
                logger.warning(f"Notification {event} completed with errors: {errors}")
                return NotificationResult(success=False, error="; ".join(errors), message_ids=message_ids)
            return NotificationResult(success=True, message_ids=message_ids)
        except Exception as e:
            logger.error(f"Notification {event} failed: {e}")
            return NotificationResult(success=False, error=str(e))


def build_project_payload(project: Dict[str, Any], owner: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Template context for a project event."""
    owner = owner or {}
    return {
        "project_id": project.get("project_id"),
        "project_ref": project.get("project_ref"),
        "project_name": project.get("name"),
        "file_name": project.get("file_name"),
        "unit_count": project.get("unit_count"),
        "project_type": project.get("project_type"),
        "breakdown": project.get("breakdown", []),
        "total": project.get("total"),
        "translated_file_name": project.get("translated_file_name"),
        "owner_email": owner.get("email"),
        "owner_name": owner.get("name"),
    }


notification_service = NotificationService()
