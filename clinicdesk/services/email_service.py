# clinicdesk/services/email_service.py
import logging
from pathlib import Path
from typing import Optional, Dict, Any

import jinja2
from fastapi import status
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from ..config import get_settings
from ..exceptions import ApiError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class EmailService:
    def __init__(self, api_key: Optional[str], sender_email: str, clinic_name: str = "ClinicDesk"):
        self.sender_email = sender_email
        self.default_sender_name = clinic_name
        self.enabled = bool(api_key)
        self.sg = SendGridAPIClient(api_key=api_key) if self.enabled else None

        if not self.enabled:
            logger.warning("SENDGRID_API_KEY not found - emails will be logged, not sent")

        self.template_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        return self.template_env.get_template(f"{template_name}.html").render(**context)

    def send_email(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        if not self.enabled:
            logger.info(f"Would send '{subject}' to {to_email} (email disabled)")
            return {"success": True, "message": "Email logged (service not configured)", "simulated": True}

        mail = Mail(
            from_email=self.sender_email,
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
        )
        try:
            response = self.sg.send(mail)
        except Exception as e:
            logger.error(f"SendGrid failed sending '{subject}' to {to_email}: {e}")
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to send email: {e}")

        logger.info(f"Email '{subject}' sent to {to_email} (status {response.status_code})")
        return {"success": True, "message": "Email sent successfully", "simulated": False}

    def send_templated_email(self, to_email: str, template_name: str, context: Dict[str, Any]) -> Dict[str, Any]:
        html_content = self.render(template_name, context)
        return self.send_email(to_email, context.get("subject", self.default_sender_name), html_content)

    def send_invoice_email(self, to_email: str, client_name: str, clinic_name: str,
                           invoice_link: str, total: str, due_date: str,
                           invoice_number: Optional[str] = None) -> Dict[str, Any]:
        context = {
            "subject": f"Invoice from {clinic_name}",
            "client_name": client_name,
            "clinic_name": clinic_name,
            "invoice_link": invoice_link,
            "invoice_number": invoice_number,
            "total": total,
            "due_date": due_date,
        }
        return self.send_templated_email(to_email, "invoice", context)

    def send_appointment_reminder(self, to_email: str, client_name: str, clinic_name: str,
                                  session_name: str, start_time: str, time_text: str,
                                  meeting_type: str = "In person") -> Dict[str, Any]:
        context = {
            "subject": f"Reminder: your appointment with {clinic_name}",
            "client_name": client_name,
            "clinic_name": clinic_name,
            "session_name": session_name,
            "start_time": start_time,
            "time_text": time_text,
            "meeting_type": meeting_type,
        }
        return self.send_templated_email(to_email, "appointment_reminder", context)


def get_email_service() -> EmailService:
    settings = get_settings()
    return EmailService(
        api_key=settings.sendgrid_api_key,
        sender_email=settings.sender_email,
        clinic_name=settings.app_name,
    )
