# clinicdesk/services/ai_assistant_service.py
"""
AI assistant for clinic staff.

Prompts are assembled from recent client, note and appointment rows and
forwarded to the generative-text client. Nothing is persisted; chat history
is echoed back to the caller.
"""
import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any

from fastapi import status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..exceptions import ApiError
from ..utils import utcnow, day_bounds
from .generative_client import GenerativeTextClient

logger = logging.getLogger(__name__)

ASSISTANT_PERSONA = (
    "You are ClinicDesk Assistant, an intelligent AI helper for clinic management. "
    "You help clinicians with tasks like summarizing notes, drafting emails, and optimizing schedules. "
    "Be professional, concise, and helpful."
)
EMAIL_PERSONA = (
    "You are an expert at writing professional, empathetic emails for healthcare clinics. "
    "Write clear, concise, and warm emails."
)
SCHEDULE_PERSONA = (
    "You are a helpful scheduling assistant. Provide clear, actionable summaries of daily schedules."
)
BILLING_PERSONA = (
    "You are a professional billing assistant. Generate clear, concise invoice descriptions."
)

PURPOSE_PROMPTS = {
    "followup": "Draft a follow-up email after a therapy session, checking in on the client's progress and scheduling next steps.",
    "reminder": "Draft a friendly reminder email for an upcoming appointment.",
    "welcome": "Draft a warm welcome email for a new client, introducing the clinic and what to expect.",
    "assessment": "Draft an email requesting the client to complete an assessment form before their next session.",
}
DEFAULT_CUSTOM_PROMPT = "Draft a professional email to the client."
NO_APPOINTMENTS_SUMMARY = "You have no appointments scheduled for this day."
DEFAULT_SUBJECT = "Follow-up"
INVOICE_DUE_DAYS = 30
CONTEXT_ROWS = 5

_SUBJECT_RE = re.compile(r"Subject:\s*(.+)", re.IGNORECASE)
_SUBJECT_LINE_RE = re.compile(r"Subject:.+", re.IGNORECASE)


def extract_subject(text: str) -> str:
    match = _SUBJECT_RE.search(text)
    return match.group(1).strip() if match else DEFAULT_SUBJECT


def extract_body(text: str) -> str:
    """Everything after the subject line, or the whole reply when there is none."""
    parts = _SUBJECT_LINE_RE.split(text, maxsplit=1)
    if len(parts) > 1 and parts[1].strip():
        return parts[1].strip()
    return text


class AIAssistantService:

    def __init__(self, db: Session, ai_client: GenerativeTextClient):
        self.db = db
        self.ai = ai_client

    def _get_client(self, clinic_id: int, client_id: int) -> Optional[models.Client]:
        return self.db.query(models.Client).filter(
            models.Client.id == client_id,
            models.Client.clinic_id == clinic_id,
        ).first()

    def _client_context(self, clinic_id: int, client_id: int) -> str:
        client = self._get_client(clinic_id, client_id)
        if client is None:
            return ""
        context = f"\nClient: {client.full_name}"
        notes = [n.note for n in client.notes[:CONTEXT_ROWS]]
        if notes:
            context += f"\nRecent notes: {'; '.join(notes)}"
        recent = (
            self.db.query(models.Appointment)
            .filter(models.Appointment.client_id == client.id)
            .order_by(models.Appointment.start_time.desc())
            .limit(CONTEXT_ROWS)
            .all()
        )
        if recent:
            visits = ", ".join(f"{a.session.name} on {a.start_time:%Y-%m-%d}" for a in recent)
            context += f"\nRecent appointments: {visits}"
        return context

    def _appointment_context(self, clinic_id: int, appointment_id: int) -> str:
        appointment = self.db.query(models.Appointment).filter(
            models.Appointment.id == appointment_id,
            models.Appointment.clinic_id == clinic_id,
        ).first()
        if appointment is None:
            return ""
        return (
            f"\nAppointment: {appointment.session.name} with {appointment.client.full_name} "
            f"on {appointment.start_time:%Y-%m-%d %H:%M}"
        )

    def chat(self, clinic_id: int, request: schemas.ChatRequest) -> Dict[str, Any]:
        context_data = ""
        if request.context:
            if request.context.client_id:
                context_data += self._client_context(clinic_id, request.context.client_id)
            if request.context.appointment_id:
                context_data += self._appointment_context(clinic_id, request.context.appointment_id)

        system_prompt = ASSISTANT_PERSONA + (f"\n\nContext: {context_data}" if context_data else "")
        history = [m.model_dump() for m in request.conversation_history]
        reply = self.ai.generate(system_prompt, history + [{"role": "user", "content": request.message}])

        return {
            "message": reply,
            "conversation_history": history + [
                {"role": "user", "content": request.message},
                {"role": "assistant", "content": reply},
            ],
        }

    def draft_email(self, clinic_id: int, request: schemas.DraftEmailRequest) -> Dict[str, Any]:
        client = self._get_client(clinic_id, request.client_id)
        if client is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Client not found")

        email_context = f"Client: {client.full_name}\nEmail: {client.email}"
        if client.assigned_clinician and client.assigned_clinician.user:
            email_context += f"\nClinician: {client.assigned_clinician.user.full_name}"
        last_appointment = (
            self.db.query(models.Appointment)
            .filter(models.Appointment.client_id == client.id)
            .order_by(models.Appointment.start_time.desc())
            .first()
        )
        if last_appointment:
            email_context += f"\nLast appointment: {last_appointment.start_time:%Y-%m-%d %H:%M}"
        if request.custom_context:
            email_context += f"\nAdditional context: {request.custom_context}"

        if request.purpose == "custom":
            instruction = request.custom_context or DEFAULT_CUSTOM_PROMPT
        else:
            instruction = PURPOSE_PROMPTS[request.purpose]
        prompt = (
            f"{instruction}\n\nContext:\n{email_context}\n\nTone: {request.tone}\n\n"
            "Provide a complete email with subject line and body. Make it warm, professional, and personalized."
        )

        text = self.ai.generate(EMAIL_PERSONA, [{"role": "user", "content": prompt}])
        logger.info(f"Drafted '{request.purpose}' email for client {client.id}")
        return {
            "subject": extract_subject(text),
            "body": extract_body(text),
            "client_name": client.full_name,
            "client_email": client.email,
        }

    def summarize_schedule(self, clinic_id: int, day: Optional[date], clinic_member_id: Optional[int]) -> Dict[str, Any]:
        if clinic_member_id is None:
            raise ApiError(status.HTTP_403_FORBIDDEN, "You don't have access to this clinic")
        start, end = day_bounds(day or utcnow().date())

        appointments = (
            self.db.query(models.Appointment)
            .filter(
                models.Appointment.clinic_id == clinic_id,
                models.Appointment.clinician_id == clinic_member_id,
                models.Appointment.start_time >= start,
                models.Appointment.start_time <= end,
            )
            .order_by(models.Appointment.start_time.asc())
            .all()
        )
        if not appointments:
            return {"summary": NO_APPOINTMENTS_SUMMARY, "appointments": [], "total_appointments": 0}

        schedule = "\n".join(
            f"{i}. {a.start_time:%I:%M %p} - {a.session.name} with {a.client.full_name} ({a.session.duration} min)"
            for i, a in enumerate(appointments, start=1)
        )
        prompt = (
            "Summarize this day's schedule in a helpful, concise way. Highlight any back-to-back sessions, "
            f"breaks, and provide time management tips if needed.\n\nSchedule:\n{schedule}"
        )
        summary = self.ai.generate(SCHEDULE_PERSONA, [{"role": "user", "content": prompt}])

        return {
            "summary": summary,
            "appointments": [
                {
                    "time": a.start_time,
                    "client_name": a.client.full_name,
                    "session_type": a.session.name,
                    "duration": a.session.duration,
                    "status": a.status,
                }
                for a in appointments
            ],
            "total_appointments": len(appointments),
        }

    def create_invoice_draft(self, clinic_id: int, request: schemas.InvoiceDraftRequest) -> Dict[str, Any]:
        client = self._get_client(clinic_id, request.client_id)
        if client is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Client not found")

        items: List[Dict[str, Any]] = [
            {"description": item.description, "amount": Decimal(item.amount)} for item in request.custom_items
        ]
        if request.appointment_ids:
            appointments = self.db.query(models.Appointment).filter(
                models.Appointment.id.in_(request.appointment_ids),
                models.Appointment.client_id == client.id,
                models.Appointment.clinic_id == clinic_id,
            ).all()
            items += [
                {
                    "description": f"{a.session.name} - {a.start_time:%Y-%m-%d}",
                    "amount": Decimal(a.session.price or 0),
                }
                for a in appointments
            ]

        if not items:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "No items provided for invoice")

        total = sum((item["amount"] for item in items), Decimal("0"))
        items_list = "\n".join(f"{i}. {item['description']}: ${item['amount']:.2f}" for i, item in enumerate(items, start=1))
        prompt = (
            f"Generate a professional invoice description and notes for the following items:\n\n{items_list}"
            f"\n\nTotal: ${total:.2f}\n\nClient: {client.full_name}\n\n"
            "Provide a brief, professional description suitable for an invoice."
        )
        description = self.ai.generate(BILLING_PERSONA, [{"role": "user", "content": prompt}])

        return {
            "client_id": client.id,
            "client_name": client.full_name,
            "items": [{"description": item["description"], "amount": float(item["amount"])} for item in items],
            "total_amount": float(total),
            "suggested_description": description,
            "due_date": utcnow().date() + timedelta(days=INVOICE_DUE_DAYS),
        }

    def get_suggestions(self, clinic_id: int, context: str = "dashboard", context_id: Optional[int] = None) -> List[str]:
        suggestions = []
        if context == "dashboard":
            start, end = day_bounds(utcnow().date())
            today_count = self.db.query(models.Appointment).filter(
                models.Appointment.clinic_id == clinic_id,
                models.Appointment.start_time >= start,
                models.Appointment.start_time <= end,
            ).count()
            overdue_count = self.db.query(models.Invoice).filter(
                models.Invoice.clinic_id == clinic_id,
                models.Invoice.status == models.InvoiceStatus.pending,
                models.Invoice.due_date < utcnow().date(),
            ).count()
            if today_count > 0:
                suggestions.append("Summarize today's schedule")
            if overdue_count > 0:
                suggestions.append(f"Follow up on {overdue_count} overdue invoices")
            suggestions += ["Draft follow-up email", "Create invoice"]
        elif context == "client":
            if context_id:
                suggestions += ["Draft follow-up email", "Summarize client history", "Create invoice"]
        elif context == "appointment":
            suggestions += ["Create clinical note", "Schedule follow-up", "Send reminder email"]
        elif context == "invoice":
            suggestions += ["Draft payment reminder", "Generate receipt"]
        return suggestions
