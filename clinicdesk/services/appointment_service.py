# clinicdesk/services/appointment_service.py
import logging
from datetime import datetime, date, timedelta
from typing import Any, Dict, Optional, List

from fastapi import status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..exceptions import ApiError
from ..utils import as_utc, day_bounds, utcnow
from .email_service import EmailService
from .notification_service import NotificationService, get_notification_template

logger = logging.getLogger(__name__)

# Appointments in these states no longer hold their time slot
RELEASED_STATUSES = (models.AppointmentStatus.cancelled, models.AppointmentStatus.failed)
UPCOMING_STATUSES = (models.AppointmentStatus.pending, models.AppointmentStatus.scheduled)

REMINDER_LOOKAHEAD = timedelta(hours=2)
REMINDER_TOLERANCE_MINUTES = 5
REMINDER_REPEAT_WINDOW = timedelta(minutes=10)


def reminder_time_text(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} minutes"
    hours = minutes // 60
    return f"{hours} hour" if hours == 1 else f"{hours} hours"


class AppointmentService:

    def __init__(self, db: Session, email: Optional[EmailService] = None):
        self.db = db
        self.email = email
        self.notifications = NotificationService(db)

    def _get_member(self, clinic_id: int, member_id: int) -> models.ClinicMember:
        member = self.db.query(models.ClinicMember).filter(
            models.ClinicMember.id == member_id,
            models.ClinicMember.clinic_id == clinic_id,
        ).first()
        if member is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Clinician not found")
        return member

    def _check_conflict(self, clinician_id: Optional[int], start: datetime, end: datetime,
                        exclude_id: Optional[int] = None) -> None:
        if clinician_id is None:
            return
        query = self.db.query(models.Appointment).filter(
            models.Appointment.clinician_id == clinician_id,
            models.Appointment.status.notin_(RELEASED_STATUSES),
            models.Appointment.start_time < end,
            models.Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(models.Appointment.id != exclude_id)
        if query.first():
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Time slot is not available")

    def _notify_clinician(self, appointment: models.Appointment, sub_type: str, *args) -> None:
        if appointment.clinician is None:
            return
        template = get_notification_template(models.NotificationType.appointment, sub_type, *args)
        self.notifications.create_notification(
            appointment.clinician.user_id,
            template["title"],
            template["message"],
            models.NotificationType.appointment,
            {"appointment_id": appointment.id, "client_id": appointment.client_id},
            clinic_id=appointment.clinic_id,
        )

    def create_appointment(self, clinic_id: int, appointment: schemas.AppointmentCreate, added_by: int) -> models.Appointment:
        client = self.db.query(models.Client).filter(
            models.Client.id == appointment.client_id,
            models.Client.clinic_id == clinic_id,
        ).first()
        if client is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Client not found")

        session = self.db.query(models.ClinicSession).filter(
            models.ClinicSession.id == appointment.session_id,
            models.ClinicSession.clinic_id == clinic_id,
        ).first()
        if session is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Session not found")

        clinician_id = appointment.clinician_id or client.assigned_clinician_id
        if clinician_id is not None:
            self._get_member(clinic_id, clinician_id)

        start_time = as_utc(appointment.start_time)
        end_time = as_utc(appointment.end_time) if appointment.end_time else start_time + timedelta(minutes=session.duration)
        self._check_conflict(clinician_id, start_time, end_time)

        db_appointment = models.Appointment(
            clinic_id=clinic_id,
            client_id=client.id,
            session_id=session.id,
            clinician_id=clinician_id,
            added_by=added_by,
            start_time=start_time,
            end_time=end_time,
            status=appointment.status,
            meeting_type=appointment.meeting_type,
            note=appointment.note,
        )
        self.db.add(db_appointment)
        self.db.commit()
        self.db.refresh(db_appointment)
        logger.info(f"Appointment {db_appointment.id} booked for client {client.id} at {start_time.isoformat()}")

        self._notify_clinician(db_appointment, "created", client.full_name, start_time.strftime("%Y-%m-%d %H:%M UTC"))
        return db_appointment

    def list_appointments(self, clinic_id: int,
                          start_date: Optional[date] = None, end_date: Optional[date] = None,
                          client_id: Optional[int] = None, clinician_id: Optional[int] = None,
                          status_filter: Optional[models.AppointmentStatus] = None,
                          skip: int = 0, limit: int = 100) -> List[models.Appointment]:
        query = self.db.query(models.Appointment).filter(models.Appointment.clinic_id == clinic_id)
        if start_date:
            query = query.filter(models.Appointment.start_time >= day_bounds(start_date)[0])
        if end_date:
            query = query.filter(models.Appointment.start_time <= day_bounds(end_date)[1])
        if client_id:
            query = query.filter(models.Appointment.client_id == client_id)
        if clinician_id:
            query = query.filter(models.Appointment.clinician_id == clinician_id)
        if status_filter:
            query = query.filter(models.Appointment.status == status_filter)
        return query.order_by(models.Appointment.start_time.asc()).offset(skip).limit(limit).all()

    def get_appointment(self, clinic_id: int, appointment_id: int) -> models.Appointment:
        appointment = self.db.query(models.Appointment).filter(
            models.Appointment.id == appointment_id,
            models.Appointment.clinic_id == clinic_id,
        ).first()
        if appointment is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Appointment not found")
        return appointment

    def update_appointment(self, clinic_id: int, appointment_id: int,
                           appointment_update: schemas.AppointmentUpdate) -> models.Appointment:
        appointment = self.get_appointment(clinic_id, appointment_id)
        data = appointment_update.model_dump(exclude_unset=True)

        if data.get("clinician_id") is not None:
            self._get_member(clinic_id, data["clinician_id"])

        start_time = as_utc(data.get("start_time") or appointment.start_time)
        if "end_time" in data and data["end_time"] is not None:
            end_time = as_utc(data["end_time"])
        elif data.get("start_time") is not None:
            end_time = start_time + timedelta(minutes=appointment.session.duration)
        else:
            end_time = as_utc(appointment.end_time)
        if end_time <= start_time:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "end_time must be after start_time")

        new_status = data.get("status", appointment.status)
        rescheduled = "start_time" in data or "end_time" in data or "clinician_id" in data
        if rescheduled and new_status not in RELEASED_STATUSES:
            self._check_conflict(data.get("clinician_id", appointment.clinician_id), start_time, end_time,
                                 exclude_id=appointment.id)

        data["start_time"] = start_time
        data["end_time"] = end_time
        for key, value in data.items():
            setattr(appointment, key, value)
        self.db.commit()
        self.db.refresh(appointment)

        if new_status == models.AppointmentStatus.cancelled and "status" in data:
            self._notify_clinician(appointment, "cancelled", appointment.client.full_name)
        elif rescheduled:
            self._notify_clinician(appointment, "updated", appointment.client.full_name,
                                   start_time.strftime("%Y-%m-%d %H:%M UTC"))
        return appointment

    def cancel_appointment(self, clinic_id: int, appointment_id: int) -> models.Appointment:
        return self.update_appointment(
            clinic_id, appointment_id, schemas.AppointmentUpdate(status=models.AppointmentStatus.cancelled)
        )

    def _reminder_already_sent(self, user_id: int, appointment_id: int, since: datetime) -> bool:
        recent = self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id,
            models.Notification.type == models.NotificationType.reminder,
            models.Notification.created_at >= since,
        ).all()
        return any((n.data or {}).get("appointment_id") == appointment_id for n in recent)

    def send_appointment_reminders(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Remind clinicians of appointments starting within the next two hours whose
        start is within five minutes of one of the session's reminder offsets.
        Sessions with the "email" reminder method also e-mail the client.
        Meant to run every few minutes; a reminder sent in the last ten minutes is not repeated.
        """
        now = now or utcnow()
        upcoming: List[models.Appointment] = (
            self.db.query(models.Appointment)
            .filter(
                models.Appointment.status.in_(UPCOMING_STATUSES),
                models.Appointment.start_time >= now,
                models.Appointment.start_time <= now + REMINDER_LOOKAHEAD,
            )
            .order_by(models.Appointment.start_time.asc(), models.Appointment.id.asc())
            .all()
        )

        results = []
        for appointment in upcoming:
            start_time = as_utc(appointment.start_time)
            minutes_until = int((start_time - now).total_seconds() // 60)
            offsets = appointment.session.reminders or []
            if not any(abs(minutes_until - offset) <= REMINDER_TOLERANCE_MINUTES for offset in offsets):
                continue
            if appointment.clinician is None:
                continue
            user_id = appointment.clinician.user_id
            if self._reminder_already_sent(user_id, appointment.id, now - REMINDER_REPEAT_WINDOW):
                continue

            client_name = appointment.client.full_name
            time_text = reminder_time_text(minutes_until)
            try:
                template = get_notification_template(models.NotificationType.appointment, "reminder",
                                                     client_name, time_text)
                self.notifications.create_notification(
                    user_id,
                    template["title"],
                    template["message"],
                    models.NotificationType.reminder,
                    {
                        "appointment_id": appointment.id,
                        "client_name": client_name,
                        "session_name": appointment.session.name,
                        "start_time": start_time.isoformat(),
                        "minutes_until": minutes_until,
                    },
                    clinic_id=appointment.clinic_id,
                )
                emailed = False
                if (appointment.session.reminder_method == "email" and self.email is not None
                        and appointment.client.email):
                    self.email.send_appointment_reminder(
                        appointment.client.email,
                        client_name,
                        appointment.clinic.name,
                        appointment.session.name,
                        start_time.strftime("%Y-%m-%d %H:%M UTC"),
                        time_text,
                        "Online (Zoom)" if appointment.meeting_type == models.MeetingType.zoom else "In person",
                    )
                    emailed = True
                results.append({
                    "success": True,
                    "appointment_id": appointment.id,
                    "client_name": client_name,
                    "minutes_until": minutes_until,
                    "emailed": emailed,
                })
                logger.info(f"Reminder sent for appointment {appointment.id} ({minutes_until} minutes until start)")
            except Exception as e:
                self.db.rollback()
                message = e.message if isinstance(e, ApiError) else str(e)
                results.append({
                    "success": False,
                    "appointment_id": appointment.id,
                    "client_name": client_name,
                    "error": message,
                })
                logger.error(f"Failed to send reminder for appointment {appointment.id}: {message}")

        sent = sum(1 for r in results if r["success"])
        logger.info(f"Processed {len(upcoming)} upcoming appointments for reminders, {sent} reminders sent")
        return {
            "processed": len(upcoming),
            "sent": sent,
            "failed": len(results) - sent,
            "results": results,
        }
