# clinicdesk/services/notification_service.py
import logging
from typing import Optional, Dict, Any, List, Iterable

from fastapi import status
from sqlalchemy.orm import Session

from .. import models
from ..exceptions import ApiError
from ..utils import utcnow

logger = logging.getLogger(__name__)


NOTIFICATION_TEMPLATES = {
    models.NotificationType.appointment: {
        "created": lambda client_name, when: ("New Appointment Scheduled",
                                              f"Your appointment with {client_name} has been scheduled for {when}"),
        "updated": lambda client_name, when: ("Appointment Updated",
                                              f"Your appointment with {client_name} has been rescheduled to {when}"),
        "cancelled": lambda client_name: ("Appointment Cancelled",
                                          f"Your appointment with {client_name} has been cancelled"),
        "reminder": lambda client_name, in_time: ("Appointment Reminder",
                                                  f"Reminder: You have an appointment with {client_name} in {in_time}"),
    },
    models.NotificationType.invoice: {
        "created": lambda amount: ("New Invoice", f"You have received a new invoice for ${amount:.2f}"),
        "paid": lambda amount: ("Invoice Paid", f"Your invoice of ${amount:.2f} has been paid"),
        "overdue": lambda amount: ("Invoice Overdue", f"Your invoice of ${amount:.2f} is now overdue"),
    },
    models.NotificationType.subscription: {
        "trial_started": lambda days: ("Trial Started", f"Your {days}-day Professional trial has started"),
        "trial_expired": lambda: ("Trial Ended", "Your trial has ended and your clinic is now on the Free plan"),
        "cancelled": lambda: ("Subscription Cancelled", "Your subscription has been cancelled"),
        "upgraded": lambda plan_name: ("Plan Changed", f"Your clinic is now on the {plan_name}"),
    },
    models.NotificationType.system: {
        "welcome": lambda user_name: ("Welcome to ClinicDesk",
                                      f"Welcome {user_name}! We're excited to have you on board."),
        "test": lambda: ("Test Notification", "This is a test notification"),
    },
    models.NotificationType.reminder: {
        "generic": lambda message: ("Reminder", message),
    },
    models.NotificationType.message: {
        "new_message": lambda sender_name: ("New Message", f"You have a new message from {sender_name}"),
    },
}


def get_notification_template(notification_type: models.NotificationType, sub_type: str, *args) -> Dict[str, str]:
    template = NOTIFICATION_TEMPLATES.get(notification_type, {}).get(sub_type)
    if template is None:
        return {"title": "Notification", "message": "You have a new notification"}
    title, message = template(*args)
    return {"title": title, "message": message}


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def create_notification(self, user_id: Optional[int], title: str, message: str,
                            type: models.NotificationType = models.NotificationType.system,
                            data: Optional[Dict[str, Any]] = None,
                            clinic_id: Optional[int] = None,
                            commit: bool = True) -> models.Notification:
        notification = models.Notification(
            user_id=user_id,
            clinic_id=clinic_id,
            title=title,
            message=message,
            type=type,
            data=data or {},
            is_read=False,
        )
        self.db.add(notification)
        if commit:
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def send_bulk_notifications(self, user_ids: Iterable[int], title: str, message: str,
                                type: models.NotificationType = models.NotificationType.system,
                                data: Optional[Dict[str, Any]] = None,
                                clinic_id: Optional[int] = None) -> int:
        count = 0
        for user_id in dict.fromkeys(user_ids):
            self.create_notification(user_id, title, message, type, data, clinic_id=clinic_id, commit=False)
            count += 1
        self.db.commit()
        logger.info(f"Sent {count} '{title}' notifications")
        return count

    def clinic_admin_user_ids(self, clinic_id: int) -> List[int]:
        clinic = self.db.query(models.Clinic).filter(models.Clinic.id == clinic_id).first()
        if clinic is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Clinic not found")
        admin_ids = [
            m.user_id for m in self.db.query(models.ClinicMember).filter(
                models.ClinicMember.clinic_id == clinic_id,
                models.ClinicMember.role == models.MemberRole.admin,
            )
        ]
        return [clinic.owner_id] + [uid for uid in admin_ids if uid != clinic.owner_id]

    def notify_clinic(self, clinic_id: int, title: str, message: str,
                      type: models.NotificationType = models.NotificationType.system,
                      data: Optional[Dict[str, Any]] = None) -> int:
        """Deliver one notification to the clinic owner and each clinic admin."""
        return self.send_bulk_notifications(
            self.clinic_admin_user_ids(clinic_id), title, message, type, data, clinic_id=clinic_id
        )

    def get_user_notifications(self, user_id: int, page: int = 1, limit: int = 20,
                               is_read: Optional[bool] = None) -> Dict[str, Any]:
        query = self.db.query(models.Notification).filter(models.Notification.user_id == user_id)
        if is_read is not None:
            query = query.filter(models.Notification.is_read.is_(is_read))
        total = query.count()
        items = (
            query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": items, "total": total, "unread": self.get_unread_count(user_id)}

    def get_clinic_notifications(self, clinic_id: int, page: int = 1, limit: int = 20,
                                 is_read: Optional[bool] = None, user_id: Optional[int] = None) -> Dict[str, Any]:
        query = self.db.query(models.Notification).filter(models.Notification.clinic_id == clinic_id)
        if is_read is not None:
            query = query.filter(models.Notification.is_read.is_(is_read))
        if user_id is not None:
            query = query.filter(models.Notification.user_id == user_id)
        total = query.count()
        unread = query.filter(models.Notification.is_read.is_(False)).count() if is_read is None else (
            total if is_read is False else 0
        )
        items = (
            query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": items, "total": total, "unread": unread}

    def _get_owned(self, notification_id: int, user_id: int) -> models.Notification:
        notification = self.db.query(models.Notification).filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        ).first()
        if notification is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Notification not found")
        return notification

    def mark_as_read(self, notification_id: int, user_id: int) -> models.Notification:
        notification = self._get_owned(notification_id, user_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        updated = self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
        self.db.commit()
        return updated

    def delete_notification(self, notification_id: int, user_id: int) -> None:
        notification = self._get_owned(notification_id, user_id)
        self.db.delete(notification)
        self.db.commit()

    def get_unread_count(self, user_id: int) -> int:
        return self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        ).count()
