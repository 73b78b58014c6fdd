# clinicdesk/routers/notifications.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from .. import schemas, security, models, crud
from ..database import get_db
from ..exceptions import ApiError
from ..security import ClinicContext
from ..services.notification_service import NotificationService, get_notification_template

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=schemas.NotificationListResponse)
def list_my_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    return NotificationService(db).get_user_notifications(current_user.id, page=page, limit=limit, is_read=is_read)


@router.get("/unread-count", response_model=schemas.UnreadCountResponse)
def unread_count(db: Session = Depends(get_db), current_user: models.User = Depends(security.get_current_user)):
    return {"count": NotificationService(db).get_unread_count(current_user.id)}


@router.get("/clinic", response_model=schemas.NotificationListResponse)
def list_clinic_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = None,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_admin)
):
    return NotificationService(db).get_clinic_notifications(ctx.clinic_id, page=page, limit=limit, is_read=is_read)


@router.post("", response_model=schemas.NotificationResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(security.require_platform_admin)])
def create_notification(notification: schemas.NotificationCreate, db: Session = Depends(get_db)):
    if notification.user_id is None or crud.get_user(db, notification.user_id) is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User not found")
    return NotificationService(db).create_notification(
        notification.user_id, notification.title, notification.message, notification.type, notification.data
    )


@router.post("/test", response_model=schemas.NotificationResponse, status_code=status.HTTP_201_CREATED)
def send_test_notification(db: Session = Depends(get_db), current_user: models.User = Depends(security.get_current_user)):
    template = get_notification_template(models.NotificationType.system, "test")
    return NotificationService(db).create_notification(current_user.id, template["title"], template["message"])


@router.put("/read-all", response_model=schemas.MarkAllReadResponse)
def mark_all_read(db: Session = Depends(get_db), current_user: models.User = Depends(security.get_current_user)):
    return {"updated": NotificationService(db).mark_all_as_read(current_user.id)}


@router.put("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_read(notification_id: int, db: Session = Depends(get_db),
              current_user: models.User = Depends(security.get_current_user)):
    return NotificationService(db).mark_as_read(notification_id, current_user.id)


@router.delete("/{notification_id}", response_model=schemas.MessageResponse)
def delete_notification(notification_id: int, db: Session = Depends(get_db),
                        current_user: models.User = Depends(security.get_current_user)):
    NotificationService(db).delete_notification(notification_id, current_user.id)
    return {"message": "Notification deleted"}
