from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from subcover.api.deps import get_current_teacher, get_db
from subcover.core.exceptions import ResourceNotFoundError
from subcover.models.notification import Notification, NotificationKind
from subcover.models.teacher import Teacher
from subcover.schemas.notification import NotificationOut

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    kind: NotificationKind | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = (
        select(Notification)
        .where(Notification.teacher_id == current_teacher.id)
        .order_by(Notification.created_at.desc(), Notification.id)
    )
    if kind:
        query = query.where(Notification.kind == kind)
    if is_read is not None:
        query = query.where(Notification.is_read == is_read)
    query = query.offset(offset).limit(limit)
    return list(db.execute(query).scalars())


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.teacher_id != current_teacher.id:
        raise ResourceNotFoundError("Notification", notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.post("/notifications/read-all")
def mark_all_notifications_read(
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    notifications = list(
        db.execute(
            select(Notification).where(
                Notification.teacher_id == current_teacher.id,
                Notification.is_read.is_(False),
            )
        ).scalars()
    )
    for notification in notifications:
        notification.is_read = True
    if notifications:
        db.commit()
    return {"updated": len(notifications)}
