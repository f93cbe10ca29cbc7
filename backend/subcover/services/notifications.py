from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from subcover.models.notification import Notification, NotificationKind, NotificationPriority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingNotification:
    teacher_id: str
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.normal
    lecture_id: str | None = None


class NotificationDispatcher:
    """Buffers notifications raised inside a transaction and persists them after it commits.

    Delivery is best effort. Each message is written in its own short
    transaction, so a failing insert is logged and dropped without touching
    the state change that produced it.
    """

    def __init__(self) -> None:
        self._outbox: list[OutgoingNotification] = []

    @property
    def pending(self) -> list[OutgoingNotification]:
        return list(self._outbox)

    def notify(
        self,
        target_teacher_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.normal,
        *,
        lecture_id: str | None = None,
    ) -> None:
        if not target_teacher_id:
            return
        self._outbox.append(
            OutgoingNotification(
                teacher_id=target_teacher_id,
                kind=kind,
                title=title,
                message=message,
                priority=priority,
                lecture_id=lecture_id,
            )
        )

    def notify_many(
        self,
        target_teacher_ids: list[str] | set[str] | tuple[str, ...],
        kind: NotificationKind,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.normal,
        *,
        exclude_teacher_id: str | None = None,
    ) -> None:
        for teacher_id in dict.fromkeys(target_teacher_ids):
            if teacher_id == exclude_teacher_id:
                continue
            self.notify(teacher_id, kind, title, message, priority)

    def deliver(self, db: Session) -> int:
        messages, self._outbox = self._outbox, []
        delivered = 0
        for item in messages:
            try:
                db.add(
                    Notification(
                        teacher_id=item.teacher_id,
                        lecture_id=item.lecture_id,
                        kind=item.kind,
                        title=item.title,
                        message=item.message,
                        priority=item.priority,
                    )
                )
                db.commit()
                delivered += 1
            except SQLAlchemyError:
                db.rollback()
                logger.warning(
                    "Notification delivery failed for teacher %s (%s)",
                    item.teacher_id,
                    item.kind.value,
                    exc_info=True,
                )
        return delivered
