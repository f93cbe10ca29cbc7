from datetime import datetime

from pydantic import BaseModel

from subcover.models.notification import NotificationKind, NotificationPriority


class NotificationOut(BaseModel):
    id: str
    teacher_id: str
    lecture_id: str | None = None
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
