from subcover.models.activity_log import ActivityLog  # noqa: F401
from subcover.models.lecture import Lecture, LectureStatus  # noqa: F401
from subcover.models.leave_request import (  # noqa: F401
    ACCEPTED_LEAVE_STATUSES,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from subcover.models.notification import Notification, NotificationKind, NotificationPriority  # noqa: F401
from subcover.models.substitute_assignment import (  # noqa: F401
    AssignmentStatus,
    AssignmentType,
    SubstituteAssignment,
)
from subcover.models.teacher import Teacher, TeacherRole  # noqa: F401
