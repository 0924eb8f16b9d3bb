from classshift.models.activity_log import ActivityLog  # noqa: F401
from classshift.models.branch import Branch  # noqa: F401
from classshift.models.change_request import (  # noqa: F401
    ChangeRequest,
    ChangeRequestStatus,
    ChangeRequestType,
)
from classshift.models.class_session import ClassSession, SessionStatus  # noqa: F401
from classshift.models.notification import Notification, NotificationType  # noqa: F401
from classshift.models.resource import Resource, ResourceType  # noqa: F401
from classshift.models.session_resource import SessionResource  # noqa: F401
from classshift.models.student_session import AttendanceStatus, StudentSession  # noqa: F401
from classshift.models.teacher import Teacher  # noqa: F401
from classshift.models.teaching_assignment import AssignmentStatus, TeachingAssignment  # noqa: F401
from classshift.models.time_slot import TimeSlotTemplate  # noqa: F401
from classshift.models.training_class import Modality, TrainingClass  # noqa: F401
from classshift.models.user import User, UserRole  # noqa: F401
