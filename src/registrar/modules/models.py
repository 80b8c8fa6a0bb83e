"""Every ORM model, imported so that Base.metadata knows all tables."""

from registrar.modules.curriculum.models import CurriculumEntry, Program
from registrar.modules.enrollments.models import EnrolledStudent, EnrollmentRequest
from registrar.modules.notifications.models import Notification
from registrar.modules.students.models import StudentProfile
from registrar.modules.users.models import User

__all__ = [
    "CurriculumEntry",
    "EnrolledStudent",
    "EnrollmentRequest",
    "Notification",
    "Program",
    "StudentProfile",
    "User",
]
