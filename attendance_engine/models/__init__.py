"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .course import Course, enrollments
from .attendance_session import AttendanceSession
from .attendance import AttendanceRecord
from .summary import AttendanceSummary
from .fraud_flag import FraudFlag
from .dispute import Dispute
from .notification import Notification, ProcessedEvent

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Course', 'enrollments',
    'AttendanceSession', 'AttendanceRecord', 'AttendanceSummary',
    'FraudFlag', 'Dispute', 'Notification', 'ProcessedEvent'
]
