"""Roster lookups: class ownership, enrolment and student details."""
from typing import Dict, Optional

from sqlalchemy import select

from attendance_engine import db
from attendance_engine.models.course import Course, enrollments
from attendance_engine.models.user import User
from attendance_engine.utils.errors import AuthorizationError, NotFoundError


class RosterService:
    """Read-only view of classes and students."""

    @staticmethod
    def get_course(class_id: int) -> Course:
        course = db.session.get(Course, class_id)
        if course is None:
            raise NotFoundError("Class not found", code='CLASS_NOT_FOUND')
        return course

    @staticmethod
    def get_class(class_id: int) -> Optional[Dict]:
        """``{teacherId, studentIds, minAttendance}`` or None."""
        course = db.session.get(Course, class_id)
        if course is None:
            return None
        return {
            'id': course.id,
            'teacherId': course.teacher_id,
            'studentIds': course.student_ids,
            'minAttendance': course.min_attendance
        }

    @staticmethod
    def get_student(student_id: int) -> Optional[Dict]:
        user = db.session.get(User, student_id)
        if user is None:
            return None
        return {
            'id': user.id,
            'name': user.name,
            'rollNumber': user.roll_number,
            'deviceId': user.device_id
        }

    @staticmethod
    def is_enrolled(class_id: int, student_id: int) -> bool:
        row = db.session.execute(
            select(enrollments.c.student_id).where(
                enrollments.c.class_id == class_id,
                enrollments.c.student_id == student_id
            )
        ).first()
        return row is not None

    @staticmethod
    def require_owner(course: Course, teacher_id: int, code: str = 'NOT_OWNER') -> None:
        if course.teacher_id != teacher_id:
            raise AuthorizationError("You do not teach this class", code=code)

    @staticmethod
    def min_attendance(class_id: int, default: int = 75) -> int:
        roster = RosterService.get_class(class_id)
        if roster is None or roster['minAttendance'] is None:
            return default
        return roster['minAttendance']
