"""Attendance marking and approval API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from attendance_engine import limiter
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.utils.decorators import (
    get_current_user, login_required, student_required, teacher_required
)
from attendance_engine.utils.helpers import success_response, get_json_body

attendance_bp = Blueprint('attendance', __name__)

@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')

@attendance_bp.route('/mark', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("10 per minute")
def mark_attendance():
    """Submit proof of presence for an active session."""
    result = AttendanceService.mark(get_current_user(), get_json_body())
    created = result.pop('created')
    return success_response(
        data=result,
        message=result.pop('message'),
        status_code=201 if created else 200
    )

@attendance_bp.route('/<attendance_id>/approve', methods=['PATCH'])
@jwt_required()
@teacher_required
def approve_attendance(attendance_id):
    """Approve or reject a late or face_failed record."""
    result = AttendanceService.approve(get_current_user(), attendance_id, get_json_body())
    return success_response(data=result, message='Attendance updated')

@attendance_bp.route('/session/<int:session_id>', methods=['GET'])
@jwt_required()
@login_required
def get_session_attendance(session_id):
    """Records of a session grouped by status."""
    return success_response(data=AttendanceService.for_session(get_current_user(), session_id))

@attendance_bp.route('/student/<int:student_id>', methods=['GET'])
@jwt_required()
@login_required
def get_student_attendance(student_id):
    """Attendance history of one student."""
    result = AttendanceService.for_student(
        get_current_user(),
        student_id,
        class_id=request.args.get('classId', type=int),
        limit=request.args.get('limit', 20, type=int)
    )
    return success_response(data=result)
