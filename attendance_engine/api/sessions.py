"""Attendance session API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from attendance_engine import limiter
from attendance_engine.services.session_service import SessionService
from attendance_engine.utils.decorators import get_current_user, login_required, teacher_required
from attendance_engine.utils.helpers import success_response, get_json_body
from attendance_engine.utils.validators import parse_id

sessions_bp = Blueprint('sessions', __name__)

@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Sessions service is running')

@sessions_bp.route('/start', methods=['POST'])
@jwt_required()
@teacher_required
@limiter.limit("10 per minute")
def start_session():
    """Start an attendance session for a class."""
    result = SessionService.start(get_current_user(), get_json_body())
    return success_response(data=result, message='Session started', status_code=201)

@sessions_bp.route('/<int:session_id>/qr', methods=['PUT'])
@jwt_required()
@teacher_required
def refresh_qr(session_id):
    """Rotate the QR token."""
    result = SessionService.refresh_qr(get_current_user(), session_id)
    return success_response(data=result, message='QR code refreshed')

@sessions_bp.route('/<int:session_id>/end', methods=['POST'])
@jwt_required()
@teacher_required
def end_session(session_id):
    """End a session and mark everyone unaccounted for absent."""
    result = SessionService.end(get_current_user(), session_id)
    return success_response(data=result, message='Session ended')

@sessions_bp.route('/active/<int:class_id>', methods=['GET'])
@jwt_required()
@login_required
def get_active_session(class_id):
    """Active session of a class, if any."""
    user = get_current_user()
    session = SessionService.get_active(class_id)
    if session is None:
        return success_response(data={'session': None}, message='No active session')
    data = session.to_dict(include_secrets=user.is_teacher() and session.teacher_id == user.id)
    return success_response(data={'session': data})

@sessions_bp.route('/<int:session_id>', methods=['GET'])
@jwt_required()
@login_required
def get_session(session_id):
    """Session details with per-status counts."""
    return success_response(data=SessionService.get_details(get_current_user(), session_id))

@sessions_bp.route('/<int:session_id>/stats', methods=['GET'])
@jwt_required()
@teacher_required
def get_session_stats(session_id):
    """Attendance statistics for a session."""
    return success_response(data=SessionService.stats(get_current_user(), session_id))

@sessions_bp.route('/class/<int:class_id>', methods=['GET'])
@jwt_required()
@login_required
def list_class_sessions(class_id):
    """Session history of a class, newest first."""
    status = request.args.get('status')
    limit = request.args.get('limit', 20, type=int)
    sessions = SessionService.list_for_class(get_current_user(), parse_id(class_id, 'classId'), status, limit)
    return success_response(data={'sessions': sessions, 'count': len(sessions)})
