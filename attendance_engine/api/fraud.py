"""Fraud flag API."""
from flask import Blueprint
from flask_jwt_extended import jwt_required
from attendance_engine.services.fraud_service import FraudService
from attendance_engine.utils.decorators import get_current_user, teacher_required
from attendance_engine.utils.helpers import success_response, get_json_body

fraud_bp = Blueprint('fraud', __name__)

@fraud_bp.route('/session/<int:session_id>', methods=['GET'])
@jwt_required()
@teacher_required
def session_flags(session_id):
    """Fraud flags raised in a session."""
    flags = FraudService.flags_for_session(get_current_user(), session_id)
    return success_response(data={'flags': flags, 'count': len(flags)})

@fraud_bp.route('/<int:flag_id>/review', methods=['PATCH'])
@jwt_required()
@teacher_required
def review_flag(flag_id):
    """Mark a pending flag as reviewed or dismissed."""
    flag = FraudService.review(get_current_user(), flag_id, get_json_body().get('decision'))
    return success_response(data=flag, message='Flag updated')
