"""Attendance dispute API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from attendance_engine import limiter
from attendance_engine.services.dispute_service import DisputeService
from attendance_engine.utils.decorators import (
    get_current_user, login_required, student_required, teacher_required
)
from attendance_engine.utils.helpers import success_response, get_json_body

disputes_bp = Blueprint('disputes', __name__)

@disputes_bp.route('', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("10 per hour")
def raise_dispute():
    """Dispute one of your own attendance records."""
    dispute = DisputeService.raise_dispute(get_current_user(), get_json_body())
    return success_response(data=dispute, message='Dispute raised', status_code=201)

@disputes_bp.route('/mine', methods=['GET'])
@jwt_required()
@student_required
def my_disputes():
    disputes = DisputeService.for_student(get_current_user())
    return success_response(data={'disputes': disputes, 'count': len(disputes)})

@disputes_bp.route('/teacher', methods=['GET'])
@jwt_required()
@teacher_required
def teacher_disputes():
    """Disputes for the classes you teach."""
    result = DisputeService.for_teacher(get_current_user(), request.args.get('status'))
    return success_response(data=result)

@disputes_bp.route('/<int:dispute_id>', methods=['GET'])
@jwt_required()
@login_required
def get_dispute(dispute_id):
    return success_response(data=DisputeService.get(get_current_user(), dispute_id))

@disputes_bp.route('/<int:dispute_id>/resolve', methods=['PATCH'])
@jwt_required()
@teacher_required
def resolve_dispute(dispute_id):
    """Approve or reject a pending dispute."""
    result = DisputeService.resolve(get_current_user(), dispute_id, get_json_body())
    return success_response(data=result, message=result.pop('message'))
