"""Attendance summary API."""
from flask import Blueprint
from flask_jwt_extended import jwt_required
from attendance_engine.services.summary_service import SummaryService
from attendance_engine.utils.decorators import get_current_user, login_required, teacher_required
from attendance_engine.utils.helpers import success_response

summaries_bp = Blueprint('summaries', __name__)

@summaries_bp.route('/class/<int:class_id>', methods=['GET'])
@jwt_required()
@teacher_required
def class_summaries(class_id):
    """Summaries of every student in a class, lowest attendance first."""
    summaries = SummaryService.for_class(get_current_user(), class_id)
    below = [s for s in summaries if s.is_below_threshold]
    return success_response(data={
        'summaries': [s.to_dict() for s in summaries],
        'count': len(summaries),
        'belowThreshold': len(below)
    })

@summaries_bp.route('/student/<int:student_id>', methods=['GET'])
@jwt_required()
@login_required
def student_summaries(student_id):
    """Summaries of one student across classes."""
    summaries = SummaryService.for_student(get_current_user(), student_id)
    return success_response(data={'summaries': [s.to_dict() for s in summaries]})
