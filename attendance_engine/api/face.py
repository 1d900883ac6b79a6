"""Face enrolment API."""
from flask import Blueprint
from flask_jwt_extended import jwt_required
from attendance_engine import limiter
from attendance_engine.services.face_service import FaceService
from attendance_engine.utils.decorators import get_current_user, student_required
from attendance_engine.utils.helpers import success_response, get_json_body

face_bp = Blueprint('face', __name__)

@face_bp.route('/enroll', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("5 per hour")
def enroll_face():
    """Store the reference descriptor used to verify later marks."""
    enrolled_at = FaceService.enroll(get_current_user(), get_json_body().get('descriptor'))
    return success_response(data={'faceEnrolled': True, 'enrolledAt': enrolled_at},
                            message='Face enrolled successfully')
