"""Authentication API."""
from flask import Blueprint
from flask_jwt_extended import jwt_required, get_jwt_identity
from attendance_engine import limiter
from attendance_engine.services.auth_service import AuthService
from attendance_engine.utils.decorators import get_current_user, login_required
from attendance_engine.utils.helpers import success_response, error_response, get_json_body

auth_bp = Blueprint("auth", __name__)

@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Email and password login for every role."""
    data = get_json_body()
    
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    
    if not email or not password:
        return error_response("Email and password are required", 400, 'VALIDATION_ERROR')
    
    result, error = AuthService.login(email, password)
    
    if error:
        return error_response(error, 401, 'INVALID_CREDENTIALS')
    
    return success_response(data=result, message="Login successful")

@auth_bp.route("/me", methods=["GET"])
@jwt_required()
@login_required
def get_me():
    """Get current user profile."""
    user = get_current_user()
    data = user.to_dict()
    if user.is_student():
        data['enrolled_class_ids'] = [course.id for course in user.enrolled_classes]
    else:
        data['teaching_class_ids'] = [course.id for course in user.teaching_classes]
    return success_response(data=data)

@auth_bp.route("/refresh", methods=["POST"])
@jwt_required(refresh=True)
def refresh_token():
    """Refresh access token."""
    result, error = AuthService.refresh_token(get_jwt_identity())
    
    if error:
        return error_response(error, 401, 'INVALID_TOKEN')
    
    return success_response(data=result, message="Token refreshed successfully")
