"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import get_jwt_identity
from attendance_engine import db
from attendance_engine.models.user import User
from attendance_engine.utils.helpers import error_response

def get_current_user():
    """User behind the JWT of the current request."""
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None
    return db.session.get(User, user_id)

def login_required(f):
    """Decorator to require an active user behind the token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        
        if not user or not user.is_active:
            return error_response("User not found", 404, 'USER_NOT_FOUND')
        
        return f(*args, **kwargs)
    return decorated_function

def teacher_required(f):
    """Decorator to require teacher role or higher."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        
        if not user or not user.is_active:
            return error_response("User not found", 404, 'USER_NOT_FOUND')
        
        if not user.is_teacher():
            return error_response("Teacher access required", 403, 'UNAUTHORIZED')
        
        return f(*args, **kwargs)
    return decorated_function

def student_required(f):
    """Decorator to require student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        
        if not user or not user.is_active:
            return error_response("User not found", 404, 'USER_NOT_FOUND')
        
        if not user.is_student():
            return error_response("Student access required", 403, 'UNAUTHORIZED')
        
        return f(*args, **kwargs)
    return decorated_function
