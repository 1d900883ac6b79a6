"""Authentication service."""
from typing import Optional, Tuple

from flask_jwt_extended import create_access_token, create_refresh_token

from attendance_engine import db
from attendance_engine.models.user import User
from attendance_engine.utils import clock
from attendance_engine.utils.validators import validate_email

class AuthService:
    @staticmethod
    def login(email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
        """Authenticate user and return tokens."""
        if not email or not password:
            return None, "Email and password are required"
        
        if not validate_email(email):
            return None, "Invalid email format"
        
        user = User.query.filter_by(email=email.lower().strip()).first()
        
        if not user or not user.check_password(password):
            return None, "Invalid email or password"
        
        if not user.is_active:
            return None, "Account is deactivated"
        
        user.last_login = clock.now()
        user.save()
        
        return {
            "access_token": AuthService.issue_token(user),
            "refresh_token": create_refresh_token(identity=str(user.id)),
            "user": user.to_dict()
        }, None
    
    @staticmethod
    def issue_token(user: User) -> str:
        """Access token for a user; the identity is the user id as a string."""
        return create_access_token(identity=str(user.id), additional_claims={'role': user.role.value})
    
    @staticmethod
    def refresh_token(user_id) -> Tuple[Optional[dict], Optional[str]]:
        """Generate new access token."""
        user = db.session.get(User, int(user_id))
        if not user or not user.is_active:
            return None, "User not found or inactive"
        
        return {
            "access_token": AuthService.issue_token(user),
            "user": user.to_dict()
        }, None
