"""User model for authentication, roster and identity data."""
from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from attendance_engine import db
from attendance_engine.models.base import BaseModel

class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    TEACHER = 'teacher'
    ADMIN = 'admin'

class User(BaseModel):
    """User model for all system users."""
    
    __tablename__ = 'users'
    
    # Basic Information
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    roll_number = db.Column(db.String(50), unique=True, nullable=True, index=True)
    
    # Role
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)
    
    # Student device binding and face reference
    device_id = db.Column(db.String(100), nullable=True)
    face_descriptor = db.Column(db.JSON, nullable=True)  # list of floats
    face_enrolled_at = db.Column(db.DateTime, nullable=True)
    
    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)
    
    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)
    
    def is_teacher(self) -> bool:
        """Check if user is a teacher."""
        return self.role in [UserRole.TEACHER, UserRole.ADMIN]
    
    def is_student(self) -> bool:
        """Check if user is a student."""
        return self.role == UserRole.STUDENT
    
    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        default_exclude = ['password_hash', 'face_descriptor']
        exclude = (exclude or []) + default_exclude
        
        result = super().to_dict(exclude=exclude)
        result['role'] = self.role.value if self.role else None
        result['face_enrolled'] = self.face_descriptor is not None
        
        return result
    
    def __repr__(self) -> str:
        return f'<User {self.email}>'
