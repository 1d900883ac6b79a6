"""Class (course) model and enrolment table."""
from attendance_engine import db
from attendance_engine.models.base import BaseModel

enrollments = db.Table(
    'enrollments',
    db.Column('class_id', db.Integer, db.ForeignKey('classes.id'), primary_key=True),
    db.Column('student_id', db.Integer, db.ForeignKey('users.id'), primary_key=True)
)

class Course(BaseModel):
    """A subject class taught by one teacher to a roster of students."""
    
    __tablename__ = 'classes'
    
    subject_name = db.Column(db.String(255), nullable=False)
    subject_code = db.Column(db.String(50), nullable=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    min_attendance = db.Column(db.Integer, nullable=False, default=75)
    is_active = db.Column(db.Boolean, default=True)
    
    # Relationships
    teacher = db.relationship('User', foreign_keys=[teacher_id], backref='teaching_classes')
    students = db.relationship('User', secondary=enrollments, lazy='select',
                               backref=db.backref('enrolled_classes', lazy='select'))
    
    @property
    def student_ids(self):
        return [student.id for student in self.students]
    
    def to_dict(self):
        """Convert to dictionary."""
        data = super().to_dict()
        data['student_count'] = len(self.students)
        return data
    
    def __repr__(self):
        return f'<Course {self.subject_code or self.subject_name}>'
